"""
Target selection and gaze control.

The selector decides which tracked person the robot looks at and turns
that person's smoothed position into fixation goals for the gaze
actuator. A new goal is only sent when the fixation point moved by more
than a threshold since the last goal, so per-frame noise does not make
the eyes chatter.

Selection policy:
- A selection event on a track id selects it; a second event on the
  selected id releases it and sends the eyes home.
- Until the first selection event is applied, the person closest to
  the camera is selected automatically. After that, selection is manual
  only.
- Losing the selected track releases the selection and sends the eyes home.
"""

import logging
import queue
from enum import Enum, auto
from typing import Optional, Sequence, Tuple

import numpy as np

from ..config import GazeConfig
from ..errors import SingularTransformError
from ..geometry import CameraModel
from ..io.actuator import ActuatorSink, GazeCommand
from ..tracking import RingBuffer, TrackRegistry, TrackSnapshot, scalar_median

logger = logging.getLogger(__name__)

# Last fixation before any goal was sent, far outside any workspace
FIXATION_SENTINEL = (1000.0, 1000.0, 1000.0)


class SelectionState(Enum):
    """Target selection state machine."""
    UNSELECTED = auto()
    SELECTED = auto()


class TargetSelector:
    """
    Chooses the gaze target and emits actuator commands.

    Args:
        camera: Camera model used for depth and gaze height
        actuator: Sink receiving gaze goals and target positions
        registry: Track registry whose tracks are locked when targeted
        config: Gaze configuration
        window: Length of the gaze height median window
        world_frame: Frame fixation points are expressed in

    Example:
        >>> selector = TargetSelector(camera, actuator, registry)
        >>> selector.post_selection(3)  # from a UI thread
        >>> # each frame, in the tracking thread:
        >>> selector.process_pending(snapshots, stamp)
        >>> selector.update(snapshots, camera_to_world, stamp)
    """

    def __init__(
        self,
        camera: CameraModel,
        actuator: ActuatorSink,
        registry: Optional[TrackRegistry] = None,
        config: Optional[GazeConfig] = None,
        window: int = 5,
        world_frame: str = "map"
    ):
        self._camera = camera
        self._actuator = actuator
        self._registry = registry
        self._config = config or GazeConfig()
        self._world_frame = world_frame

        self._state = SelectionState.UNSELECTED
        self._target_id: Optional[int] = None
        self._last_sent_fixation = np.array(FIXATION_SENTINEL)
        self._z_history: RingBuffer = RingBuffer(window)
        self._z_history.fill(self._config.initial_gaze_height)
        self._manual_selection_seen = False
        self._events: "queue.Queue[int]" = queue.Queue()

        logger.info(
            f"Initialized TargetSelector "
            f"(gaze_threshold={self._config.gaze_threshold}, "
            f"tolerance={self._config.fixation_tolerance}, "
            f"auto_select_nearest={self._config.auto_select_nearest})"
        )

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def target_id(self) -> Optional[int]:
        """Selected track id, None while unselected."""
        return self._target_id

    @property
    def last_sent_fixation(self) -> Tuple[float, float, float]:
        return tuple(float(v) for v in self._last_sent_fixation)

    @property
    def z_history(self) -> RingBuffer:
        return self._z_history

    @property
    def auto_select_active(self) -> bool:
        """Whether the closest person is still picked automatically."""
        return self._config.auto_select_nearest and not self._manual_selection_seen

    # ------------------------------------------------------------------
    # Selection events
    # ------------------------------------------------------------------

    def post_selection(self, track_id: int) -> None:
        """
        Queue a selection event.

        Safe to call from any thread; the event takes effect at the next
        ``process_pending`` call.
        """
        self._events.put(int(track_id))

    def process_pending(
        self,
        tracks: Sequence[TrackSnapshot],
        timestamp: Optional[float] = None
    ) -> None:
        """Apply all queued selection events against the current tracks."""
        live_ids = {t.track_id for t in tracks}
        while True:
            try:
                track_id = self._events.get_nowait()
            except queue.Empty:
                break
            self.select(track_id, live_ids=live_ids, timestamp=timestamp)

    def select(
        self,
        track_id: int,
        live_ids: Optional[set] = None,
        timestamp: Optional[float] = None
    ) -> None:
        """
        Handle one selection event.

        Selecting the current target releases it. Selecting another track
        switches to it. Ids not among ``live_ids`` are ignored.
        """
        if self._state is SelectionState.SELECTED and track_id == self._target_id:
            self._manual_selection_seen = True
            logger.info(f"Target {track_id} released")
            self.deselect(timestamp)
            return

        if live_ids is not None and track_id not in live_ids:
            logger.warning(f"Ignoring selection of unknown track {track_id}")
            return

        self._manual_selection_seen = True
        self._set_target(track_id)
        logger.info(f"Target selected: track {track_id}")

    def deselect(self, timestamp: Optional[float] = None) -> None:
        """Release the target and send the eyes home."""
        self._state = SelectionState.UNSELECTED
        self._target_id = None
        self._last_sent_fixation = np.array(FIXATION_SENTINEL)
        self._actuator.send_goal(
            GazeCommand.home(self._world_frame, timestamp))
        logger.info("No target selected. Sending eyes to home position")

    def on_track_deleted(
        self,
        track_id: int,
        timestamp: Optional[float] = None
    ) -> bool:
        """
        Notify the selector that a track left the registry.

        Returns:
            True if the deleted track was the target
        """
        if self._state is not SelectionState.SELECTED or track_id != self._target_id:
            return False
        logger.info(f"Lost target {track_id}")
        self.deselect(timestamp)
        return True

    def reset(self, timestamp: Optional[float] = None) -> None:
        """
        Drop queued selection events and release any target.

        Whether a manual selection was ever applied is kept, so auto-nearest
        stays off after a reset once the operator has taken over.
        """
        dropped = 0
        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                break
            dropped += 1
        if dropped:
            logger.debug(f"Dropped {dropped} queued selection event(s)")

        if self._state is SelectionState.SELECTED:
            self.deselect(timestamp)
        self._z_history.fill(self._config.initial_gaze_height)

    def _set_target(self, track_id: int) -> None:
        if track_id != self._target_id:
            self._z_history.fill(self._config.initial_gaze_height)
        self._state = SelectionState.SELECTED
        self._target_id = track_id

    # ------------------------------------------------------------------
    # Per-frame update
    # ------------------------------------------------------------------

    def nearest_track(
        self,
        tracks: Sequence[TrackSnapshot],
        camera_to_world: np.ndarray
    ) -> Optional[int]:
        """
        Track closest to the camera along its optical axis.

        Tracks behind the camera are not considered.
        """
        if not tracks:
            return None

        points = np.array(
            [[t.position[0], t.position[1], 0.0] for t in tracks])
        depths = self._camera.camera_depth(points, camera_to_world)
        depths = np.where(depths > 0, depths, np.inf)
        best = int(np.argmin(depths))
        if not np.isfinite(depths[best]):
            return None
        return tracks[best].track_id

    def update(
        self,
        tracks: Sequence[TrackSnapshot],
        camera_to_world: np.ndarray,
        timestamp: Optional[float] = None
    ) -> Optional[GazeCommand]:
        """
        Run the per-frame selection and gaze step.

        Args:
            tracks: Smoothed tracks of this frame
            camera_to_world: Camera pose of this frame
            timestamp: Frame stamp

        Returns:
            The fixation goal sent this frame, if any
        """
        if self._state is SelectionState.UNSELECTED and self.auto_select_active:
            nearest = self.nearest_track(tracks, camera_to_world)
            if nearest is not None:
                self._set_target(nearest)
                logger.info(f"Auto-selected nearest track {nearest}")

        if self._state is not SelectionState.SELECTED:
            return None

        target = next(
            (t for t in tracks if t.track_id == self._target_id), None)
        if target is None:
            return None

        if self._registry is not None:
            self._registry.lock(target.track_id)

        x, y = target.position
        self._actuator.publish_position((x, y, 0.0), self._world_frame,
                                        timestamp)

        try:
            z = self._camera.gaze_height(target.center, (x, y),
                                         camera_to_world)
            self._z_history.push(z)
        except SingularTransformError as e:
            logger.debug(f"Keeping previous gaze height: {e}")
        median_z = scalar_median(self._z_history)

        return self.submit_fixation((x, y, median_z), timestamp)

    def submit_fixation(
        self,
        point: Tuple[float, float, float],
        timestamp: Optional[float] = None
    ) -> Optional[GazeCommand]:
        """
        Send a fixation goal if it moved enough since the last one.

        Returns:
            The command sent, or None if the point was within
            ``gaze_threshold`` of the last sent fixation
        """
        candidate = np.asarray(point, dtype=np.float64)
        if np.linalg.norm(candidate - self._last_sent_fixation) <= self._config.gaze_threshold:
            return None

        command = GazeCommand.fixate(
            point=tuple(candidate),
            tolerance=self._config.fixation_tolerance,
            frame_id=self._world_frame,
            timestamp=timestamp,
        )
        self._actuator.send_goal(command)
        self._last_sent_fixation = candidate
        logger.debug(
            f"Gaze goal sent: ({candidate[0]:.2f}, {candidate[1]:.2f}, "
            f"{candidate[2]:.2f})"
        )
        return command
