"""
Main pipeline for person tracking and gaze control.

This module orchestrates the per-frame processing, from a batch of image
detections through ground projection, size filtering, tracking and target
selection, to gaze actuator commands.
"""

import copy
import logging
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
from tqdm import tqdm

from .config import PipelineConfig, get_default_config
from .detection import DetectionBatch, DetectionSource
from .errors import CameraConfigError, SingularTransformError, TransformLookupError
from .geometry import CameraModel, DetectionFilter
from .io import (
    ActuatorSink,
    LoggingActuator,
    RecordingActuator,
    ResultsExporter,
    TransformProvider,
    load_recording,
)
from .selection import TargetSelector
from .tracking import FrameResult, TrackRegistry

logger = logging.getLogger(__name__)


class GazeTrackingPipeline:
    """
    End-to-end per-frame pipeline for person tracking and gaze control.

    This class orchestrates the complete workflow for one frame:
    1. Camera pose lookup for the frame timestamp
    2. Ground projection of each detection's feet point
    3. Physical size filtering
    4. Association, aging and pruning of tracks
    5. Target selection and gaze commands

    A frame whose pose lookup fails or whose geometry is singular is
    skipped without touching any tracker or selector state. Frames must be
    processed one at a time; only ``select`` may be called from another
    thread.

    Args:
        camera: Camera model with the loaded intrinsics
        transforms: Provider of the camera pose per frame
        actuator: Gaze actuator sink. Logs commands if None.
        config: Pipeline configuration. Uses defaults if None.

    Example:
        >>> pipeline = GazeTrackingPipeline(camera, transforms, actuator)
        >>> for batch in detection_source:
        ...     result = pipeline.process(batch)
        ...     print(result.track_ids, result.target_id)
    """

    def __init__(
        self,
        camera: CameraModel,
        transforms: TransformProvider,
        actuator: Optional[ActuatorSink] = None,
        config: Optional[PipelineConfig] = None
    ):
        """Initialize the pipeline with its collaborators."""
        self._config = config or get_default_config()
        self._setup_logging()

        self._camera = camera
        self._transforms = transforms
        self._actuator = actuator or LoggingActuator()

        self._detection_filter = DetectionFilter(
            camera, self._config.detection_filter)
        self._registry = TrackRegistry(self._config.tracker)
        self._selector = TargetSelector(
            camera=camera,
            actuator=self._actuator,
            registry=self._registry,
            config=self._config.gaze,
            window=self._config.tracker.median_window,
            world_frame=self._config.camera.world_frame,
        )
        self._frame_count = 0

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        transforms: TransformProvider,
        actuator: Optional[ActuatorSink] = None
    ) -> "GazeTrackingPipeline":
        """
        Build a pipeline, loading the camera model named by the config.

        Raises:
            CameraConfigError: If no calibration file is configured or it
                cannot be loaded
        """
        if config.camera.config_file is None:
            raise CameraConfigError("No camera config file configured")
        camera = CameraModel.from_file(config.camera.config_file)
        return cls(camera, transforms, actuator, config)

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        logging.basicConfig(
            level=getattr(logging, self._config.log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.StreamHandler(),
                *(
                    [logging.FileHandler(self._config.log_file)]
                    if self._config.log_file else []
                )
            ]
        )

    @property
    def registry(self) -> TrackRegistry:
        return self._registry

    @property
    def selector(self) -> TargetSelector:
        return self._selector

    @property
    def detection_filter(self) -> DetectionFilter:
        return self._detection_filter

    @property
    def actuator(self) -> ActuatorSink:
        return self._actuator

    def select(self, track_id: int) -> None:
        """Queue a selection event for the next processed frame."""
        self._selector.post_selection(track_id)

    def _skip(self, batch: DetectionBatch, frame_idx: int, reason: str) -> FrameResult:
        logger.warning(f"Skipping frame {frame_idx} (t={batch.timestamp:.3f}): {reason}")
        return FrameResult(
            timestamp=batch.timestamp,
            frame_idx=frame_idx,
            target_id=self._selector.target_id,
            skipped=True,
            skip_reason=reason,
        )

    def process(self, batch: DetectionBatch) -> FrameResult:
        """
        Process one frame of detections.

        Args:
            batch: Detections of the frame with its timestamp

        Returns:
            FrameResult with the smoothed tracks and the current target
        """
        frame_idx = batch.frame_idx if batch.frame_idx is not None else self._frame_count
        self._frame_count += 1

        # Step 1: Camera pose at the frame time
        camera_frame = batch.camera_frame or self._config.camera.camera_frame
        try:
            camera_to_world = self._transforms.lookup(
                self._config.camera.world_frame,
                camera_frame,
                batch.timestamp,
                timeout=self._config.transform_timeout,
            )
        except TransformLookupError as e:
            return self._skip(batch, frame_idx, str(e))

        # Step 2: Ground projection and size filtering
        try:
            world_points = self._camera.project_to_ground(
                batch.feet_points(), camera_to_world)
            world_points, detections = self._detection_filter.filter_by_size(
                world_points, batch.detections, camera_to_world)
        except SingularTransformError as e:
            return self._skip(batch, frame_idx, str(e))

        logger.debug(
            f"Frame {frame_idx}: {len(detections)}/{len(batch)} detections "
            f"passed the size filter"
        )

        # Step 3: Tracking
        self._registry.associate(world_points, [d.bbox for d in detections])
        for track in self._registry.prune():
            self._selector.on_track_deleted(track.track_id, batch.timestamp)

        # Step 4: Selection and gaze
        snapshots = self._registry.smoothed_tracks()
        self._selector.process_pending(snapshots, batch.timestamp)
        self._selector.update(snapshots, camera_to_world, batch.timestamp)

        return FrameResult(
            timestamp=batch.timestamp,
            tracks=self._registry.smoothed_tracks(),
            frame_idx=frame_idx,
            target_id=self._selector.target_id,
        )

    def locate_with_assumed_height(
        self,
        batch: DetectionBatch,
        base_to_world: np.ndarray
    ) -> np.ndarray:
        """
        Rough ground positions from box size alone.

        Fallback for when no camera extrinsic is available: every person is
        assumed to be ``camera.assumed_person_height`` tall. Tracker state
        is not touched.

        Returns:
            World points, shape (N, 3). NaN rows for flat boxes.
        """
        return self._camera.project_with_assumed_height(
            [d.bbox for d in batch.detections],
            base_to_world,
            person_height=self._config.camera.assumed_person_height,
        )

    def process_source(
        self,
        source: DetectionSource,
        show_progress: bool = True
    ) -> List[FrameResult]:
        """Process every frame of a detection source in order."""
        results = []
        iterator = tqdm(source, total=len(source), desc="Tracking") \
            if show_progress else source

        for batch in iterator:
            results.append(self.process(batch))

        skipped = sum(1 for r in results if r.skipped)
        logger.info(
            f"Processed {len(results)} frames ({skipped} skipped), "
            f"{self._registry.track_count()} active tracks"
        )
        return results

    def reset(self) -> None:
        """Forget all tracks, pending selections and any target."""
        self._registry.reset()
        self._selector.reset()
        self._frame_count = 0


def run_replay(
    recording_path: Union[str, Path],
    camera_config: Optional[Union[str, Path]] = None,
    output_path: Optional[Union[str, Path]] = None,
    config: Optional[PipelineConfig] = None,
    selections: Optional[dict] = None,
    show_progress: bool = True
) -> List[FrameResult]:
    """
    Convenience function to replay a recorded session.

    Args:
        recording_path: Recording JSON file
        camera_config: Camera calibration file, overrides the config
        output_path: Where to write the results JSON, if given
        config: Pipeline configuration
        selections: Selection events to inject, as {frame_idx: track_id}
        show_progress: Whether to show a progress bar

    Returns:
        One FrameResult per recorded frame
    """
    config = copy.deepcopy(config) if config is not None else get_default_config()
    if camera_config is not None:
        config.camera.config_file = Path(camera_config)

    recording = load_recording(recording_path)
    config.camera.world_frame = recording.world_frame
    config.camera.camera_frame = recording.camera_frame

    actuator = RecordingActuator()
    pipeline = GazeTrackingPipeline.from_config(
        config, recording.transforms, actuator)

    selections = selections or {}
    results = []
    iterator = tqdm(recording, total=len(recording), desc="Replaying") \
        if show_progress else recording
    for batch in iterator:
        if batch.frame_idx in selections:
            pipeline.select(selections[batch.frame_idx])
        results.append(pipeline.process(batch))

    if output_path is not None:
        exporter = ResultsExporter()
        exporter.set_metadata(
            recording=str(recording.path),
            world_frame=recording.world_frame,
            camera_frame=recording.camera_frame,
        )
        for result in results:
            exporter.add_frame_result(result)
        exporter.add_commands(actuator.commands)
        exporter.save(output_path)

    return results
