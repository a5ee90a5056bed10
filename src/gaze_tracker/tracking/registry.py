"""
Registry of tracked people.

The registry owns every live track. Each frame it associates the filtered
ground detections to existing tracks by nearest neighbour, spawns tracks
for the leftovers and ages the tracks that went undetected. Tracks that
stayed undetected for too long are flagged, and removed when the caller
prunes the registry.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from .association import associate_detections_to_tracks
from .track import Track, TrackSnapshot
from ..config import TrackerConfig

logger = logging.getLogger(__name__)


@dataclass
class AssociationResult:
    """
    Outcome of one association step.

    Attributes:
        matched: Track ids that received a detection
        created: Track ids spawned from unmatched detections
        missed: Track ids that received no detection
        expired: Track ids flagged for deletion during this step
    """
    matched: List[int] = field(default_factory=list)
    created: List[int] = field(default_factory=list)
    missed: List[int] = field(default_factory=list)
    expired: List[int] = field(default_factory=list)


@dataclass
class FrameResult:
    """
    Container for tracking results from a single frame.

    Attributes:
        timestamp: Stamp of the processed frame
        tracks: Smoothed tracks after association and pruning
        frame_idx: Index of the processed frame
        target_id: Track currently selected as gaze target, if any
        skipped: True when the frame was abandoned before association
        skip_reason: Why the frame was abandoned
    """
    timestamp: float
    tracks: List[TrackSnapshot] = field(default_factory=list)
    frame_idx: Optional[int] = None
    target_id: Optional[int] = None
    skipped: bool = False
    skip_reason: Optional[str] = None

    @property
    def track_ids(self) -> List[int]:
        return [t.track_id for t in self.tracks]

    def to_dict(self) -> dict:
        return {
            "frame_idx": self.frame_idx,
            "timestamp": self.timestamp,
            "target_id": self.target_id,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "tracks": [t.to_dict() for t in self.tracks],
        }


class TrackRegistry:
    """
    Nearest-neighbour multi-person tracker on the ground plane.

    Args:
        config: Tracker configuration

    Example:
        >>> registry = TrackRegistry(TrackerConfig(associating_distance=0.5))
        >>>
        >>> for points, boxes in frames:
        ...     registry.associate(points, boxes)
        ...     for track in registry.prune():
        ...         print(f"Lost track {track.track_id}")
        ...     for snapshot in registry.smoothed_tracks():
        ...         print(f"Track {snapshot.track_id}: {snapshot.position}")
    """

    def __init__(self, config: Optional[TrackerConfig] = None):
        """Initialize the registry."""
        self._config = config or TrackerConfig()
        self._tracks: Dict[int, Track] = {}  # track_id -> track, insertion order
        self._next_id = 1

        logger.info(
            f"Initialized TrackRegistry "
            f"(window={self._config.median_window}, "
            f"associating_distance={self._config.associating_distance}, "
            f"destruction={self._config.frames_before_destruction}/"
            f"{self._config.frames_before_destruction_locked}, "
            f"method={self._config.association_method})"
        )

    @property
    def config(self) -> TrackerConfig:
        return self._config

    def _get_next_id(self) -> int:
        """Get next available track ID."""
        track_id = self._next_id
        self._next_id += 1
        return track_id

    def _create_track(self, position: np.ndarray, bbox: np.ndarray) -> Track:
        """Create a new track from a detection."""
        track = Track.create(
            track_id=self._get_next_id(),
            position=position,
            bbox=bbox,
            window=self._config.median_window,
        )
        self._tracks[track.track_id] = track
        logger.debug(
            f"Created track {track.track_id} at "
            f"({track.position[0]:.2f}, {track.position[1]:.2f})"
        )
        return track

    def associate(
        self,
        world_points: np.ndarray,
        rects: Sequence[np.ndarray]
    ) -> AssociationResult:
        """
        Update the tracks with one frame of detections.

        Args:
            world_points: Ground points of the detections, shape (N, 2|3)
            rects: Image boxes [x1, y1, x2, y2], in the same order

        Returns:
            AssociationResult listing the affected track ids
        """
        world_points = np.asarray(world_points, dtype=np.float64)
        if world_points.size == 0:
            world_points = np.empty((0, 2), dtype=np.float64)
        if world_points.ndim != 2 or len(world_points) != len(rects):
            raise ValueError(
                f"Got {len(world_points)} points for {len(rects)} boxes")

        result = AssociationResult()

        active_tracks = [
            t for t in self._tracks.values() if not t.pending_deletion
        ]
        if active_tracks:
            track_positions = np.array(
                [t.position for t in active_tracks], dtype=np.float64)
        else:
            track_positions = np.empty((0, 2), dtype=np.float64)

        matches, unmatched_tracks, unmatched_dets = associate_detections_to_tracks(
            detections=world_points,
            tracks=track_positions,
            max_distance=self._config.associating_distance,
            method=self._config.association_method,
        )

        # Update matched tracks
        for track_idx, det_idx in matches:
            track = active_tracks[track_idx]
            track.update(world_points[det_idx], rects[det_idx])
            result.matched.append(track.track_id)

        # Create new tracks for unmatched detections
        for det_idx in unmatched_dets:
            track = self._create_track(world_points[det_idx], rects[det_idx])
            result.created.append(track.track_id)

        # Age the tracks that went undetected
        for track_idx in unmatched_tracks:
            track = active_tracks[track_idx]
            track.mark_missed()
            result.missed.append(track.track_id)

            threshold = self._config.destruction_threshold(track.locked)
            if track.check_expired(threshold):
                result.expired.append(track.track_id)
                logger.debug(
                    f"Track {track.track_id} expired after "
                    f"{track.miss_count} missed frames "
                    f"({'locked' if track.locked else 'unlocked'})"
                )

        return result

    def prune(self) -> List[Track]:
        """
        Remove the tracks flagged for deletion.

        Returns:
            The removed tracks
        """
        removed = [t for t in self._tracks.values() if t.pending_deletion]
        for track in removed:
            del self._tracks[track.track_id]
        if removed:
            logger.info(
                f"Removed tracks {[t.track_id for t in removed]}, "
                f"{len(self._tracks)} remaining"
            )
        return removed

    def smoothed_tracks(self) -> List[TrackSnapshot]:
        """
        Median-smoothed view of every live track.

        Tracks flagged for deletion are left out.
        """
        return [
            t.snapshot() for t in self._tracks.values()
            if not t.pending_deletion
        ]

    def get(self, track_id: int) -> Optional[Track]:
        return self._tracks.get(track_id)

    def lock(self, track_id: int) -> bool:
        """Lock a track so it gets the longer miss tolerance."""
        track = self._tracks.get(track_id)
        if track is None:
            return False
        track.lock()
        return True

    def reset(self) -> None:
        """Reset all tracking state."""
        self._tracks.clear()
        self._next_id = 1
        logger.info("Track registry reset")

    def track_count(self) -> int:
        """Get number of tracks not flagged for deletion."""
        return sum(1 for t in self._tracks.values() if not t.pending_deletion)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(list(self._tracks.values()))

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks
