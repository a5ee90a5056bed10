"""
A single tracked person.

A track owns a short history of accepted ground positions and the image
boxes they came from. Its smoothed position is the per-axis median of that
history; the raw last position is only used for association.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .history import RingBuffer, axis_median

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackSnapshot:
    """
    Immutable view of a track for one frame.

    Attributes:
        track_id: Identity of the track
        position: Median-smoothed ground position (x, y) in the world frame
        bbox: Most recent image box [x1, y1, x2, y2]
        locked: Whether the track has ever been the gaze target
        miss_count: Consecutive frames without a detection
    """
    track_id: int
    position: Tuple[float, float]
    bbox: Tuple[float, float, float, float]
    locked: bool = False
    miss_count: int = 0

    @property
    def center(self) -> np.ndarray:
        """Center of the image box as [cx, cy]."""
        x1, y1, x2, y2 = self.bbox
        return np.array([(x1 + x2) / 2, (y1 + y2) / 2])

    def to_dict(self) -> dict:
        return {
            "track_id": self.track_id,
            "position": list(self.position),
            "bbox": list(self.bbox),
            "locked": self.locked,
            "miss_count": self.miss_count,
        }


@dataclass
class Track:
    """
    Represents a tracked person.

    Attributes:
        track_id: Unique identifier for this track
        position: Last accepted raw ground position (x, y)
        position_history: Accepted positions, most recent first
        rect_history: Image boxes matching ``position_history``
        miss_count: Consecutive frames without an associated detection
        locked: Set once the track is chosen as gaze target, never cleared
        pending_deletion: Set once ``miss_count`` exceeds its threshold
    """
    track_id: int
    position: np.ndarray
    position_history: RingBuffer
    rect_history: RingBuffer
    miss_count: int = 0
    locked: bool = False
    pending_deletion: bool = False

    @classmethod
    def create(
        cls,
        track_id: int,
        position: np.ndarray,
        bbox: np.ndarray,
        window: int
    ) -> "Track":
        """Start a track from its first detection."""
        position = np.asarray(position, dtype=np.float64).ravel()[:2].copy()
        bbox = np.asarray(bbox, dtype=np.float64).copy()
        return cls(
            track_id=track_id,
            position=position,
            position_history=RingBuffer(window, [position]),
            rect_history=RingBuffer(window, [bbox]),
        )

    @property
    def rect(self) -> np.ndarray:
        """Most recent image box."""
        return self.rect_history.latest()

    def update(self, position: np.ndarray, bbox: np.ndarray) -> None:
        """Accept an associated detection."""
        position = np.asarray(position, dtype=np.float64).ravel()[:2].copy()
        self.position = position
        self.position_history.push(position)
        self.rect_history.push(np.asarray(bbox, dtype=np.float64).copy())
        self.miss_count = 0

    def mark_missed(self) -> None:
        """Record a frame without an associated detection."""
        self.miss_count += 1

    def lock(self) -> None:
        if not self.locked:
            logger.debug(f"Track {self.track_id} locked")
        self.locked = True

    def check_expired(self, threshold: int) -> bool:
        """Flag the track for deletion once it missed more than ``threshold``."""
        if self.miss_count > threshold:
            self.pending_deletion = True
        return self.pending_deletion

    def smoothed_position(self) -> np.ndarray:
        """Per-axis median of the position history, as (x, y)."""
        return axis_median(self.position_history)

    def snapshot(self) -> TrackSnapshot:
        x, y = self.smoothed_position()
        return TrackSnapshot(
            track_id=self.track_id,
            position=(float(x), float(y)),
            bbox=tuple(float(v) for v in self.rect),
            locked=self.locked,
            miss_count=self.miss_count,
        )
