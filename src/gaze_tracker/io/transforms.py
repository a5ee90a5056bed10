"""
Transform lookup between the camera and world frames.

The tracker never computes the camera pose itself; it asks a provider for
the camera-to-world transform at each frame's timestamp and abandons the
frame when the provider can not answer in time.
"""

import bisect
import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ..errors import TransformLookupError, TransformTimeoutError

logger = logging.getLogger(__name__)


def _as_transform(matrix) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got {matrix.shape}")
    return matrix


class TransformProvider(ABC):
    """
    Source of rigid transforms between named frames.

    ``lookup(target, source, t)`` returns the matrix mapping points in the
    ``source`` frame to the ``target`` frame at time ``t``; for
    ``lookup(world, camera, t)`` this is the camera pose in the world.
    """

    @abstractmethod
    def lookup(
        self,
        target_frame: str,
        source_frame: str,
        timestamp: float,
        timeout: float = 10.0
    ) -> np.ndarray:
        """
        Look up a transform, waiting at most ``timeout`` seconds.

        Raises:
            TransformLookupError: If the transform is unavailable
            TransformTimeoutError: If it did not become available in time
        """
        pass


class StaticTransformProvider(TransformProvider):
    """
    Provider returning one fixed transform for any timestamp.

    Args:
        transform: The source-to-target transform, shape (4, 4)
        target_frame: Frame name it maps into, or None to accept any
        source_frame: Frame name it maps from, or None to accept any
    """

    def __init__(
        self,
        transform: np.ndarray,
        target_frame: Optional[str] = None,
        source_frame: Optional[str] = None
    ):
        self._transform = _as_transform(transform).copy()
        self._target_frame = target_frame
        self._source_frame = source_frame

    def set_transform(self, transform: np.ndarray) -> None:
        self._transform = _as_transform(transform).copy()

    def lookup(self, target_frame, source_frame, timestamp, timeout=10.0):
        if self._target_frame is not None and target_frame != self._target_frame:
            raise TransformLookupError(
                f"No transform into frame {target_frame!r}")
        if self._source_frame is not None and source_frame != self._source_frame:
            raise TransformLookupError(
                f"No transform from frame {source_frame!r}")
        return self._transform.copy()


class BufferedTransformProvider(TransformProvider):
    """
    Time-stamped transform buffer between two frames.

    A feeder (pose source, recording loader) adds stamped transforms; a
    lookup blocks until the buffer holds a stamp at or after the requested
    time, then answers with the closest stamp within ``max_time_offset``.
    Once ``close()`` is called no more transforms are expected and lookups
    answer immediately.

    Args:
        target_frame: Frame the transforms map into (e.g. "map")
        source_frame: Frame the transforms map from (camera frame)
        max_time_offset: Largest accepted stamp mismatch, in seconds
        cache_size: Number of transforms kept, oldest dropped first

    Example:
        >>> provider = BufferedTransformProvider("map", "camera")
        >>> provider.set_transform(0.0, camera_to_world)
        >>> provider.lookup("map", "camera", 0.0, timeout=1.0)
    """

    def __init__(
        self,
        target_frame: str,
        source_frame: str,
        max_time_offset: float = 0.05,
        cache_size: int = 1000
    ):
        self._target_frame = target_frame
        self._source_frame = source_frame
        self._max_time_offset = max_time_offset
        self._cache_size = cache_size

        self._stamps: List[float] = []
        self._transforms: List[np.ndarray] = []
        self._closed = False
        self._condition = threading.Condition()

    @property
    def target_frame(self) -> str:
        return self._target_frame

    @property
    def source_frame(self) -> str:
        return self._source_frame

    def set_transform(self, timestamp: float, transform: np.ndarray) -> None:
        """Add a stamped transform, replacing any with the same stamp."""
        transform = _as_transform(transform).copy()
        with self._condition:
            index = bisect.bisect_left(self._stamps, timestamp)
            if index < len(self._stamps) and self._stamps[index] == timestamp:
                self._transforms[index] = transform
            else:
                self._stamps.insert(index, timestamp)
                self._transforms.insert(index, transform)

            while len(self._stamps) > self._cache_size:
                self._stamps.pop(0)
                self._transforms.pop(0)

            self._condition.notify_all()

    def close(self) -> None:
        """Signal that no further transforms will be added."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def __len__(self) -> int:
        with self._condition:
            return len(self._stamps)

    def _can_answer(self, timestamp: float) -> bool:
        return self._closed or (
            bool(self._stamps) and self._stamps[-1] >= timestamp
        )

    def _closest(self, timestamp: float) -> Optional[int]:
        if not self._stamps:
            return None
        index = bisect.bisect_left(self._stamps, timestamp)
        candidates = [i for i in (index - 1, index) if 0 <= i < len(self._stamps)]
        best = min(candidates, key=lambda i: abs(self._stamps[i] - timestamp))
        if abs(self._stamps[best] - timestamp) > self._max_time_offset:
            return None
        return best

    def lookup(self, target_frame, source_frame, timestamp, timeout=10.0):
        if (target_frame, source_frame) != (self._target_frame, self._source_frame):
            raise TransformLookupError(
                f"No transform from {source_frame!r} to {target_frame!r} "
                f"(buffer holds {self._source_frame!r} -> {self._target_frame!r})"
            )

        with self._condition:
            ready = self._condition.wait_for(
                lambda: self._can_answer(timestamp), timeout=timeout)
            if not ready:
                raise TransformTimeoutError(
                    f"Timed out after {timeout:.1f}s waiting for transform "
                    f"{source_frame!r} -> {target_frame!r} at t={timestamp:.3f}"
                )

            index = self._closest(timestamp)
            if index is None:
                raise TransformLookupError(
                    f"No transform {source_frame!r} -> {target_frame!r} "
                    f"within {self._max_time_offset}s of t={timestamp:.3f}"
                )
            return self._transforms[index].copy()
