"""
Fixed-capacity sample history and median smoothing.

Histories are kept most-recent first. Once full, pushing a new sample
evicts the oldest one.
"""

from collections import deque
from typing import Any, Generic, Iterable, Iterator, List, Optional, TypeVar

import numpy as np

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """
    Bounded most-recent-first buffer.

    Args:
        capacity: Maximum number of samples kept
        initial: Optional samples to pre-fill, most recent first

    Example:
        >>> history = RingBuffer(3)
        >>> for value in (1, 2, 3, 4):
        ...     history.push(value)
        >>> list(history)
        [4, 3, 2]
    """

    def __init__(self, capacity: int, initial: Optional[Iterable[T]] = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._items: deque = deque(maxlen=capacity)
        if initial is not None:
            # appendleft reverses, so feed oldest first
            for item in reversed(list(initial)[:capacity]):
                self._items.appendleft(item)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    @property
    def is_full(self) -> bool:
        return len(self._items) == self._items.maxlen

    def push(self, item: T) -> None:
        """Insert at the front, evicting the oldest sample if full."""
        self._items.appendleft(item)

    def fill(self, item: T) -> None:
        """Replace the whole history with copies of one value."""
        self._items.clear()
        self._items.extend([item] * self._items.maxlen)

    def latest(self) -> T:
        """Most recent sample."""
        if not self._items:
            raise IndexError("latest() on empty RingBuffer")
        return self._items[0]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self.capacity}, items={list(self._items)})"


def median_index(count: int) -> int:
    """Index of the median in ``count`` sorted samples (lower median)."""
    return (count - 1) // 2


def axis_median(samples: Iterable[Any]) -> np.ndarray:
    """
    Per-axis median of a set of vectors.

    Every axis is sorted on its own, so the result need not be one of the
    input samples. With an even count the lower median is taken, never an
    average, so a single outlier can not leak into the estimate.

    Args:
        samples: Vectors of equal length, or scalars

    Returns:
        Median vector (or 1-element array for scalars)
    """
    values = np.asarray(list(samples), dtype=np.float64)
    if values.size == 0:
        raise ValueError("axis_median() of empty history")
    if values.ndim == 1:
        values = values[:, np.newaxis]
    ordered = np.sort(values, axis=0)
    return ordered[median_index(ordered.shape[0])]


def scalar_median(samples: Iterable[float]) -> float:
    """Lower median of scalar samples."""
    ordered: List[float] = sorted(float(s) for s in samples)
    if not ordered:
        raise ValueError("scalar_median() of empty history")
    return ordered[median_index(len(ordered))]
