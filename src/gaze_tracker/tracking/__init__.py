"""
Tracking module for the gaze tracker.

This module provides ground-plane multi-person tracking with
nearest-neighbour association and median smoothing of positions.

Example:
    >>> from gaze_tracker.tracking import TrackRegistry
    >>> registry = TrackRegistry()
    >>> registry.associate(world_points, boxes)
    >>> registry.prune()
    >>> snapshots = registry.smoothed_tracks()
"""

from .history import RingBuffer, axis_median, scalar_median, median_index
from .association import (
    compute_distance,
    compute_distance_batch,
    greedy_assignment,
    linear_assignment,
    associate_detections_to_tracks,
)
from .track import Track, TrackSnapshot
from .registry import AssociationResult, FrameResult, TrackRegistry

__all__ = [
    # History
    "RingBuffer",
    "axis_median",
    "scalar_median",
    "median_index",
    # Association
    "compute_distance",
    "compute_distance_batch",
    "greedy_assignment",
    "linear_assignment",
    "associate_detections_to_tracks",
    # Tracks
    "Track",
    "TrackSnapshot",
    "AssociationResult",
    "FrameResult",
    "TrackRegistry",
]
