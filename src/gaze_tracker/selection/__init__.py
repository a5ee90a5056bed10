"""
Selection module for the gaze tracker.

Example:
    >>> from gaze_tracker.selection import TargetSelector
    >>> selector = TargetSelector(camera, actuator, registry)
"""

from .target_selector import FIXATION_SENTINEL, SelectionState, TargetSelector

__all__ = [
    "FIXATION_SENTINEL",
    "SelectionState",
    "TargetSelector",
]
