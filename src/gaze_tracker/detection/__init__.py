"""
Detection module for the gaze tracker.

Detections are produced by an external person detector; this package
holds their per-frame representation.

Example:
    >>> from gaze_tracker.detection import DetectionBatch
    >>> batch = DetectionBatch.from_boxes([[10, 20, 50, 200]], timestamp=0.0,
    ...                                   bbox_format="xywh")
    >>> batch.feet_points()
"""

from .base import Detection, DetectionBatch, DetectionSource

__all__ = [
    "Detection",
    "DetectionBatch",
    "DetectionSource",
]
