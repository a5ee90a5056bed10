"""
Geometry module for the gaze tracker.

This module maps image detections to the world ground plane and filters
them by plausible physical size.

Example:
    >>> from gaze_tracker.geometry import CameraModel, DetectionFilter
    >>> camera = CameraModel.from_file("camera_model/config.yaml")
    >>> points = camera.project_to_ground(batch.feet_points(), camera_to_world)
"""

from .camera import CameraModel, DEFAULT_CAMERA_TO_BASE
from .filters import DetectionFilter

__all__ = [
    "CameraModel",
    "DEFAULT_CAMERA_TO_BASE",
    "DetectionFilter",
]
