"""
Gaze Tracker - Person localization, tracking and gaze control.

Turns per-frame person detections from a robot camera into persistent
ground-plane tracks and steers a gaze actuator toward a chosen person.

Example:
    >>> from gaze_tracker import GazeTrackingPipeline, CameraModel
    >>> camera = CameraModel.from_file("camera_model/config.yaml")
    >>> pipeline = GazeTrackingPipeline(camera, transforms, actuator)
    >>> result = pipeline.process(batch)

For offline replay of a recorded session:
    >>> from gaze_tracker import run_replay
    >>> results = run_replay("session.json", camera_config="config.yaml")
"""

__version__ = "0.1.0"
__author__ = "Your Name"

from .config import (
    PipelineConfig,
    CameraConfig,
    DetectionFilterConfig,
    TrackerConfig,
    GazeConfig,
    get_default_config,
)
from .errors import (
    GazeTrackerError,
    CameraConfigError,
    SingularTransformError,
    TransformLookupError,
    TransformTimeoutError,
    RecordingFormatError,
)
from .geometry import CameraModel, DetectionFilter
from .tracking import TrackRegistry, FrameResult
from .selection import TargetSelector
from .pipeline import GazeTrackingPipeline, run_replay

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Configuration
    "PipelineConfig",
    "CameraConfig",
    "DetectionFilterConfig",
    "TrackerConfig",
    "GazeConfig",
    "get_default_config",
    # Errors
    "GazeTrackerError",
    "CameraConfigError",
    "SingularTransformError",
    "TransformLookupError",
    "TransformTimeoutError",
    "RecordingFormatError",
    # Components
    "CameraModel",
    "DetectionFilter",
    "TrackRegistry",
    "FrameResult",
    "TargetSelector",
    # Pipeline
    "GazeTrackingPipeline",
    "run_replay",
]
