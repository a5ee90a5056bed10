"""
Centralized configuration management for the gaze tracker.

This module provides typed, validated configuration using dataclasses.
Configuration can be loaded from YAML files or constructed programmatically.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional
import yaml


ASSOCIATION_METHODS = ("greedy", "optimal")


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class CameraConfig:
    """Camera calibration source and frame names."""

    config_file: Optional[Path] = None  # OpenCV FileStorage calibration
    camera_frame: str = "l_camera_vision_link"
    world_frame: str = "map"
    assumed_person_height: float = 1.8  # meters, fallback projection only

    def __post_init__(self):
        if self.config_file is not None:
            self.config_file = Path(self.config_file)
        if self.assumed_person_height <= 0:
            raise ValueError("assumed_person_height must be positive")


@dataclass
class DetectionFilterConfig:
    """Plausible physical height range of a person, in meters."""

    # Shortest adult on record measured 0.5464 m
    minimum_person_height: float = 0.55
    # Tallest living man on record measured 2.51 m
    maximum_person_height: float = 2.51

    def __post_init__(self):
        if self.minimum_person_height > self.maximum_person_height:
            raise ValueError(
                "minimum_person_height must not exceed maximum_person_height"
            )


@dataclass
class TrackerConfig:
    """Configuration for the nearest-neighbour track registry."""

    median_window: int = 5  # History length used for median smoothing
    associating_distance: float = 0.5  # Max ground distance (m) for a match
    frames_before_destruction: int = 25  # Misses tolerated by a normal track
    frames_before_destruction_locked: int = 35  # Misses tolerated once locked
    association_method: str = "greedy"  # "greedy" or "optimal"

    def __post_init__(self):
        if self.median_window < 1:
            raise ValueError("median_window must be at least 1")
        if self.associating_distance < 0:
            raise ValueError("associating_distance must be non-negative")
        if self.association_method not in ASSOCIATION_METHODS:
            raise ValueError(
                f"association_method must be one of {ASSOCIATION_METHODS}, "
                f"got {self.association_method!r}"
            )

    def destruction_threshold(self, locked: bool) -> int:
        """Get the miss count a track may reach before it is deleted."""
        if locked:
            return self.frames_before_destruction_locked
        return self.frames_before_destruction


@dataclass
class GazeConfig:
    """Configuration for target selection and gaze commands."""

    gaze_threshold: float = 0.2  # Min fixation change (m) before a new goal
    fixation_tolerance: float = 0.1  # Error radius sent with every goal
    initial_gaze_height: float = 0.95  # Prefill for the depth median window
    auto_select_nearest: bool = True  # Until the first manual selection

    def __post_init__(self):
        if self.gaze_threshold < 0:
            raise ValueError("gaze_threshold must be non-negative")


@dataclass
class PipelineConfig:
    """Master configuration combining all sub-configs."""

    camera: CameraConfig = field(default_factory=CameraConfig)
    detection_filter: DetectionFilterConfig = field(
        default_factory=DetectionFilterConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    gaze: GazeConfig = field(default_factory=GazeConfig)

    transform_timeout: float = 10.0  # Seconds to wait for a frame transform

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Path) -> "PipelineConfig":
        """Load configuration from a YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(
            camera=CameraConfig(**data.get('camera', {})),
            detection_filter=DetectionFilterConfig(
                **data.get('detection_filter', {})),
            tracker=TrackerConfig(**data.get('tracker', {})),
            gaze=GazeConfig(**data.get('gaze', {})),
            transform_timeout=data.get('transform_timeout', 10.0),
            log_level=data.get('log_level', 'INFO'),
            log_file=Path(data['log_file']) if data.get('log_file') else None,
        )

    def to_dict(self) -> dict:
        """Convert to a plain dictionary suitable for YAML."""
        camera = asdict(self.camera)
        camera['config_file'] = (
            str(self.camera.config_file) if self.camera.config_file else None
        )
        return {
            'camera': camera,
            'detection_filter': asdict(self.detection_filter),
            'tracker': asdict(self.tracker),
            'gaze': asdict(self.gaze),
            'transform_timeout': self.transform_timeout,
            'log_level': self.log_level,
            'log_file': str(self.log_file) if self.log_file else None,
        }

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False,
                      sort_keys=False)


# =============================================================================
# Default Configuration Factory
# =============================================================================

def get_default_config() -> PipelineConfig:
    """Create default configuration suitable for most use cases."""
    return PipelineConfig()
