"""
Per-frame person detections and the detection source interface.

Detections arrive from an external person detector as image rectangles.
This module only defines their representation; it does not run a detector.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

import numpy as np


@dataclass
class Detection:
    """
    Represents a single person detection.

    Attributes:
        bbox: Bounding box as [x1, y1, x2, y2] in pixel coordinates
    """
    bbox: np.ndarray  # Shape: (4,) - [x1, y1, x2, y2]

    def __post_init__(self):
        self.bbox = np.asarray(self.bbox, dtype=np.float64).reshape(4)

    @classmethod
    def from_xywh(cls, x: float, y: float, width: float, height: float) -> "Detection":
        """Create a detection from a top-left corner and a size."""
        return cls(np.array([x, y, x + width, y + height], dtype=np.float64))

    @property
    def width(self) -> float:
        """Bounding box width."""
        return float(self.bbox[2] - self.bbox[0])

    @property
    def height(self) -> float:
        """Bounding box height."""
        return float(self.bbox[3] - self.bbox[1])

    @property
    def area(self) -> float:
        """Bounding box area in pixels."""
        return self.width * self.height

    @property
    def center(self) -> np.ndarray:
        """Center point of bounding box as [cx, cy]."""
        return np.array([
            (self.bbox[0] + self.bbox[2]) / 2,
            (self.bbox[1] + self.bbox[3]) / 2
        ])

    @property
    def feet(self) -> np.ndarray:
        """Bottom-center point of the box, where the person meets the floor."""
        return np.array([(self.bbox[0] + self.bbox[2]) / 2, self.bbox[3]])

    @property
    def is_degenerate(self) -> bool:
        """True when the box has no area."""
        return self.width <= 0 or self.height <= 0


@dataclass
class DetectionBatch:
    """
    Container for all detections in a single frame.

    Attributes:
        detections: Detection objects in detector order
        timestamp: Capture time of the frame in seconds
        frame_idx: Optional sequence number of the frame
        camera_frame: Frame the boxes were observed in, if known
    """
    detections: List[Detection]
    timestamp: float
    frame_idx: Optional[int] = None
    camera_frame: Optional[str] = None

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    @classmethod
    def from_boxes(
        cls,
        boxes: Sequence[Sequence[float]],
        timestamp: float,
        frame_idx: Optional[int] = None,
        bbox_format: str = "xyxy",
    ) -> "DetectionBatch":
        """Build a batch from raw boxes in "xyxy" or "xywh" layout."""
        if bbox_format == "xywh":
            detections = [Detection.from_xywh(*box) for box in boxes]
        elif bbox_format == "xyxy":
            detections = [Detection(np.asarray(box)) for box in boxes]
        else:
            raise ValueError(f"Unknown bbox format: {bbox_format!r}")
        return cls(detections=detections, timestamp=timestamp,
                   frame_idx=frame_idx)

    def feet_points(self) -> np.ndarray:
        """
        Image points where each detected person touches the ground.

        Returns:
            (N, 2) array of pixel coordinates
        """
        if not self.detections:
            return np.empty((0, 2), dtype=np.float64)
        return np.array([d.feet for d in self.detections], dtype=np.float64)

    def to_numpy(self) -> np.ndarray:
        """
        Convert to a numpy array for batch processing.

        Returns:
            boxes: (N, 4) array of bounding boxes
        """
        if not self.detections:
            return np.empty((0, 4), dtype=np.float64)
        return np.array([d.bbox for d in self.detections], dtype=np.float64)


class DetectionSource(ABC):
    """
    Abstract per-frame detection source.

    Live detector bridges and recorded sessions both yield one
    DetectionBatch per camera frame, in capture order.
    """

    @abstractmethod
    def __iter__(self) -> Iterator[DetectionBatch]:
        """Iterate over detection batches in capture order."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        """Number of frames available, for progress reporting."""
        pass
