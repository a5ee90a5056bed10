"""
Plausibility filtering of detections by inferred physical size.

A detection's real-world height follows from its box height in pixels and
its distance to the camera: H = h * z / f. Boxes that would belong to
someone shorter or taller than any recorded adult are dropped before they
reach the tracker.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .camera import CameraModel
from ..config import DetectionFilterConfig
from ..detection import Detection

logger = logging.getLogger(__name__)


class DetectionFilter:
    """
    Rejects detections whose inferred height is implausible.

    Args:
        camera: Camera model providing intrinsics and depth
        config: Accepted height range

    Example:
        >>> detection_filter = DetectionFilter(camera)
        >>> points, detections = detection_filter.filter_by_size(
        ...     points, detections, camera_to_world)
    """

    def __init__(
        self,
        camera: CameraModel,
        config: Optional[DetectionFilterConfig] = None
    ):
        self._camera = camera
        self._config = config or DetectionFilterConfig()

        logger.info(
            f"Initialized DetectionFilter "
            f"(height range=[{self._config.minimum_person_height}, "
            f"{self._config.maximum_person_height}] m)"
        )

    def estimate_heights(
        self,
        world_points: np.ndarray,
        detections: Sequence[Detection],
        camera_to_world: np.ndarray
    ) -> np.ndarray:
        """
        Estimate the physical height of each detection.

        Returns:
            Heights in meters, shape (N,). NaN where the estimate is not
            meaningful (empty box, point behind the camera).
        """
        if len(detections) == 0:
            return np.empty((0,), dtype=np.float64)

        depths = self._camera.camera_depth(world_points, camera_to_world)
        pixel_heights = np.array([d.height for d in detections],
                                 dtype=np.float64)

        heights = pixel_heights * depths / self._camera.fy
        invalid = (
            ~np.all(np.isfinite(world_points), axis=1)
            | ~np.isfinite(depths)
            | (depths <= 0)
            | np.array([d.is_degenerate for d in detections])
        )
        heights[invalid] = np.nan
        return heights

    def filter_by_size(
        self,
        world_points: np.ndarray,
        detections: Sequence[Detection],
        camera_to_world: np.ndarray
    ) -> Tuple[np.ndarray, List[Detection]]:
        """
        Drop detections outside the accepted height range.

        Args:
            world_points: Ground points of the detections, shape (N, 3)
            detections: Detections in the same order as ``world_points``
            camera_to_world: Camera pose in the world frame, shape (4, 4)

        Returns:
            The kept world points and detections, in their original order
        """
        world_points = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
        heights = self.estimate_heights(world_points, detections,
                                        camera_to_world)

        keep = (
            np.isfinite(heights)
            & (heights >= self._config.minimum_person_height)
            & (heights <= self._config.maximum_person_height)
        )

        for i in np.flatnonzero(~keep):
            logger.debug(
                f"Dropped detection {i} (bbox={detections[i].bbox.tolist()}, "
                f"estimated height={heights[i]:.2f} m)"
            )

        kept_detections = [d for d, k in zip(detections, keep) if k]
        return world_points[keep], kept_detections
