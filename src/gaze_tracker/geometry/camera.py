"""
Pinhole camera model for ground-plane localization.

Image points are mapped to the world ground plane (z = 0) by inverting the
planar homography formed by the intrinsics and the world-to-camera
extrinsic. All transforms are 4x4 homogeneous matrices; the per-frame
extrinsic is supplied by the caller as a camera-to-world transform.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import cv2
import numpy as np

from ..errors import CameraConfigError, SingularTransformError

logger = logging.getLogger(__name__)

# Below this determinant a matrix is treated as non-invertible
SINGULAR_EPS = 1e-9

# Camera optical frame -> robot base, for a forward-looking camera mounted
# 0.95 m above the floor with its optical axis parallel to the ground.
DEFAULT_CAMERA_TO_BASE = np.array([
    [0.0, 0.0, 1.0, 0.0],
    [-1.0, 0.0, 0.0, 0.1],
    [0.0, -1.0, 0.0, 0.95],
    [0.0, 0.0, 0.0, 1.0],
])


def _checked_inverse(matrix: np.ndarray, name: str) -> np.ndarray:
    """Invert a square matrix, raising SingularTransformError if degenerate."""
    det = np.linalg.det(matrix)
    if not np.isfinite(det) or abs(det) < SINGULAR_EPS:
        raise SingularTransformError(
            f"{name} is singular (det={det:.3e})")
    return np.linalg.inv(matrix)


def _as_transform(transform: np.ndarray) -> np.ndarray:
    transform = np.asarray(transform, dtype=np.float64)
    if transform.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got {transform.shape}")
    return transform


class CameraModel:
    """
    Pinhole camera with known intrinsics.

    Distortion coefficients are kept for reference but are not applied;
    detections are assumed to come from a rectified image.

    Args:
        camera_matrix: Intrinsic matrix K, shape (3, 3)
        dist_coeffs: Distortion coefficients (stored only)
        camera_to_base: Fixed camera mount used by the assumed-height
            fallback projection

    Example:
        >>> camera = CameraModel.from_file("camera_model/config.yaml")
        >>> world = camera.project_to_ground(feet_pixels, camera_to_world)
    """

    def __init__(
        self,
        camera_matrix: np.ndarray,
        dist_coeffs: Optional[np.ndarray] = None,
        camera_to_base: Optional[np.ndarray] = None
    ):
        camera_matrix = np.asarray(camera_matrix, dtype=np.float64)
        if camera_matrix.shape != (3, 3):
            raise CameraConfigError(
                f"Camera matrix must be 3x3, got {camera_matrix.shape}")

        self._K = camera_matrix
        self._dist_coeffs = (
            np.zeros(5) if dist_coeffs is None
            else np.asarray(dist_coeffs, dtype=np.float64).ravel()
        )
        self._camera_to_base = _as_transform(
            DEFAULT_CAMERA_TO_BASE if camera_to_base is None
            else camera_to_base
        )

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        camera_to_base: Optional[np.ndarray] = None
    ) -> "CameraModel":
        """
        Load intrinsics from an OpenCV FileStorage calibration file.

        The file must contain a ``camera_matrix`` node and may contain a
        ``distortion_coefficients`` node, as written by the OpenCV
        calibration tools.

        Raises:
            CameraConfigError: If the file cannot be read or is malformed
        """
        path = Path(path)
        if not path.is_file():
            raise CameraConfigError(f"Camera config file not found: {path}")

        try:
            fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
        except cv2.error as e:
            raise CameraConfigError(
                f"Couldn't open camera config file {path}: {e}") from e

        try:
            if not fs.isOpened():
                raise CameraConfigError(
                    f"Couldn't open camera config file: {path}")

            camera_matrix = fs.getNode("camera_matrix").mat()
            if camera_matrix is None:
                raise CameraConfigError(
                    f"No camera_matrix in camera config file: {path}")

            dist_coeffs = fs.getNode("distortion_coefficients").mat()
            if dist_coeffs is None:
                logger.warning(
                    f"No distortion_coefficients in {path}, assuming zero")
        finally:
            fs.release()

        model = cls(camera_matrix, dist_coeffs, camera_to_base)
        logger.info(
            f"Loaded camera model from {path} "
            f"(fx={model.fx:.1f}, fy={model.fy:.1f}, "
            f"cx={model.K[0, 2]:.1f}, cy={model.K[1, 2]:.1f})"
        )
        return model

    def save(self, path: Union[str, Path]) -> None:
        """Write the intrinsics to an OpenCV FileStorage file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
        try:
            fs.write("camera_matrix", self._K)
            fs.write("distortion_coefficients",
                     self._dist_coeffs.reshape(1, -1))
        finally:
            fs.release()

    @property
    def K(self) -> np.ndarray:
        """Intrinsic matrix."""
        return self._K.copy()

    @property
    def dist_coeffs(self) -> np.ndarray:
        """Distortion coefficients (not applied by the projections)."""
        return self._dist_coeffs.copy()

    @property
    def fx(self) -> float:
        return float(self._K[0, 0])

    @property
    def fy(self) -> float:
        return float(self._K[1, 1])

    def project_to_ground(
        self,
        image_points: np.ndarray,
        camera_to_world: np.ndarray
    ) -> np.ndarray:
        """
        Project image points onto the world ground plane.

        For a world point on z = 0 the world-to-camera transform reduces to
        the homography H = [r1 r2 t], so p ~ K H [x y 1]^T and the ground
        point is recovered as H^-1 K^-1 p.

        Args:
            image_points: Pixel coordinates, shape (N, 2)
            camera_to_world: Camera pose in the world frame, shape (4, 4)

        Returns:
            World points, shape (N, 3), with z = 0

        Raises:
            SingularTransformError: If the transform, H or K is not invertible
        """
        camera_to_world = _as_transform(camera_to_world)
        world_to_camera = _checked_inverse(camera_to_world, "camera transform")

        homography = world_to_camera[:3, [0, 1, 3]]
        inv_homography = _checked_inverse(homography, "ground homography")
        inv_K = _checked_inverse(self._K, "camera matrix")

        image_points = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
        if len(image_points) == 0:
            return np.empty((0, 3), dtype=np.float64)

        homogeneous = np.vstack([image_points.T, np.ones(len(image_points))])
        ground = inv_homography @ (inv_K @ homogeneous)

        world = np.zeros((len(image_points), 3), dtype=np.float64)
        world[:, 0] = ground[0] / ground[2]
        world[:, 1] = ground[1] / ground[2]
        return world

    def project_to_image(
        self,
        world_points: np.ndarray,
        camera_to_world: np.ndarray
    ) -> np.ndarray:
        """
        Project world points into the image.

        Args:
            world_points: World coordinates, shape (N, 3)
            camera_to_world: Camera pose in the world frame, shape (4, 4)

        Returns:
            Pixel coordinates, shape (N, 2)
        """
        camera_points = self._to_camera(world_points, camera_to_world)
        pixels = (self._K @ camera_points.T).T
        return pixels[:, :2] / pixels[:, 2:3]

    def camera_depth(
        self,
        world_points: np.ndarray,
        camera_to_world: np.ndarray
    ) -> np.ndarray:
        """
        Depth of world points along the optical axis.

        Returns:
            Camera-frame z for each point, shape (N,)
        """
        return self._to_camera(world_points, camera_to_world)[:, 2]

    def _to_camera(
        self,
        world_points: np.ndarray,
        camera_to_world: np.ndarray
    ) -> np.ndarray:
        world_to_camera = _checked_inverse(
            _as_transform(camera_to_world), "camera transform")
        world_points = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
        homogeneous = np.hstack([world_points, np.ones((len(world_points), 1))])
        return (world_to_camera @ homogeneous.T).T[:, :3]

    def project_with_assumed_height(
        self,
        rects: Sequence[np.ndarray],
        base_to_world: np.ndarray,
        person_height: float = 1.8
    ) -> np.ndarray:
        """
        Estimate ground positions from box size instead of the extrinsic.

        Depth is taken from the pinhole relation z = f * H / h, where H is
        an assumed person height and h the box height in pixels. The box
        center is back-projected at that depth and carried through the
        fixed camera mount and the base pose into the world.

        Args:
            rects: Boxes as [x1, y1, x2, y2]
            base_to_world: Robot base pose in the world frame, shape (4, 4)
            person_height: Assumed height of every person, in meters

        Returns:
            World points, shape (N, 3), with z = 0. Rows for boxes without
            height are NaN.
        """
        base_to_world = _as_transform(base_to_world)
        inv_K = _checked_inverse(self._K, "camera matrix")

        points = np.full((4, len(rects)), np.nan, dtype=np.float64)
        for i, rect in enumerate(rects):
            x1, y1, x2, y2 = np.asarray(rect, dtype=np.float64)
            box_height = y2 - y1
            if box_height <= 0:
                continue

            cx = (x1 + x2) / 2
            cy = (y1 + y2) / 2
            z = self.fx * person_height / box_height

            points[0, i] = z * (cx * inv_K[0, 0] + inv_K[0, 2])
            points[1, i] = z * (cy * inv_K[1, 1] + inv_K[1, 2])
            points[2, i] = z
            points[3, i] = 1.0

        world = base_to_world @ (self._camera_to_base @ points)
        result = world[:3].T.copy()
        result[:, 2] = np.where(np.isnan(result[:, 0]), np.nan, 0.0)
        return result

    def gaze_height(
        self,
        image_point: np.ndarray,
        ground_xy: np.ndarray,
        camera_to_world: np.ndarray
    ) -> float:
        """
        Height at which a viewing ray passes over a known ground position.

        The ray through ``image_point`` is cast into the world and the
        point of the ray whose horizontal position best matches
        ``ground_xy`` is taken; its z is returned.

        Raises:
            SingularTransformError: If the ray has no horizontal component
        """
        camera_to_world = _as_transform(camera_to_world)
        inv_K = _checked_inverse(self._K, "camera matrix")

        u, v = np.asarray(image_point, dtype=np.float64).ravel()[:2]
        direction = camera_to_world[:3, :3] @ (inv_K @ np.array([u, v, 1.0]))
        origin = camera_to_world[:3, 3]

        horizontal = direction[:2]
        norm_sq = float(horizontal @ horizontal)
        if norm_sq < SINGULAR_EPS:
            raise SingularTransformError("Viewing ray is vertical")

        offset = np.asarray(ground_xy, dtype=np.float64).ravel()[:2] - origin[:2]
        scale = float(horizontal @ offset) / norm_sq
        return float(origin[2] + scale * direction[2])
