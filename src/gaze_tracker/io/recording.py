"""
Recorded detection sessions and result export.

A recording is a JSON file holding, per camera frame, the detector's boxes,
the frame timestamp and (optionally) the camera pose in the world frame:

    {
      "world_frame": "map",
      "camera_frame": "l_camera_vision_link",
      "bbox_format": "xywh",
      "frames": [
        {"timestamp": 0.0,
         "camera_to_world": [[...], [...], [...], [...]],
         "detections": [[x, y, w, h], ...]},
        ...
      ]
    }

Replaying it drives the same per-frame pipeline as a live camera.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import numpy as np

from .actuator import GazeCommand
from .transforms import BufferedTransformProvider
from ..detection import DetectionBatch, DetectionSource
from ..errors import RecordingFormatError
from ..tracking import FrameResult

logger = logging.getLogger(__name__)


@dataclass
class Recording(DetectionSource):
    """
    A recorded session ready for replay.

    Attributes:
        batches: Detection batches in capture order
        transforms: Camera poses recorded with the frames
        world_frame: Name of the world frame
        camera_frame: Name of the camera frame
        path: File the recording was loaded from
    """
    batches: List[DetectionBatch]
    transforms: BufferedTransformProvider
    world_frame: str = "map"
    camera_frame: str = "l_camera_vision_link"
    path: Optional[Path] = None

    def __iter__(self) -> Iterator[DetectionBatch]:
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)


def _parse_frame(
    frame: Dict[str, Any],
    frame_idx: int,
    bbox_format: str
) -> DetectionBatch:
    if not isinstance(frame, dict) or "timestamp" not in frame:
        raise RecordingFormatError(f"Frame {frame_idx} has no timestamp")

    boxes = frame.get("detections", [])
    try:
        boxes = [[float(v) for v in box] for box in boxes]
    except (TypeError, ValueError) as e:
        raise RecordingFormatError(
            f"Frame {frame_idx} has malformed detections: {e}") from e
    if any(len(box) != 4 for box in boxes):
        raise RecordingFormatError(
            f"Frame {frame_idx} has a box without 4 values")

    return DetectionBatch.from_boxes(
        boxes,
        timestamp=float(frame["timestamp"]),
        frame_idx=frame_idx,
        bbox_format=bbox_format,
    )


def load_recording(
    path: Union[str, Path],
    max_time_offset: float = 0.05
) -> Recording:
    """
    Load a recorded session from a JSON file.

    Args:
        path: Recording file
        max_time_offset: Largest accepted mismatch between a frame stamp
            and a recorded camera pose, in seconds

    Returns:
        Recording with its transform buffer filled and closed

    Raises:
        RecordingFormatError: If the file does not follow the format
    """
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise RecordingFormatError(f"Couldn't read recording {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("frames"), list):
        raise RecordingFormatError(f"Recording {path} has no frame list")

    world_frame = data.get("world_frame", "map")
    camera_frame = data.get("camera_frame", "l_camera_vision_link")
    bbox_format = data.get("bbox_format", "xywh")
    if bbox_format not in ("xywh", "xyxy"):
        raise RecordingFormatError(f"Unknown bbox_format {bbox_format!r}")

    transforms = BufferedTransformProvider(
        target_frame=world_frame,
        source_frame=camera_frame,
        max_time_offset=max_time_offset,
        cache_size=max(len(data["frames"]), 1),
    )

    batches = []
    for frame_idx, frame in enumerate(data["frames"]):
        batch = _parse_frame(frame, frame_idx, bbox_format)
        batch.camera_frame = camera_frame
        batches.append(batch)

        if frame.get("camera_to_world") is not None:
            try:
                transforms.set_transform(batch.timestamp,
                                         np.array(frame["camera_to_world"]))
            except ValueError as e:
                raise RecordingFormatError(
                    f"Frame {frame_idx} has a malformed transform: {e}") from e

    transforms.close()

    logger.info(
        f"Loaded recording {path.name}: {len(batches)} frames, "
        f"{len(transforms)} camera poses"
    )
    return Recording(
        batches=batches,
        transforms=transforms,
        world_frame=world_frame,
        camera_frame=camera_frame,
        path=path,
    )


class ResultsExporter:
    """
    Export replay results to JSON.

    Example:
        >>> exporter = ResultsExporter()
        >>> for result in results:
        ...     exporter.add_frame_result(result)
        >>> exporter.add_commands(actuator.commands)
        >>> exporter.save("tracks.json")
    """

    def __init__(self):
        self._frames: List[FrameResult] = []
        self._commands: List[GazeCommand] = []
        self._metadata: Dict[str, Any] = {}

    def add_frame_result(self, result: FrameResult) -> None:
        self._frames.append(result)

    def add_commands(self, commands: List[GazeCommand]) -> None:
        self._commands.extend(commands)

    def set_metadata(self, **metadata: Any) -> None:
        self._metadata.update(metadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        track_ids = sorted({
            t.track_id for frame in self._frames for t in frame.tracks
        })
        return {
            "metadata": dict(self._metadata),
            "summary": {
                "frames": len(self._frames),
                "skipped_frames": sum(1 for f in self._frames if f.skipped),
                "track_ids": track_ids,
                "gaze_commands": len(self._commands),
            },
            "frames": [f.to_dict() for f in self._frames],
            "gaze_commands": [c.to_dict() for c in self._commands],
        }

    def save(self, path: Union[str, Path], indent: int = 2) -> None:
        """
        Save to JSON file.

        Args:
            path: Output file path
            indent: JSON indentation level
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=indent)

        logger.info(
            f"Saved {len(self._frames)} frame results to {path}")
