"""
Gaze actuator sinks.

The tracker talks to the gaze controller through an ActuatorSink: it sends
fixation goals and "home" commands, and streams the target's ground
position while a target is selected. Submission is fire-and-forget; the
tracker never waits for the actuator to finish a goal.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class GazeCommandType(Enum):
    """Kind of command sent to the gaze actuator."""
    FIXATE = auto()  # Look at a 3-D point
    HOME = auto()    # Return to the rest position


@dataclass(frozen=True)
class GazeCommand:
    """
    A single gaze actuator command.

    Attributes:
        kind: FIXATE or HOME
        frame_id: Frame the fixation point is expressed in
        point: Fixation point (x, y, z), FIXATE only
        tolerance: Accepted fixation error radius in meters, FIXATE only
        timestamp: Stamp of the frame that produced the command
    """
    kind: GazeCommandType
    frame_id: str
    point: Optional[Tuple[float, float, float]] = None
    tolerance: Optional[float] = None
    timestamp: Optional[float] = None

    @classmethod
    def fixate(
        cls,
        point: Tuple[float, float, float],
        tolerance: float,
        frame_id: str,
        timestamp: Optional[float] = None
    ) -> "GazeCommand":
        return cls(
            kind=GazeCommandType.FIXATE,
            frame_id=frame_id,
            point=tuple(float(v) for v in point),
            tolerance=tolerance,
            timestamp=timestamp,
        )

    @classmethod
    def home(cls, frame_id: str, timestamp: Optional[float] = None) -> "GazeCommand":
        return cls(kind=GazeCommandType.HOME, frame_id=frame_id,
                   timestamp=timestamp)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.name.lower(),
            "frame_id": self.frame_id,
            "point": list(self.point) if self.point is not None else None,
            "tolerance": self.tolerance,
            "timestamp": self.timestamp,
        }


class ActuatorSink(ABC):
    """Interface of the gaze controller as seen by the tracker."""

    @abstractmethod
    def send_goal(self, command: GazeCommand) -> None:
        """Submit a command without waiting for its completion."""
        pass

    @abstractmethod
    def publish_position(
        self,
        point: Tuple[float, float, float],
        frame_id: str,
        timestamp: Optional[float] = None
    ) -> None:
        """Publish the current ground position of the selected target."""
        pass


class LoggingActuator(ActuatorSink):
    """Actuator that only logs what it is asked to do."""

    def send_goal(self, command: GazeCommand) -> None:
        if command.kind is GazeCommandType.HOME:
            logger.info("Sending eyes to home position")
        else:
            x, y, z = command.point
            logger.info(
                f"Gaze goal ({x:.2f}, {y:.2f}, {z:.2f}) in {command.frame_id}, "
                f"tolerance={command.tolerance}"
            )

    def publish_position(self, point, frame_id, timestamp=None):
        logger.debug(f"Target position {tuple(round(v, 3) for v in point)}")


class RecordingActuator(ActuatorSink):
    """
    Actuator that keeps everything it receives.

    Used for offline replay and tests.

    Attributes:
        commands: Every command, in submission order
        positions: Every published (point, timestamp) pair
    """

    def __init__(self):
        self.commands: List[GazeCommand] = []
        self.positions: List[Tuple[Tuple[float, float, float], Optional[float]]] = []

    def send_goal(self, command: GazeCommand) -> None:
        self.commands.append(command)

    def publish_position(self, point, frame_id, timestamp=None):
        self.positions.append((tuple(float(v) for v in point), timestamp))

    @property
    def fixations(self) -> List[GazeCommand]:
        return [c for c in self.commands if c.kind is GazeCommandType.FIXATE]

    @property
    def homes(self) -> List[GazeCommand]:
        return [c for c in self.commands if c.kind is GazeCommandType.HOME]

    def clear(self) -> None:
        self.commands.clear()
        self.positions.clear()
