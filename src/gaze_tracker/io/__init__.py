"""
I/O module for the gaze tracker.

This module provides the tracker's external collaborators: transform
providers, gaze actuator sinks, and recorded sessions for offline replay.

Example:
    >>> from gaze_tracker.io import load_recording, RecordingActuator
    >>> recording = load_recording("session.json")
    >>> actuator = RecordingActuator()
"""

from .transforms import (
    TransformProvider,
    StaticTransformProvider,
    BufferedTransformProvider,
)
from .actuator import (
    ActuatorSink,
    GazeCommand,
    GazeCommandType,
    LoggingActuator,
    RecordingActuator,
)
from .recording import (
    Recording,
    ResultsExporter,
    load_recording,
)

__all__ = [
    # Transforms
    "TransformProvider",
    "StaticTransformProvider",
    "BufferedTransformProvider",
    # Actuator
    "ActuatorSink",
    "GazeCommand",
    "GazeCommandType",
    "LoggingActuator",
    "RecordingActuator",
    # Recordings
    "Recording",
    "ResultsExporter",
    "load_recording",
]
