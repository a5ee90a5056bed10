"""
Exception hierarchy for the gaze tracker.

Startup errors (camera calibration, malformed recordings) are fatal.
Per-frame errors (transform lookup, singular geometry) cause the frame
to be skipped with all tracker and selector state left untouched.
"""


class GazeTrackerError(Exception):
    """Base class for all gaze tracker errors."""


class CameraConfigError(GazeTrackerError):
    """Camera calibration file is missing, unreadable or malformed."""


class SingularTransformError(GazeTrackerError):
    """A projection matrix could not be inverted."""


class TransformLookupError(GazeTrackerError):
    """No transform between the requested frames is available."""


class TransformTimeoutError(TransformLookupError):
    """The transform lookup did not succeed within its time budget."""


class RecordingFormatError(GazeTrackerError):
    """A detection recording file does not have the expected layout."""
