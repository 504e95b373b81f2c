"""Exception hierarchy and per-frame issue codes."""

from enum import Enum


class GazeCoreError(Exception):
    """Base class for every error raised by gaze_core."""


class InvalidFrameError(GazeCoreError, ValueError):
    """Frame buffer does not match its declared dimensions."""


class CalibrationFitError(GazeCoreError, ValueError):
    """Calibration samples are insufficient or degenerate for a fit."""


class CalibrationProfileError(GazeCoreError, ValueError):
    """A stored calibration profile is malformed or has the wrong version."""


class ConfigError(GazeCoreError, ValueError):
    """Unknown config path or uncoercible value."""


class TrackingIssue(Enum):
    """Recoverable conditions reported alongside a frame result."""

    NO_FACE_DETECTED = "no_face_detected"
    LOW_CONFIDENCE_DETECTION = "low_confidence_detection"
    INVALID_FRAME_DATA = "invalid_frame_data"
    CALIBRATION_TIMEOUT = "calibration_timeout"
    CALIBRATION_LOW_ACCURACY = "calibration_low_accuracy"
    SELECTION_AMBIGUOUS = "selection_ambiguous"
