"""Types for the calibration procedure and its fitted transform."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from gaze_core.errors import TrackingIssue

# ---------- procedure ----------

class CalibrationState(Enum):
    """Calibration engine state."""

    IDLE = "idle"
    RUNNING = "running"
    VALIDATING = "validating"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class PointMode(Enum):
    """Calibration grid layout."""

    NINE = "nine"
    THIRTEEN = "thirteen"


class GateReference(Enum):
    """What the stability gate measures distance against."""

    FIXATION = "fixation"  # mean of the recent window (raw gaze is uncalibrated)
    TARGET = "target"      # current target through the provisional transform


class AccuracyRating(Enum):
    """Quality tier of an overall accuracy score."""

    EXCELLENT = "excellent"  # >= 0.8
    GOOD = "good"            # >= 0.6
    FAIR = "fair"            # >= 0.4
    POOR = "poor"


@dataclass
class CalibrationPoint:
    """A calibration target in normalized screen coordinates."""

    point_id: int
    x: float  # 0..1
    y: float  # 0..1
    label: str = ""


@dataclass
class CalibrationSample:
    """Raw sensor reading recorded while fixating a target."""

    point_id: int
    target_x: float  # normalized 0..1
    target_y: float
    raw_x: float     # normalized sensor space
    raw_y: float
    confidence: float
    timestamp: float


# ---------- fitted model ----------

def _zero_corrections() -> List[Tuple[float, float]]:
    return [(0.0, 0.0), (0.0, 0.0), (0.0, 0.0), (0.0, 0.0)]


@dataclass
class CalibrationTransform:
    """Raw sensor -> normalized screen mapping.

    quadrant_correction is indexed 0=top-left, 1=top-right,
    2=bottom-left, 3=bottom-right of the linearly mapped point.
    """

    scale_x: float = 1.0
    scale_y: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    skew_x: float = 0.0  # contribution of raw y to screen x
    skew_y: float = 0.0  # contribution of raw x to screen y
    quadrant_correction: List[Tuple[float, float]] = field(default_factory=_zero_corrections)


@dataclass
class CalibrationAccuracy:
    """Accuracy scores in 0..1."""

    overall: float = 0.0
    horizontal: float = 0.0
    vertical: float = 0.0
    stability: float = 0.0


@dataclass
class ValidationPointResult:
    """Accuracy-test measurements for one test point."""

    point: CalibrationPoint
    samples: int
    valid_ratio: float
    mean_distance_px: float
    std_px: float
    mean_dx_px: float
    mean_dy_px: float
    dispersion_score: float
    score: float


@dataclass
class CalibrationResult:
    """Terminal calibration event."""

    success: bool
    accuracy: CalibrationAccuracy
    transform: Optional[CalibrationTransform] = None
    needs_recalibration: bool = False
    timed_out_points: List[int] = field(default_factory=list)
    validation: List[ValidationPointResult] = field(default_factory=list)
    issues: List[TrackingIssue] = field(default_factory=list)
    message: str = ""
    rating: AccuracyRating = AccuracyRating.POOR
    recommendation: str = ""
    # per-point mean distances of the accuracy test, screen px; None without a test
    mean_distance_px: Optional[float] = None
    best_distance_px: Optional[float] = None
    worst_distance_px: Optional[float] = None
    validation_skipped: bool = False


@dataclass
class CalibrationStatus:
    """Snapshot of the engine for a host UI, attached to each frame result."""

    state: CalibrationState
    point_index: int = -1
    point_count: int = 0
    progress: float = 0.0
    target: Optional[Tuple[float, float]] = None  # normalized
    locked: bool = False
