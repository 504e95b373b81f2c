"""Types for dwell and zone selection."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class DwellPhase(Enum):
    """Per-target dwell phase."""

    IDLE = "idle"
    HOVERING = "hovering"
    SELECTING = "selecting"  # past the selecting ratio of the dwell time
    COMMITTED = "committed"


class SelectionMode(Enum):
    """Which selector consumes the gaze stream outside calibration."""

    DWELL = "dwell"
    ZONE = "zone"


# ---------- continuous dwell ----------

@dataclass
class DwellTarget:
    """A selectable UI target in screen px: a rect (x, y = top-left) or a circle (x, y = centre)."""

    target_id: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    radius: Optional[float] = None

    @classmethod
    def circle(cls, target_id: str, cx: float, cy: float, radius: float) -> "DwellTarget":
        return cls(target_id=target_id, x=cx, y=cy, radius=radius)

    def contains(self, px: float, py: float) -> bool:
        if self.radius is not None:
            return math.hypot(px - self.x, py - self.y) <= self.radius
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height


@dataclass
class DwellState:
    """The one active dwell."""

    target_id: str
    dwell_start: float
    progress: float = 0.0  # non-decreasing while on the same target
    locked: bool = False   # set on commit so a target fires once
    phase: DwellPhase = DwellPhase.HOVERING


@dataclass
class DwellUpdate:
    """Outcome of one dwell tick."""

    target_id: Optional[str]
    progress: float
    phase: DwellPhase
    selected: Optional[str] = None
    ambiguous: bool = False


# ---------- zones ----------

@dataclass
class Zone:
    """One cell of the 3x3 grid; bounds are in percent of the screen."""

    zone_id: int  # row * 3 + col
    name: str
    row: int
    col: int
    x: float
    y: float
    width: float
    height: float
    hovered: bool = False
    active: bool = False
    dwell_start: Optional[float] = None

    @property
    def target_id(self) -> str:
        return f"zone-{self.zone_id}"

    def contains(self, x_pct: float, y_pct: float) -> bool:
        return (
            self.x <= x_pct < self.x + self.width
            and self.y <= y_pct < self.y + self.height
        )


@dataclass
class ZoneSelection:
    """History entry for a committed zone."""

    zone_id: int
    name: str
    timestamp: float
    dwell_time_s: float


@dataclass
class ZoneStats:
    """Running selection statistics."""

    total_selections: int = 0
    zone_hit_counts: Dict[int, int] = field(default_factory=dict)
    avg_selection_time_s: float = 0.0
    history: List[ZoneSelection] = field(default_factory=list)


@dataclass
class ZoneUpdate:
    """Outcome of one zone tick."""

    zone_id: Optional[int]
    progress: float
    phase: DwellPhase
    selected: Optional[int] = None
    armed: bool = True  # False while waiting for the user to leave a just-selected zone


# ---------- learning log ----------

@dataclass
class LearningEvent:
    """One committed zone with the context it was detected in."""

    timestamp: float
    session_time_s: float
    detected_zone: int
    intended_zone: Optional[int] = None
    is_correct: Optional[bool] = None  # None until the event is labeled
    corrected: bool = False
    head_yaw: Optional[float] = None
    head_pitch: Optional[float] = None
    head_roll: Optional[float] = None
    face_x: Optional[int] = None
    face_y: Optional[int] = None
    face_width: Optional[int] = None
    face_height: Optional[int] = None
    face_confidence: Optional[float] = None
    gaze_x: Optional[float] = None
    gaze_y: Optional[float] = None
    gaze_confidence: Optional[float] = None


@dataclass
class LearningStats:
    """Running statistics of the current session."""

    accuracy_rate: int = 0  # percent of labeled events
    most_frequent_zone: Optional[int] = None
    data_quality: int = 0   # 0..100


@dataclass
class LearningSession:
    """A start/stop span of logged events."""

    session_id: str
    start_time: float
    end_time: Optional[float] = None
    events: List[LearningEvent] = field(default_factory=list)
    stats: LearningStats = field(default_factory=LearningStats)
