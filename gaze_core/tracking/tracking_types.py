"""Types shared by face, pupil and gaze tracking."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from gaze_core.errors import InvalidFrameError

PixelBuffer = Union[bytes, bytearray, memoryview, NDArray[np.uint8]]


# ---------- frame input ----------

@dataclass
class FaceRegion:
    """Face bounding box in frame pixels."""

    x: int
    y: int
    width: int
    height: int
    confidence: float = 0.0  # 0..1
    source: str = "external"  # "external" or "skin"

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclass
class HeadPose:
    """Head orientation in degrees (positive yaw = turned left in camera view)."""

    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0


@dataclass
class Frame:
    """One RGBA camera frame handed to the core.

    Raises InvalidFrameError when the buffer does not hold exactly
    width * height * 4 bytes or a dimension is not positive.
    """

    pixels: PixelBuffer
    width: int
    height: int
    timestamp: float  # seconds, monotonic
    face_box: Optional[FaceRegion] = None
    head_pose: Optional[HeadPose] = None

    def __post_init__(self) -> None:
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise InvalidFrameError(f"frame dimensions must be positive, got {self.width}x{self.height}")
        if not math.isfinite(self.timestamp):
            raise InvalidFrameError("frame timestamp must be finite")

        expected = int(self.width) * int(self.height) * 4
        if isinstance(self.pixels, np.ndarray):
            if self.pixels.dtype != np.uint8:
                raise InvalidFrameError(f"pixel array must be uint8, got {self.pixels.dtype}")
            size = int(self.pixels.size)
        else:
            size = len(memoryview(self.pixels).cast("B"))
        if size != expected:
            raise InvalidFrameError(
                f"pixel buffer has {size} bytes, expected {expected} for "
                f"{self.width}x{self.height} RGBA"
            )

    def rgba(self) -> NDArray[np.uint8]:
        """Pixels as a (height, width, 4) uint8 view (no copy for contiguous input)."""
        if isinstance(self.pixels, np.ndarray):
            return self.pixels.reshape(self.height, self.width, 4)
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(self.height, self.width, 4)


# ---------- pupil detection ----------

class DetectionMethod(Enum):
    """Pupil detection variants fused by confidence."""

    DARK_CIRCLE = "dark_circle"
    EDGE = "edge"
    COLOR = "color"
    PARTIAL = "partial"


@dataclass
class EyeRegion:
    """Eye search box in frame pixels."""

    x: int
    y: int
    width: int
    height: int


@dataclass
class EyeDetection:
    """A pupil candidate for one eye, in frame pixels."""

    x: float = 0.0
    y: float = 0.0
    radius: float = 0.0
    confidence: float = 0.0
    detected: bool = False
    method: Optional[DetectionMethod] = None

    def is_valid(self) -> bool:
        return (
            self.detected
            and math.isfinite(self.x)
            and math.isfinite(self.y)
            and math.isfinite(self.confidence)
        )


@dataclass
class PupilPair:
    """Fused detections for both eyes of one frame."""

    left: EyeDetection = field(default_factory=EyeDetection)
    right: EyeDetection = field(default_factory=EyeDetection)
    left_region: Optional[EyeRegion] = None
    right_region: Optional[EyeRegion] = None
    working_scale: float = 1.0

    @property
    def any_detected(self) -> bool:
        return self.left.is_valid() or self.right.is_valid()


# ---------- stabilized gaze ----------

@dataclass
class GazeEstimate:
    """Stabilized gaze in sensor px (normalized sensor point * viewport)."""

    x: float
    y: float
    raw_x: float  # last accepted sample before smoothing
    raw_y: float
    confidence: float  # (left + right + stability) / 3, 0 with no eye
    stability: float
    timestamp: float
    accepted: bool = True  # False when this frame's sample was rejected
    rejection: Optional[str] = None  # "invalid" or "outlier" when not accepted


@dataclass
class DebugFrame:
    """Optional per-frame overlay data for a host UI."""

    face_box: Optional[FaceRegion] = None
    eye_regions: Tuple[Optional[EyeRegion], Optional[EyeRegion]] = (None, None)
    pupils: Optional[PupilPair] = None
    gaze_point: Optional[Tuple[float, float]] = None  # screen px


@dataclass
class EyeMovement:
    """Pupil offsets from the baseline in frame px, multiplied by the sensitivity."""

    avg_delta: Tuple[float, float]
    magnitude: float
    left_delta: Optional[Tuple[float, float]] = None   # None when the eye is not tracked
    right_delta: Optional[Tuple[float, float]] = None
