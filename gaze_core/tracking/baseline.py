"""Eye movement measured against a captured resting pupil position."""

from __future__ import annotations

import math
from typing import Optional, Tuple

from gaze_core.config_service import config_modules
from gaze_core.tracking.tracking_types import EyeDetection, EyeMovement, PupilPair
from gaze_core.utilities.logger_setup import setup_logger

Point = Tuple[float, float]


def _eye_point(eye: EyeDetection) -> Optional[Point]:
    return (eye.x, eye.y) if eye.is_valid() else None


class EyeBaseline:
    """Resting pupil positions of both eyes and the movement away from them.

    `set` captures the current pupils; `movement` then reports
    (pupil - baseline) * sensitivity per eye and averaged over the eyes
    tracked both now and at capture time.
    """

    def __init__(self, cfg: config_modules.Baseline) -> None:
        self.cfg = cfg
        self.logger = setup_logger("EyeBaseline")

        self.left: Optional[Point] = None
        self.right: Optional[Point] = None
        self.timestamp: Optional[float] = None

    @property
    def is_set(self) -> bool:
        return self.timestamp is not None

    @property
    def sensitivity(self) -> float:
        return self.clamp_sensitivity(self.cfg.sensitivity)

    def clamp_sensitivity(self, value: float) -> float:
        return max(self.cfg.min_sensitivity, min(self.cfg.max_sensitivity, float(value)))

    def set(self, pupils: Optional[PupilPair], now: float) -> bool:
        """Capture the current pupils; False (baseline unchanged) when no eye is detected."""
        if pupils is None or not pupils.any_detected:
            self.logger.warning("Baseline not set: no pupil detected")
            return False

        self.left = _eye_point(pupils.left)
        self.right = _eye_point(pupils.right)
        self.timestamp = now
        self.logger.info("Baseline set: left=%s right=%s", self.left, self.right)
        return True

    def reset(self) -> None:
        self.left = None
        self.right = None
        self.timestamp = None
        self.logger.info("Baseline reset")

    def movement(self, pupils: Optional[PupilPair]) -> Optional[EyeMovement]:
        """Scaled offsets from the baseline, or None without a baseline or a matching eye."""
        if not self.is_set or pupils is None:
            return None

        k = self.sensitivity
        left = self._delta(pupils.left, self.left, k)
        right = self._delta(pupils.right, self.right, k)
        deltas = [d for d in (left, right) if d is not None]
        if not deltas:
            return None

        avg = (
            sum(d[0] for d in deltas) / len(deltas),
            sum(d[1] for d in deltas) / len(deltas),
        )
        magnitude = math.hypot(*avg)
        if magnitude > self.cfg.micro_movement_px:
            self.logger.debug("Eye movement (%.1f, %.1f) magnitude %.1f", avg[0], avg[1], magnitude)
        return EyeMovement(avg_delta=avg, magnitude=magnitude, left_delta=left, right_delta=right)

    @staticmethod
    def _delta(eye: EyeDetection, base: Optional[Point], k: float) -> Optional[Point]:
        now = _eye_point(eye)
        if now is None or base is None:
            return None
        return ((now[0] - base[0]) * k, (now[1] - base[1]) * k)
