"""Temporal stabilization of gaze samples and the fixation gate."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

import numpy as np

from gaze_core.config_service import config_modules
from gaze_core.tracking.tracking_types import EyeDetection, GazeEstimate, PupilPair
from gaze_core.utilities.logger_setup import setup_logger

Point = Tuple[float, float]


def is_valid_point(point: Optional[Point]) -> bool:
    """False for missing, non-finite or exact (0, 0) placeholder points."""
    if point is None:
        return False
    x, y = point
    if not (math.isfinite(x) and math.isfinite(y)):
        return False
    return not (x == 0.0 and y == 0.0)


class GazeStabilizer:
    """Outlier rejection, EMA smoothing and confidence for one gaze stream.

    Points are in sensor px. History buffers are bounded by
    `history_size`; rejected samples never enter them.
    """

    def __init__(self, cfg: config_modules.Stabilizer) -> None:
        self.cfg = cfg
        self.logger = setup_logger("GazeStabilizer")

        n = max(2, int(cfg.history_size))
        self._left: Deque[Point] = deque(maxlen=n)
        self._right: Deque[Point] = deque(maxlen=n)
        self._points: Deque[Point] = deque(maxlen=n)
        self._smoothed: Optional[Point] = None
        self._raw: Optional[Point] = None
        self._rejections = 0

# ---------- Public API ----------

    @property
    def history(self) -> List[Point]:
        """Accepted points, oldest first."""
        return list(self._points)

    def reset(self) -> None:
        """Drop every buffered sample (called at each calibration point)."""
        self._left.clear()
        self._right.clear()
        self._points.clear()
        self._smoothed = None
        self._raw = None
        self._rejections = 0

    def jump_threshold(self) -> float:
        """Adaptive outlier bound, wider after recent fast movement."""
        pts = list(self._points)
        if len(pts) < 2:
            avg_step = 0.0
        else:
            avg_step = float(np.mean([math.dist(a, b) for a, b in zip(pts, pts[1:])]))
        thr = self.cfg.min_jump_px + self.cfg.jump_gain * avg_step
        return float(np.clip(thr, self.cfg.min_jump_px, self.cfg.max_jump_px))

    def stability(self) -> float:
        """1 for a still pupil, falling to 0 at `stability_scale_px` mean displacement."""
        window = max(2, int(self.cfg.stability_window))
        per_eye = []
        for hist in (self._left, self._right):
            recent = list(hist)[-window:]
            if len(recent) < 2:
                continue
            per_eye.append(np.mean([math.dist(a, b) for a, b in zip(recent, recent[1:])]))
        if not per_eye:
            return 0.0
        return max(0.0, 1.0 - float(np.mean(per_eye)) / self.cfg.stability_scale_px)

    def update(
        self,
        point: Optional[Point],
        pupils: Optional[PupilPair],
        timestamp: float,
    ) -> Optional[GazeEstimate]:
        """Feed one frame; returns None until a first valid sample arrives."""
        left = pupils.left if pupils is not None else EyeDetection()
        right = pupils.right if pupils is not None else EyeDetection()
        for det, hist in ((left, self._left), (right, self._right)):
            if det.is_valid():
                hist.append((det.x, det.y))

        stability = self.stability()
        lc = left.confidence if left.is_valid() else 0.0
        rc = right.confidence if right.is_valid() else 0.0
        if left.is_valid() or right.is_valid():
            confidence = (lc + rc + stability) / 3.0
        else:
            confidence = 0.0

        if not is_valid_point(point):
            return self._estimate(timestamp, 0.0, stability, accepted=False, rejection="invalid")

        x, y = float(point[0]), float(point[1])

        if self._points:
            mx = float(np.mean([p[0] for p in self._points]))
            my = float(np.mean([p[1] for p in self._points]))
            jump = math.hypot(x - mx, y - my)
            limit = self.jump_threshold()
            if jump > limit:
                self._rejections += 1
                if self._rejections < self.cfg.reanchor_after:
                    self.logger.debug("Rejected %.0f px jump (limit %.0f)", jump, limit)
                    return self._estimate(timestamp, confidence, stability, accepted=False, rejection="outlier")
                self.logger.info("Re-anchoring after %d consecutive jumps", self._rejections)
                self._points.clear()
                self._smoothed = None

        self._rejections = 0
        self._points.append((x, y))
        self._raw = (x, y)

        if self._smoothed is None or not self.cfg.smoothing_enabled:
            self._smoothed = (x, y)
        else:
            a = self.cfg.smoothing_alpha
            sx, sy = self._smoothed
            self._smoothed = (a * x + (1.0 - a) * sx, a * y + (1.0 - a) * sy)

        return self._estimate(timestamp, confidence, stability)

# ---------- Internals ----------

    def _estimate(
        self,
        timestamp: float,
        confidence: float,
        stability: float,
        accepted: bool = True,
        rejection: Optional[str] = None,
    ) -> Optional[GazeEstimate]:
        if self._smoothed is None or self._raw is None:
            return None
        return GazeEstimate(
            x=self._smoothed[0],
            y=self._smoothed[1],
            raw_x=self._raw[0],
            raw_y=self._raw[1],
            confidence=confidence,
            stability=stability,
            timestamp=timestamp,
            accepted=accepted,
            rejection=rejection,
        )


# ---------- Stability gate ----------

@dataclass
class GateReport:
    """Outcome of one gate evaluation; `failed` names the unmet criteria."""

    stable: bool
    failed: List[str] = field(default_factory=list)
    samples: int = 0
    mean: float = 0.0
    std: float = 0.0
    jump_ratio: float = 0.0


class StabilityGate:
    """Multi-criterion fixation test over a sliding time window.

    Each sample carries a distance to its reference (target or fixation
    centre). A sample is stable only when every criterion holds:
    distance, sample count, window mean, window std, jump ratio,
    no upward trend and the most recent samples individually.
    """

    def __init__(self, cfg: config_modules.Gate) -> None:
        self.cfg = cfg
        self._samples: Deque[Tuple[float, float, float, float]] = deque()  # (t, x, y, distance)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def add(self, x: float, y: float, distance: float, now: float) -> None:
        self._samples.append((now, x, y, distance))
        horizon = now - self.cfg.window_s
        while self._samples and self._samples[0][0] < horizon:
            self._samples.popleft()

    def fixation_distance(self, x: float, y: float) -> float:
        """Distance from (x, y) to the mean of the window including (x, y)."""
        xs = [s[1] for s in self._samples] + [x]
        ys = [s[2] for s in self._samples] + [y]
        return math.hypot(x - float(np.mean(xs)), y - float(np.mean(ys)))

    def evaluate(self, distance: float, now: Optional[float] = None) -> GateReport:
        """Check every criterion; with `now`, samples older than the window are ignored."""
        cfg = self.cfg
        threshold = cfg.accuracy_threshold_px
        failed: List[str] = []

        window = list(self._samples)
        if now is not None:
            window = [s for s in window if s[0] >= now - cfg.window_s]
        d = np.array([s[3] for s in window], dtype=np.float64)
        n = int(d.size)

        if not distance < threshold:
            failed.append("distance")
        if n < cfg.min_samples:
            failed.append("samples")
            return GateReport(stable=False, failed=failed, samples=n)

        mean = float(d.mean())
        std = float(d.std())
        if not mean < cfg.mean_ratio * threshold:
            failed.append("mean")
        if not std < cfg.max_std_px:
            failed.append("std")

        xy = np.array([(s[1], s[2]) for s in window], dtype=np.float64)
        steps = np.hypot(*np.diff(xy, axis=0).T)
        jump_ratio = float(np.count_nonzero(steps > cfg.jump_step_px)) / max(1, steps.size)
        if not jump_ratio < cfg.max_jump_ratio:
            failed.append("jumps")

        half = n // 2
        if half and float(d[half:].mean()) > float(d[:half].mean()) + cfg.trend_tolerance_px:
            failed.append("trend")

        recent = d[-max(1, int(cfg.recent_count)):]
        if not bool(np.all(recent < threshold)):
            failed.append("recent")

        return GateReport(
            stable=not failed,
            failed=failed,
            samples=n,
            mean=mean,
            std=std,
            jump_ratio=jump_ratio,
        )

    def is_stable(self, distance: float, now: Optional[float] = None) -> bool:
        return self.evaluate(distance, now).stable
