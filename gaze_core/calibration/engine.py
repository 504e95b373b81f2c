"""Tick-driven calibration state machine: fixation per point, fit, accuracy test."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import gaze_core.calibration.calibration_types as ct
from gaze_core.calibration import fit, profile
from gaze_core.config_service import config_modules
from gaze_core.errors import CalibrationFitError, TrackingIssue
from gaze_core.tracking.stabilizer import StabilityGate
from gaze_core.utilities.logger_setup import setup_logger

if TYPE_CHECKING:
    from gaze_core.ports.interfaces import ICalibrationListener
    from gaze_core.tracking.stabilizer import GazeStabilizer


@dataclass
class _Session:
    """All per-session state; replaced wholesale on start/cancel/reset."""

    session_id: int = 0
    state: ct.CalibrationState = ct.CalibrationState.IDLE
    viewport: Tuple[int, int] = (1, 1)
    points: List[ct.CalibrationPoint] = field(default_factory=list)
    samples: List[ct.CalibrationSample] = field(default_factory=list)
    timed_out: List[int] = field(default_factory=list)
    issues: List[TrackingIssue] = field(default_factory=list)

    # current calibration point
    index: int = 0
    point_started: Optional[float] = None
    last_sample_t: Optional[float] = None
    stable_s: float = 0.0
    progress: float = 0.0
    locked_at: Optional[float] = None

    # accuracy test
    fitted: Optional[ct.CalibrationTransform] = None
    test_points: List[ct.CalibrationPoint] = field(default_factory=list)
    test_index: int = 0
    test_started: Optional[float] = None
    test_samples: List[Tuple[float, float]] = field(default_factory=list)
    test_total: int = 0
    test_scored: bool = False
    test_results: List[ct.ValidationPointResult] = field(default_factory=list)


class CalibrationEngine:
    """Learns the raw -> screen transform from fixations on known targets.

    Feed one stabilized raw sample (normalized sensor space) per frame via
    `process_sample`. Timing uses the sample timestamps only, so a session
    is fully deterministic for a given input stream.
    """

    def __init__(
        self,
        cfg: config_modules.Calibration,
        gate_cfg: config_modules.Gate,
        listener: Optional[ICalibrationListener] = None,
        stabilizer: Optional[GazeStabilizer] = None,
    ) -> None:
        self.cfg = cfg
        self.gate_cfg = gate_cfg
        self.listener = listener
        self.stabilizer = stabilizer
        self.logger = setup_logger("CalibrationEngine")

        self.gate = StabilityGate(gate_cfg)
        self.transform: Optional[ct.CalibrationTransform] = None
        self.accuracy: Optional[ct.CalibrationAccuracy] = None
        self.last_result: Optional[ct.CalibrationResult] = None

        self._session_counter = 0
        self._session = _Session()
        self._pending_issues: List[TrackingIssue] = []

# ---------- Properties ----------

    @property
    def state(self) -> ct.CalibrationState:
        return self._session.state

    @property
    def session_id(self) -> int:
        return self._session.session_id

    @property
    def is_active(self) -> bool:
        return self._session.state in (ct.CalibrationState.RUNNING, ct.CalibrationState.VALIDATING)

    @property
    def points(self) -> List[ct.CalibrationPoint]:
        return list(self._session.points)

    @property
    def current_target(self) -> Optional[Tuple[float, float]]:
        """Normalized position the user should look at now, if any."""
        s = self._session
        if s.state is ct.CalibrationState.RUNNING and s.index < len(s.points):
            p = s.points[s.index]
            return (p.x, p.y)
        if s.state is ct.CalibrationState.VALIDATING and s.test_index < len(s.test_points):
            p = s.test_points[s.test_index]
            return (p.x, p.y)
        return None

    def status(self) -> ct.CalibrationStatus:
        s = self._session
        if s.state is ct.CalibrationState.VALIDATING:
            index, count = s.test_index, len(s.test_points)
        else:
            index, count = s.index, len(s.points)
        return ct.CalibrationStatus(
            state=s.state,
            point_index=index if self.is_active else -1,
            point_count=count,
            progress=s.progress,
            target=self.current_target,
            locked=s.locked_at is not None,
        )

    def pop_issues(self) -> List[TrackingIssue]:
        """Issues raised since the last call (for the per-frame result)."""
        issues, self._pending_issues = self._pending_issues, []
        return issues

# ---------- Control ----------

    def start(self, viewport: Tuple[int, int]) -> None:
        """Begin a new session, replacing any session in progress."""
        if self.is_active:
            self.logger.warning("Calibration %d replaced by a new session", self._session.session_id)

        mode = ct.PointMode(self.cfg.point_mode)
        self._session_counter += 1
        self._session = _Session(
            session_id=self._session_counter,
            state=ct.CalibrationState.RUNNING,
            viewport=(max(1, int(viewport[0])), max(1, int(viewport[1]))),
            points=fit.calibration_points(mode, self.cfg.margin),
            test_points=fit.validation_points(self.cfg.validation_margin),
        )
        self._pending_issues = []
        self._enter_point()
        self.logger.info(
            "Calibration %d started: %d points, viewport %dx%d",
            self._session.session_id, len(self._session.points), *self._session.viewport,
        )

    def cancel(self) -> None:
        """Abort the running session; the installed transform is kept."""
        if not self.is_active:
            return
        self.logger.info("Calibration %d cancelled", self._session.session_id)
        self._session_counter += 1
        self._session = _Session(session_id=self._session_counter, state=ct.CalibrationState.CANCELLED)
        self.gate.clear()
        self._pending_issues = []

    def skip_validation(self) -> bool:
        """End the accuracy test early and keep the fitted transform.

        The result reports `skipped_validation_accuracy` as its accuracy.
        Returns False when no accuracy test is running.
        """
        s = self._session
        if s.state is not ct.CalibrationState.VALIDATING or s.fitted is None:
            return False
        self.logger.info(
            "Calibration %d: accuracy test skipped after %d of %d points",
            s.session_id, len(s.test_results), len(s.test_points),
        )
        a = self.cfg.skipped_validation_accuracy
        self._complete(
            s.fitted,
            ct.CalibrationAccuracy(overall=a, horizontal=a, vertical=a, stability=a),
            message="accuracy test skipped",
            skipped=True,
        )
        return True

    def reset(self) -> None:
        """Abort any session and forget the fitted transform."""
        self._session_counter += 1
        self._session = _Session(session_id=self._session_counter)
        self.gate.clear()
        self._pending_issues = []
        self.transform = None
        self.accuracy = None
        self.last_result = None
        self.logger.info("Calibration reset")

# ---------- Runtime mapping ----------

    def apply(self, raw_x: float, raw_y: float) -> Tuple[float, float]:
        """Map a raw sensor point through the installed transform (identity if none)."""
        t = self.transform if self.transform is not None else ct.CalibrationTransform()
        return fit.apply_transform(t, raw_x, raw_y)

    def export_profile(self) -> Optional[Dict[str, Any]]:
        if self.transform is None or self.accuracy is None:
            return None
        return profile.to_profile(self.transform, self.accuracy, self.cfg.profile_version)

    def load_profile(self, data: Dict[str, Any]) -> None:
        """Install a stored transform; raises CalibrationProfileError on bad data."""
        transform, accuracy = profile.from_profile(data, self.cfg.profile_version)
        self.transform = transform
        self.accuracy = accuracy
        self.logger.info("Loaded calibration profile (overall accuracy %.2f)", accuracy.overall)

# ---------- Per-sample processing ----------

    def process_sample(
        self,
        raw_x: float,
        raw_y: float,
        confidence: float,
        now: float,
    ) -> ct.CalibrationStatus:
        """Advance the session by one stabilized sample."""
        if self._session.state is ct.CalibrationState.RUNNING:
            self._run_point(raw_x, raw_y, confidence, now)
        elif self._session.state is ct.CalibrationState.VALIDATING:
            self._run_test_point(raw_x, raw_y, confidence, now)
        return self.status()

    def _sample_ok(self, raw_x: float, raw_y: float, confidence: float) -> bool:
        return (
            math.isfinite(raw_x)
            and math.isfinite(raw_y)
            and math.isfinite(confidence)
            and confidence >= self.cfg.min_sample_confidence
        )

    def _run_point(self, raw_x: float, raw_y: float, confidence: float, now: float) -> None:
        cfg = self.cfg
        s = self._session
        point = s.points[s.index]

        if s.point_started is None:
            s.point_started = now
            s.last_sample_t = now

        if s.locked_at is not None:
            if now - s.locked_at >= cfg.settle_delay_s:
                self._advance(now)
            return

        if now - s.point_started > cfg.timeout_factor * cfg.required_stable_s:
            self.logger.warning(
                "Point %d (%s) timed out after %.1f s, advancing",
                s.index, point.label, now - s.point_started,
            )
            s.timed_out.append(point.point_id)
            if TrackingIssue.CALIBRATION_TIMEOUT not in s.issues:
                s.issues.append(TrackingIssue.CALIBRATION_TIMEOUT)
            self._pending_issues.append(TrackingIssue.CALIBRATION_TIMEOUT)
            self._advance(now)
            return

        dt = max(0.0, now - (s.last_sample_t if s.last_sample_t is not None else now))
        s.last_sample_t = now

        if not self._sample_ok(raw_x, raw_y, confidence):
            s.stable_s = 0.0
            s.progress = 0.0
            self._emit_progress(s.index, 0.0)
            return

        vw, vh = s.viewport
        px, py = raw_x * vw, raw_y * vh
        if ct.GateReference(cfg.gate_reference) is ct.GateReference.TARGET:
            mx, my = self.apply(raw_x, raw_y)
            distance = math.hypot(mx * vw - point.x * vw, my * vh - point.y * vh)
        else:
            distance = self.gate.fixation_distance(px, py)

        self.gate.add(px, py, distance, now)
        if self.gate.is_stable(distance, now):
            s.stable_s += dt
            s.samples.append(ct.CalibrationSample(
                point.point_id, point.x, point.y, raw_x, raw_y, confidence, now,
            ))
        else:
            s.stable_s = 0.0

        required = cfg.required_stable_s
        if distance < cfg.fast_track_ratio * self.gate_cfg.accuracy_threshold_px:
            required *= cfg.fast_track_factor
        s.progress = min(s.stable_s / required, 1.0) if required > 0 else 1.0
        self._emit_progress(s.index, s.progress)

        if s.progress >= 1.0:
            for _ in range(cfg.burst_samples):
                s.samples.append(ct.CalibrationSample(
                    point.point_id, point.x, point.y, raw_x, raw_y, confidence, now,
                ))
            s.locked_at = now
            self.logger.info("Point %d (%s) complete", s.index, point.label)

    def _enter_point(self) -> None:
        s = self._session
        s.point_started = None
        s.last_sample_t = None
        s.stable_s = 0.0
        s.progress = 0.0
        s.locked_at = None
        self.gate.clear()
        if self.stabilizer is not None:
            self.stabilizer.reset()

    def _advance(self, now: float) -> None:
        s = self._session
        s.index += 1
        if s.index >= len(s.points):
            self._finish_points(now)
            return
        self._enter_point()

    def _finish_points(self, now: float) -> None:
        s = self._session
        try:
            transform = fit.fit_linear_transform(s.samples, self.cfg.min_points)
        except (CalibrationFitError, FloatingPointError, OverflowError) as e:
            self.logger.warning("Calibration %d fit failed: %s", s.session_id, e)
            self._complete(None, ct.CalibrationAccuracy(), message=str(e))
            return

        self.logger.info(
            "Fitted transform: scale=(%.3f, %.3f) offset=(%.3f, %.3f)",
            transform.scale_x, transform.scale_y, transform.offset_x, transform.offset_y,
        )

        if not self.cfg.validate:
            self._complete(transform, fit.fit_accuracy(transform, s.samples))
            return

        s.fitted = transform
        s.state = ct.CalibrationState.VALIDATING
        s.progress = 0.0
        s.test_index = 0
        s.test_started = now
        s.test_samples = []
        s.test_total = 0
        s.test_scored = False
        self.gate.clear()

    def _run_test_point(self, raw_x: float, raw_y: float, confidence: float, now: float) -> None:
        cfg = self.cfg
        s = self._session
        if s.fitted is None:
            return
        if s.test_started is None:
            s.test_started = now

        elapsed = now - s.test_started
        lead, dur = cfg.validation_lead_in_s, cfg.validation_duration_s

        if elapsed < lead:
            s.progress = 0.0
            return

        if elapsed < lead + dur:
            s.test_total += 1
            if self._sample_ok(raw_x, raw_y, confidence):
                x, y = fit.apply_transform(s.fitted, raw_x, raw_y)
                s.test_samples.append((x * s.viewport[0], y * s.viewport[1]))
            s.progress = (elapsed - lead) / dur
            return

        if not s.test_scored:
            point = s.test_points[s.test_index]
            result = fit.score_validation_point(point, s.test_samples, s.test_total, s.viewport, cfg)
            s.test_results.append(result)
            s.test_scored = True
            s.progress = 1.0
            self.logger.debug(
                "Test point %d: mean %.1f px, std %.1f px, score %.2f",
                point.point_id, result.mean_distance_px, result.std_px, result.score,
            )

        last = s.test_index >= len(s.test_points) - 1
        if last or elapsed >= lead + dur + cfg.validation_gap_s:
            s.test_index += 1
            if s.test_index >= len(s.test_points):
                self._complete(s.fitted, fit.validation_accuracy(s.test_results, cfg))
                return
            s.test_started = now
            s.test_samples = []
            s.test_total = 0
            s.test_scored = False
            s.progress = 0.0

    def _complete(
        self,
        transform: Optional[ct.CalibrationTransform],
        accuracy: ct.CalibrationAccuracy,
        message: str = "",
        skipped: bool = False,
    ) -> None:
        s = self._session
        issues = list(s.issues)
        success = transform is not None and accuracy.overall >= self.cfg.accuracy_threshold
        rating, recommendation = fit.rate_accuracy(accuracy.overall)
        mean_d, best_d, worst_d = fit.distance_summary(s.test_results)

        if transform is not None:
            # installed even below threshold; the host decides whether to recalibrate
            self.transform = transform
            self.accuracy = accuracy
            if not success:
                self.logger.warning(
                    "Calibration accuracy %.2f below threshold %.2f",
                    accuracy.overall, self.cfg.accuracy_threshold,
                )
                issues.append(TrackingIssue.CALIBRATION_LOW_ACCURACY)
                self._pending_issues.append(TrackingIssue.CALIBRATION_LOW_ACCURACY)

        result = ct.CalibrationResult(
            success=success,
            accuracy=accuracy,
            transform=transform,
            needs_recalibration=not success,
            timed_out_points=list(s.timed_out),
            validation=list(s.test_results),
            issues=issues,
            message=message,
            rating=rating,
            recommendation=recommendation,
            mean_distance_px=mean_d,
            best_distance_px=best_d,
            worst_distance_px=worst_d,
            validation_skipped=skipped,
        )
        s.state = ct.CalibrationState.COMPLETE
        s.progress = 1.0 if transform is not None else 0.0
        self.last_result = result
        self.gate.clear()

        self.logger.info(
            "Calibration %d complete: success=%s overall=%.2f (%s) h=%.2f v=%.2f stability=%.2f",
            s.session_id, success, accuracy.overall, rating.value, accuracy.horizontal,
            accuracy.vertical, accuracy.stability,
        )
        if self.listener is not None:
            try:
                self.listener.on_calibration_complete(result)
            except (RuntimeError, ValueError, TypeError) as e:
                self.logger.error("Calibration listener failed: %s", e)

    def _emit_progress(self, index: int, progress: float) -> None:
        if self.listener is None:
            return
        try:
            self.listener.on_calibration_progress(index, progress)
        except (RuntimeError, ValueError, TypeError) as e:
            self.logger.error("Calibration listener failed: %s", e)
