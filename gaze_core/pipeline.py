"""Per-frame pipeline: face -> pupils -> stabilized gaze -> calibration or selection."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from gaze_core.calibration import profile
from gaze_core.calibration.calibration_types import CalibrationStatus
from gaze_core.calibration.engine import CalibrationEngine
from gaze_core.config_service.config import Config
from gaze_core.errors import TrackingIssue
from gaze_core.selection.dwell import DwellSelector
from gaze_core.selection.learning_log import GazeLearningLog
from gaze_core.selection.selection_types import DwellTarget, DwellUpdate, SelectionMode, ZoneUpdate
from gaze_core.selection.zones import ZoneSelector, build_zones
from gaze_core.tracking.baseline import EyeBaseline
from gaze_core.tracking.face_region import FaceRegionEstimator, HeadPoseEstimator
from gaze_core.tracking.pupil_detector import PupilDetector, sensor_point
from gaze_core.tracking.stabilizer import GazeStabilizer
from gaze_core.tracking.tracking_types import (
    DebugFrame,
    EyeMovement,
    FaceRegion,
    Frame,
    GazeEstimate,
    HeadPose,
    PupilPair,
)
from gaze_core.utilities.logger_setup import setup_logger

if TYPE_CHECKING:
    from gaze_core.ports.interfaces import ICalibrationListener, IFaceDetector, ISelectionSink


@dataclass
class FrameResult:
    """Everything one `process_frame` call produced."""

    timestamp: float
    face: Optional[FaceRegion] = None
    head_pose: Optional[HeadPose] = None
    pupils: Optional[PupilPair] = None
    gaze: Optional[GazeEstimate] = None
    screen_point: Optional[Tuple[float, float]] = None  # calibrated, screen px
    calibration: Optional[CalibrationStatus] = None     # set while calibrating
    dwell: Optional[DwellUpdate] = None
    zone: Optional[ZoneUpdate] = None
    eye_movement: Optional[EyeMovement] = None        # set once a baseline is captured
    issues: List[TrackingIssue] = field(default_factory=list)
    debug: Optional[DebugFrame] = None
    paused: bool = False

    @property
    def selected(self) -> Optional[Union[str, int]]:
        if self.dwell is not None and self.dwell.selected is not None:
            return self.dwell.selected
        if self.zone is not None and self.zone.selected is not None:
            return self.zone.selected
        return None


class GazePipeline:
    """Synchronous gaze core: call `process_frame` once per camera frame.

    Collaborators (selection sink, calibration listener, face detector) are
    injected. All timing comes from frame timestamps.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        sink: Optional[ISelectionSink] = None,
        calibration_listener: Optional[ICalibrationListener] = None,
        face_detector: Optional[IFaceDetector] = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self.logger = setup_logger("GazePipeline")
        self.face_detector = face_detector

        cfg = self.config
        self.face_estimator = FaceRegionEstimator(cfg.face)
        self.head_pose = HeadPoseEstimator(cfg.head_pose)
        self.pupil_detector = PupilDetector(cfg.pupil)
        self.stabilizer = GazeStabilizer(cfg.stabilizer)
        self.calibration = CalibrationEngine(cfg.calibration, cfg.gate, calibration_listener, self.stabilizer)
        self.dwell = DwellSelector(cfg.dwell, sink)
        self.zones = ZoneSelector(cfg.zone, sink)
        self.baseline = EyeBaseline(cfg.baseline)
        self.learning = GazeLearningLog(cfg.learning)
        self.mode = SelectionMode(cfg.pipeline.selection_mode)
        self.paused = False
        self._last_pupils: Optional[PupilPair] = None
        self._last_ts = 0.0

        self._unsubscribe: List[Callable[[], None]] = [
            cfg.subscribe("zone", self._on_zone_config),
            cfg.subscribe("dwell", self._on_dwell_config),
            cfg.subscribe("pipeline.selection_mode", self._on_mode_config),
        ]

    @property
    def viewport(self) -> Tuple[int, int]:
        p = self.config.pipeline
        return (max(1, int(p.viewport_width)), max(1, int(p.viewport_height)))

# ---------- Frame processing ----------

    def process_frame(self, frame: Frame) -> FrameResult:
        """Run one tick. Only construction of an invalid Frame raises."""
        ts = frame.timestamp
        self._last_ts = ts
        if self.paused:
            return FrameResult(timestamp=ts, paused=True)

        issues: List[TrackingIssue] = []
        result = FrameResult(timestamp=ts, issues=issues)

        external = None
        if frame.face_box is None and self.face_detector is not None:
            external = self.face_detector.detect(frame)

        face = self.face_estimator.estimate(frame, external)
        result.face = face
        result.head_pose = self.head_pose.estimate(frame, face)

        sensor_px: Optional[Tuple[float, float]] = None
        pupils: Optional[PupilPair] = None
        if face is None:
            issues.append(TrackingIssue.NO_FACE_DETECTED)
        else:
            pupils = self.pupil_detector.detect(frame, face)
            result.pupils = pupils
            result.eye_movement = self.baseline.movement(pupils)
            if not pupils.any_detected:
                issues.append(TrackingIssue.LOW_CONFIDENCE_DETECTION)
            point = sensor_point(pupils)
            if point is not None:
                vw, vh = self.viewport
                sensor_px = (point[0] * vw, point[1] * vh)

        self._last_pupils = pupils

        gaze = self.stabilizer.update(sensor_px, pupils, ts)
        result.gaze = gaze
        if sensor_px is not None and gaze is not None and gaze.rejection == "invalid":
            issues.append(TrackingIssue.INVALID_FRAME_DATA)
        if (
            gaze is not None
            and pupils is not None
            and pupils.any_detected
            and gaze.confidence < self.config.pipeline.low_confidence
            and TrackingIssue.LOW_CONFIDENCE_DETECTION not in issues
        ):
            issues.append(TrackingIssue.LOW_CONFIDENCE_DETECTION)

        if self.calibration.is_active:
            self._calibration_tick(result, gaze, sensor_px is not None)
        else:
            self._selection_tick(result, gaze, face)

        issues.extend(self.calibration.pop_issues())

        if self.config.pipeline.debug_frames:
            result.debug = DebugFrame(
                face_box=face,
                eye_regions=(
                    pupils.left_region if pupils else None,
                    pupils.right_region if pupils else None,
                ),
                pupils=pupils,
                gaze_point=result.screen_point,
            )
        return result

    def _to_screen(self, gaze: GazeEstimate) -> Tuple[float, float]:
        vw, vh = self.viewport
        x, y = self.calibration.apply(gaze.x / vw, gaze.y / vh)
        return (x * vw, y * vh)

    def _calibration_tick(self, result: FrameResult, gaze: Optional[GazeEstimate], fresh: bool) -> None:
        vw, vh = self.viewport
        if gaze is not None and gaze.accepted and fresh:
            status = self.calibration.process_sample(gaze.raw_x / vw, gaze.raw_y / vh, gaze.confidence, result.timestamp)
        else:
            # keeps settle, timeout and test-point timers moving
            status = self.calibration.process_sample(math.nan, math.nan, 0.0, result.timestamp)
        result.calibration = status
        if gaze is not None:
            result.screen_point = self._to_screen(gaze)

    def _selection_tick(
        self,
        result: FrameResult,
        gaze: Optional[GazeEstimate],
        face: Optional[FaceRegion],
    ) -> None:
        # an estimate held over from an earlier frame is not a detection
        if gaze is not None and gaze.rejection != "invalid" and gaze.confidence > 0.0:
            result.screen_point = self._to_screen(gaze)

        if self.mode is SelectionMode.DWELL:
            confidence = gaze.confidence if result.screen_point is not None else 0.0
            update = self.dwell.update(result.screen_point, result.timestamp, confidence)
            if update.ambiguous:
                result.issues.append(TrackingIssue.SELECTION_AMBIGUOUS)
            result.dwell = update
        else:
            confidence = face.confidence if face is not None else 0.0
            result.zone = self.zones.update(result.head_pose, confidence, result.timestamp)
            if result.zone.selected is not None:
                self.learning.log_event(result.zone.selected, result.timestamp, result.head_pose, face, gaze)

# ---------- Calibration control ----------

    def start_calibration(self, viewport: Optional[Tuple[int, int]] = None) -> None:
        """Start calibrating; selection pauses until the session ends."""
        if viewport is not None:
            self.config.set("pipeline.viewport_width", int(viewport[0]))
            self.config.set("pipeline.viewport_height", int(viewport[1]))
        self.dwell.cancel()
        self.zones.cancel()
        self.stabilizer.reset()
        self.calibration.start(self.viewport)

    def skip_validation(self) -> bool:
        """Keep the fitted transform without running the accuracy test."""
        skipped = self.calibration.skip_validation()
        if skipped:
            self.stabilizer.reset()
        return skipped

    def cancel_calibration(self) -> None:
        self.calibration.cancel()
        self.stabilizer.reset()

    def reset_calibration(self) -> None:
        self.calibration.reset()
        self.stabilizer.reset()

    def export_calibration(self) -> Optional[Dict[str, Any]]:
        return self.calibration.export_profile()

    def load_calibration(self, data: Dict[str, Any]) -> None:
        self.calibration.load_profile(data)

    def save_calibration(self, path: Union[str, Path]) -> Optional[Path]:
        """Write the installed transform to a JSON file; None without one."""
        cal = self.calibration
        if cal.transform is None or cal.accuracy is None:
            return None
        return profile.save_profile(path, cal.transform, cal.accuracy, self.config.calibration.profile_version)

    def load_calibration_file(self, path: Union[str, Path]) -> None:
        transform, accuracy = profile.load_profile(path, self.config.calibration.profile_version)
        self.calibration.transform = transform
        self.calibration.accuracy = accuracy

# ---------- Session control ----------

    def pause(self) -> None:
        """Stop processing frames; a running calibration is cancelled."""
        if self.paused:
            return
        if self.calibration.is_active:
            self.calibration.cancel()
        self.cancel_selection()
        self.paused = True
        self.logger.info("Tracking paused")

    def resume(self) -> None:
        if not self.paused:
            return
        self.stabilizer.reset()
        self.head_pose.reset()
        self.paused = False
        self.logger.info("Tracking resumed")

    def set_baseline(self) -> bool:
        """Capture the most recent pupils as the resting eye position."""
        return self.baseline.set(self._last_pupils, self._last_ts)

    def reset_baseline(self) -> None:
        self.baseline.reset()

    def adjust_sensitivity(self, value: float) -> float:
        clamped = self.baseline.clamp_sensitivity(value)
        self.config.set("baseline.sensitivity", clamped)
        return clamped

    def start_learning(self) -> None:
        self.learning.start(self._last_ts)

    def stop_learning(self) -> None:
        self.learning.stop(self._last_ts)

# ---------- Selection control ----------

    def set_targets(self, targets: Iterable[DwellTarget]) -> None:
        self.dwell.set_targets(targets)

    def set_zone_config(
        self,
        grid_size: Optional[int] = None,
        dwell_time_s: Optional[float] = None,
        yaw_threshold_deg: Optional[float] = None,
        pitch_threshold_deg: Optional[float] = None,
    ) -> None:
        self.zones.set_zone_config(
            grid_size=grid_size,
            dwell_time_s=dwell_time_s,
            yaw_threshold_deg=yaw_threshold_deg,
            pitch_threshold_deg=pitch_threshold_deg,
        )

    def set_mode(self, mode: SelectionMode) -> None:
        if mode is self.mode:
            return
        self.dwell.cancel()
        self.zones.cancel()
        self.mode = mode
        self.logger.info("Selection mode: %s", mode.value)

    def cancel_selection(self) -> None:
        self.dwell.cancel()
        self.zones.cancel()

    def reset(self) -> None:
        """Clear every per-session buffer; the installed transform is kept."""
        self.calibration.cancel()
        self.stabilizer.reset()
        self.head_pose.reset()
        self.pupil_detector.reset()
        self.cancel_selection()

    def close(self) -> None:
        for unsub in self._unsubscribe:
            unsub()
        self._unsubscribe = []

# ---------- Config subscribers ----------

    def _on_zone_config(self, path: str, old: Any, new: Any) -> None:
        if path == "zone.grid_size":
            self.zones.zones = build_zones(int(new))
        self.zones.cancel()

    def _on_dwell_config(self, path: str, old: Any, new: Any) -> None:
        self.dwell.cancel()

    def _on_mode_config(self, path: str, old: Any, new: Any) -> None:
        self.set_mode(SelectionMode(new))
