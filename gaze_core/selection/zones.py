"""Discrete 3x3 zone selection driven by head pose."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from gaze_core.config_service import config_modules
from gaze_core.selection.selection_types import DwellPhase, Zone, ZoneSelection, ZoneStats, ZoneUpdate
from gaze_core.tracking.tracking_types import HeadPose
from gaze_core.utilities.logger_setup import setup_logger

if TYPE_CHECKING:
    from gaze_core.ports.interfaces import ISelectionSink

_ROW_NAMES = ("top", "middle", "bottom")
_COL_NAMES = ("left", "center", "right")


def zone_name(row: int, col: int) -> str:
    if row == 1 and col == 1:
        return "center"
    return f"{_ROW_NAMES[row]}-{_COL_NAMES[col]}"


def build_zones(grid_size: int = 3) -> List[Zone]:
    """The 3x3 zone set, row-major, with bounds in percent."""
    if grid_size != 3:
        raise ValueError(f"only a 3x3 zone grid is supported, got {grid_size}")
    cell = 100.0 / grid_size
    return [
        Zone(
            zone_id=row * grid_size + col,
            name=zone_name(row, col),
            row=row,
            col=col,
            x=col * cell,
            y=row * cell,
            width=cell,
            height=cell,
        )
        for row in range(grid_size)
        for col in range(grid_size)
    ]


def _axis_index(
    value: float,
    threshold: float,
    hysteresis: float,
    current: Optional[int],
    positive: int,
    negative: int,
) -> int:
    """Grid index (0..2) for one axis; leaving the current index costs `hysteresis` degrees."""
    if hysteresis > 0 and current is not None:
        if current == positive and value > threshold - hysteresis:
            return positive
        if current == negative and value < -(threshold - hysteresis):
            return negative
        enter = threshold + hysteresis if current == 1 else threshold
    else:
        enter = threshold
    if value > enter:
        return positive
    if value < -enter:
        return negative
    return 1


class ZoneSelector:
    """Maps yaw/pitch to one of nine zones and selects it by dwell.

    Yaw above the threshold picks the left column and below its negative
    the right column; pitch below the negative threshold picks the top row
    and above it the bottom row. Comparisons are strict.
    """

    def __init__(
        self,
        cfg: config_modules.Zone,
        sink: Optional[ISelectionSink] = None,
    ) -> None:
        self.cfg = cfg
        self.sink = sink
        self.logger = setup_logger("ZoneSelector")

        self.zones = build_zones(cfg.grid_size)
        self.stats = ZoneStats()

        self._current: Optional[Zone] = None
        self._progress = 0.0
        self._awaiting_exit: Optional[int] = None

# ---------- Public API ----------

    @property
    def current_zone(self) -> Optional[Zone]:
        return self._current

    def set_zone_config(
        self,
        grid_size: Optional[int] = None,
        dwell_time_s: Optional[float] = None,
        yaw_threshold_deg: Optional[float] = None,
        pitch_threshold_deg: Optional[float] = None,
        confidence_threshold: Optional[float] = None,
        hysteresis_deg: Optional[float] = None,
    ) -> None:
        """Update zone parameters; the active dwell is reset."""
        if grid_size is not None:
            self.zones = build_zones(grid_size)
            self.cfg.grid_size = grid_size
        if dwell_time_s is not None:
            self.cfg.dwell_time_s = float(dwell_time_s)
        if yaw_threshold_deg is not None:
            self.cfg.yaw_threshold_deg = float(yaw_threshold_deg)
        if pitch_threshold_deg is not None:
            self.cfg.pitch_threshold_deg = float(pitch_threshold_deg)
        if confidence_threshold is not None:
            self.cfg.confidence_threshold = float(confidence_threshold)
        if hysteresis_deg is not None:
            self.cfg.hysteresis_deg = float(hysteresis_deg)
        self.cancel()
        self.logger.info("Zone config updated: %s", self.cfg)

    def classify(self, pose: Optional[HeadPose], confidence: float) -> Optional[Zone]:
        """Zone the head pose points at, or None for low confidence / no pose."""
        if pose is None or confidence < self.cfg.confidence_threshold:
            return None
        cur = self._current
        h = self.cfg.hysteresis_deg
        col = _axis_index(pose.yaw, self.cfg.yaw_threshold_deg, h,
                          cur.col if cur else None, positive=0, negative=2)
        row = _axis_index(pose.pitch, self.cfg.pitch_threshold_deg, h,
                          cur.row if cur else None, positive=2, negative=0)
        return self.zones[row * 3 + col]

    def get_zone_by_coordinates(self, x_pct: float, y_pct: float) -> Optional[Zone]:
        """Zone containing a screen position given in percent."""
        if not (0.0 <= x_pct <= 100.0 and 0.0 <= y_pct <= 100.0):
            return None
        x = min(x_pct, 99.999)
        y = min(y_pct, 99.999)
        for zone in self.zones:
            if zone.contains(x, y):
                return zone
        return None

    def get_zone(self, zone_id: int) -> Optional[Zone]:
        for zone in self.zones:
            if zone.zone_id == zone_id:
                return zone
        return None

    def cancel(self) -> None:
        """Drop the current dwell and re-arm every zone."""
        self._clear_dwell()
        self._current = None
        self._awaiting_exit = None

    def reset_stats(self) -> None:
        self.stats = ZoneStats()

    def update(self, pose: Optional[HeadPose], confidence: float, now: float) -> ZoneUpdate:
        """Advance zone selection with this frame's head pose."""
        zone = self.classify(pose, confidence)
        zone_id = zone.zone_id if zone is not None else None
        prev_id = self._current.zone_id if self._current is not None else None

        if zone_id != prev_id:
            self._clear_dwell()
            self._current = zone
            if self._awaiting_exit is not None and zone_id != self._awaiting_exit:
                self._awaiting_exit = None
            if zone is None:
                return ZoneUpdate(None, 0.0, DwellPhase.IDLE)
            if self._awaiting_exit is None:
                self._start_dwell(zone, now)

        if zone is None:
            return ZoneUpdate(None, 0.0, DwellPhase.IDLE)

        if self._awaiting_exit == zone.zone_id or zone.dwell_start is None:
            return ZoneUpdate(zone.zone_id, 0.0, DwellPhase.COMMITTED, armed=False)

        elapsed = now - zone.dwell_start
        dwell = self.cfg.dwell_time_s
        self._progress = max(self._progress, min(elapsed / dwell, 1.0) if dwell > 0 else 1.0)
        self._emit_progress(zone.target_id, self._progress)

        if self._progress >= 1.0:
            self._commit(zone, elapsed, now)
            return ZoneUpdate(zone.zone_id, 1.0, DwellPhase.COMMITTED, selected=zone.zone_id)

        phase = DwellPhase.SELECTING if self._progress >= 0.5 else DwellPhase.HOVERING
        return ZoneUpdate(zone.zone_id, self._progress, phase)

# ---------- Internals ----------

    def _start_dwell(self, zone: Zone, now: float) -> None:
        zone.hovered = True
        zone.dwell_start = now
        self._progress = 0.0
        self._emit_progress(zone.target_id, 0.0)

    def _clear_dwell(self) -> None:
        for z in self.zones:
            if z.dwell_start is not None and z.zone_id != self._awaiting_exit:
                self._emit_progress(z.target_id, 0.0)
            z.hovered = False
            z.active = False
            z.dwell_start = None
        self._progress = 0.0

    def _commit(self, zone: Zone, elapsed: float, now: float) -> None:
        zone.active = True
        zone.dwell_start = None
        self._progress = 0.0

        self.stats.total_selections += 1
        self.stats.zone_hit_counts[zone.zone_id] = self.stats.zone_hit_counts.get(zone.zone_id, 0) + 1
        n = self.stats.total_selections
        self.stats.avg_selection_time_s = (self.stats.avg_selection_time_s * (n - 1) + elapsed) / n
        self.stats.history.append(ZoneSelection(zone.zone_id, zone.name, now, elapsed))
        keep = max(0, int(self.cfg.history_size))
        del self.stats.history[:len(self.stats.history) - keep]

        if self.cfg.rearm_on_exit:
            self._awaiting_exit = zone.zone_id
        else:
            zone.dwell_start = now

        self.logger.info("Zone %d (%s) selected after %.2f s", zone.zone_id, zone.name, elapsed)
        if self.sink is not None:
            try:
                self.sink.on_select(zone.target_id)
            except (RuntimeError, ValueError, TypeError) as e:
                self.logger.error("Selection sink failed on select: %s", e)

    def _emit_progress(self, target_id: str, progress: float) -> None:
        if self.sink is None:
            return
        try:
            self.sink.on_dwell_progress(target_id, progress)
        except (RuntimeError, ValueError, TypeError) as e:
            self.logger.error("Selection sink failed on progress: %s", e)
