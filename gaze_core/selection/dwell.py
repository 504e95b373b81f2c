"""Continuous dwell-to-select over geometric targets."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from gaze_core.config_service import config_modules
from gaze_core.selection.selection_types import DwellPhase, DwellState, DwellTarget, DwellUpdate
from gaze_core.utilities.logger_setup import setup_logger

if TYPE_CHECKING:
    from gaze_core.ports.interfaces import ISelectionSink


class DwellSelector:
    """Selects a target after the gaze stays inside it for `dwell_time_s`.

    Only one target dwells at a time. Leaving it (or losing the gaze)
    resets progress, and the commit fires exactly once before the state
    is cleared. A fresh dwell on the same target starts on the next frame.
    """

    def __init__(
        self,
        cfg: config_modules.Dwell,
        sink: Optional[ISelectionSink] = None,
    ) -> None:
        self.cfg = cfg
        self.sink = sink
        self.logger = setup_logger("DwellSelector")

        self._targets: List[DwellTarget] = []
        self._state: Optional[DwellState] = None

    @property
    def state(self) -> Optional[DwellState]:
        return self._state

    @property
    def targets(self) -> List[DwellTarget]:
        return list(self._targets)

    def set_targets(self, targets: Iterable[DwellTarget]) -> None:
        """Replace the candidate targets; an active dwell survives if its target still exists."""
        self._targets = list(targets)
        if self._state is not None and all(t.target_id != self._state.target_id for t in self._targets):
            self._reset()

    def cancel(self) -> None:
        """Abort the current dwell without selecting."""
        self._reset()

    def hit_test(self, x: float, y: float) -> Tuple[Optional[DwellTarget], bool]:
        """Target under (x, y) and whether several overlapped (last match wins)."""
        matches = [t for t in self._targets if t.contains(x, y)]
        if not matches:
            return None, False
        return matches[-1], len(matches) > 1

    def update(
        self,
        point: Optional[Tuple[float, float]],
        now: float,
        confidence: float = 1.0,
    ) -> DwellUpdate:
        """Advance the dwell with the gaze point (screen px) of this frame."""
        target: Optional[DwellTarget] = None
        ambiguous = False
        if point is not None and confidence >= self.cfg.min_confidence:
            target, ambiguous = self.hit_test(point[0], point[1])
            if ambiguous:
                self.logger.debug("Overlapping targets at (%.0f, %.0f), using %s", point[0], point[1], target.target_id)

        state = self._state
        if target is None:
            self._reset()
            return DwellUpdate(None, 0.0, DwellPhase.IDLE, ambiguous=ambiguous)

        if state is None or state.target_id != target.target_id:
            self._reset()
            self._state = DwellState(target_id=target.target_id, dwell_start=now)
            self._emit_progress(target.target_id, 0.0)
            return DwellUpdate(target.target_id, 0.0, DwellPhase.HOVERING, ambiguous=ambiguous)

        elapsed = now - state.dwell_start
        dwell = self.cfg.dwell_time_s
        progress = min(elapsed / dwell, 1.0) if dwell > 0 else 1.0
        state.progress = max(state.progress, progress)
        if state.progress >= self.cfg.selecting_ratio:
            state.phase = DwellPhase.SELECTING
        self._emit_progress(state.target_id, state.progress)

        if state.progress >= 1.0 and not state.locked:
            state.locked = True
            state.phase = DwellPhase.COMMITTED
            self.logger.info("Selected %s after %.2f s", state.target_id, elapsed)
            self._emit_select(state.target_id)
            self._state = None
            return DwellUpdate(state.target_id, 1.0, DwellPhase.COMMITTED, selected=state.target_id, ambiguous=ambiguous)

        return DwellUpdate(state.target_id, state.progress, state.phase, ambiguous=ambiguous)

# ---------- Internals ----------

    def _reset(self) -> None:
        if self._state is not None and not self._state.locked:
            self._emit_progress(self._state.target_id, 0.0)
        self._state = None

    def _emit_progress(self, target_id: str, progress: float) -> None:
        if self.sink is None:
            return
        try:
            self.sink.on_dwell_progress(target_id, progress)
        except (RuntimeError, ValueError, TypeError) as e:
            self.logger.error("Selection sink failed on progress: %s", e)

    def _emit_select(self, target_id: str) -> None:
        if self.sink is None:
            return
        try:
            self.sink.on_select(target_id)
        except (RuntimeError, ValueError, TypeError) as e:
            self.logger.error("Selection sink failed on select: %s", e)
