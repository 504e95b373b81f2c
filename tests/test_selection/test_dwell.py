"""Tests for continuous dwell selection."""

import unittest
from unittest.mock import MagicMock

from gaze_core.config_service import config_modules
from gaze_core.selection.dwell import DwellSelector
from gaze_core.selection.selection_types import DwellPhase, DwellTarget

FRAME_DT = 0.033
INSIDE = (150.0, 150.0)
OUTSIDE = (900.0, 600.0)


class TestDwellSelector(unittest.TestCase):
    def setUp(self):
        self.cfg = config_modules.Dwell()
        self.sink = MagicMock()
        self.dwell = DwellSelector(self.cfg, self.sink)
        self.dwell.set_targets([DwellTarget("yes", 100, 100, 200, 120)])

    def _selections(self):
        return [c.args for c in self.sink.on_select.call_args_list]

    def test_steady_gaze_selects_once(self):
        selected_at = []
        for i in range(46):
            t = i * FRAME_DT
            update = self.dwell.update(INSIDE, t)
            if update.selected:
                selected_at.append(t)

        self.assertEqual(self._selections(), [("yes",)])
        self.assertEqual(len(selected_at), 1)
        self.assertGreaterEqual(selected_at[0], self.cfg.dwell_time_s)

    def test_leaving_resets_progress(self):
        t = 0.0
        while t < 0.6:
            self.dwell.update(INSIDE, t)
            t += FRAME_DT
        update = self.dwell.update(OUTSIDE, t)
        self.assertEqual(update.phase, DwellPhase.IDLE)
        self.assertEqual(update.progress, 0.0)
        self.sink.on_dwell_progress.assert_called_with("yes", 0.0)

        t += FRAME_DT
        reentered = t
        selected_at = None
        while t < reentered + 1.5:
            update = self.dwell.update(INSIDE, t)
            if update.selected and selected_at is None:
                selected_at = t
            t += FRAME_DT

        self.assertIsNotNone(selected_at)
        self.assertGreaterEqual(selected_at - reentered, self.cfg.dwell_time_s)

    def test_progress_monotonic_and_phases(self):
        phases = []
        last = 0.0
        for i in range(30):
            update = self.dwell.update(INSIDE, i * FRAME_DT)
            self.assertGreaterEqual(update.progress, last)
            last = update.progress
            phases.append(update.phase)
        self.assertEqual(phases[0], DwellPhase.HOVERING)
        self.assertEqual(phases[-1], DwellPhase.SELECTING)

        # a timestamp going backwards does not lower progress
        update = self.dwell.update(INSIDE, 0.1)
        self.assertEqual(update.progress, last)

    def test_lost_gaze_resets(self):
        for i in range(10):
            self.dwell.update(INSIDE, i * FRAME_DT)
        update = self.dwell.update(None, 10 * FRAME_DT)
        self.assertIsNone(update.target_id)
        self.assertIsNone(self.dwell.state)

    def test_low_confidence_ignored(self):
        self.cfg.min_confidence = 0.5
        update = self.dwell.update(INSIDE, 0.0, confidence=0.2)
        self.assertIsNone(update.target_id)

    def test_switching_targets_restarts(self):
        self.dwell.set_targets([
            DwellTarget("yes", 100, 100, 200, 120),
            DwellTarget.circle("no", 600, 400, 50),
        ])
        for i in range(20):
            self.dwell.update(INSIDE, i * FRAME_DT)
        update = self.dwell.update((610.0, 410.0), 20 * FRAME_DT)
        self.assertEqual(update.target_id, "no")
        self.assertEqual(update.progress, 0.0)
        self.assertEqual(update.phase, DwellPhase.HOVERING)

    def test_overlap_reported_as_ambiguous(self):
        self.dwell.set_targets([
            DwellTarget("a", 0, 0, 200, 200),
            DwellTarget("b", 100, 100, 200, 200),
        ])
        target, ambiguous = self.dwell.hit_test(150.0, 150.0)
        self.assertEqual(target.target_id, "b")
        self.assertTrue(ambiguous)

        update = self.dwell.update((150.0, 150.0), 0.0)
        self.assertTrue(update.ambiguous)
        self.assertEqual(update.target_id, "b")

    def test_removed_target_cancels_dwell(self):
        for i in range(10):
            self.dwell.update(INSIDE, i * FRAME_DT)
        self.dwell.set_targets([DwellTarget("other", 500, 500, 50, 50)])
        self.assertIsNone(self.dwell.state)

    def test_sink_errors_are_contained(self):
        self.sink.on_select.side_effect = RuntimeError("speech engine busy")
        results = [self.dwell.update(INSIDE, i * FRAME_DT) for i in range(40)]
        self.assertEqual(sum(1 for r in results if r.selected), 1)


if __name__ == "__main__":
    unittest.main()
