"""Tests for GazeStabilizer and StabilityGate."""

import math
import unittest

from gaze_core.config_service import config_modules
from gaze_core.tracking.stabilizer import GazeStabilizer, StabilityGate, is_valid_point
from gaze_core.tracking.tracking_types import EyeDetection, PupilPair


def _pupils(lx=100.0, ly=100.0, rx=200.0, ry=100.0, conf=0.9):
    return PupilPair(
        left=EyeDetection(lx, ly, 4.0, conf, detected=True),
        right=EyeDetection(rx, ry, 4.0, conf, detected=True),
    )


class TestGazeStabilizer(unittest.TestCase):
    def setUp(self):
        self.cfg = config_modules.Stabilizer()
        self.stab = GazeStabilizer(self.cfg)

    def _settle(self, point=(640.0, 360.0), n=5):
        for i in range(n):
            self.stab.update(point, _pupils(), i * 0.033)

    def test_none_until_first_valid_sample(self):
        self.assertIsNone(self.stab.update(None, None, 0.0))
        self.assertIsNone(self.stab.update((0.0, 0.0), _pupils(), 0.033))
        est = self.stab.update((640.0, 360.0), _pupils(), 0.066)
        self.assertEqual((est.x, est.y), (640.0, 360.0))

    def test_invalid_points(self):
        self.assertFalse(is_valid_point(None))
        self.assertFalse(is_valid_point((0.0, 0.0)))
        self.assertFalse(is_valid_point((math.nan, 1.0)))
        self.assertFalse(is_valid_point((1.0, math.inf)))
        self.assertTrue(is_valid_point((0.0, 1.0)))

    def test_invalid_sample_keeps_history(self):
        self._settle()
        before = self.stab.history
        est = self.stab.update((math.nan, 10.0), _pupils(), 1.0)
        self.assertFalse(est.accepted)
        self.assertEqual(est.rejection, "invalid")
        self.assertEqual(est.confidence, 0.0)
        self.assertEqual(self.stab.history, before)

    def test_large_jump_rejected(self):
        self._settle()
        before = self.stab.history

        est = self.stab.update((640.0 + 600.0, 360.0), _pupils(), 1.0)

        self.assertFalse(est.accepted)
        self.assertEqual(est.rejection, "outlier")
        self.assertEqual(self.stab.history, before)
        self.assertAlmostEqual(est.x, 640.0)

    def test_jump_threshold_bounds(self):
        self.assertEqual(self.stab.jump_threshold(), self.cfg.min_jump_px)
        for i in range(5):
            self.stab.update((100.0 + 40.0 * i, 100.0), _pupils(), i * 0.033)
        self.assertAlmostEqual(self.stab.jump_threshold(), 250.0 + 5.0 * 40.0)

        self.stab.reset()
        for i in range(5):
            self.stab.update((100.0 + 120.0 * i, 100.0), _pupils(), i * 0.033)
        self.assertEqual(self.stab.jump_threshold(), self.cfg.max_jump_px)

    def test_reanchors_after_consecutive_rejections(self):
        self._settle()
        far = (100.0, 100.0)
        for i in range(self.cfg.reanchor_after - 1):
            est = self.stab.update(far, _pupils(), 1.0 + i * 0.033)
            self.assertFalse(est.accepted)

        est = self.stab.update(far, _pupils(), 2.0)
        self.assertTrue(est.accepted)
        self.assertEqual(self.stab.history, [far])
        self.assertEqual((est.x, est.y), far)

    def test_exponential_smoothing(self):
        self.stab.update((100.0, 100.0), _pupils(), 0.0)
        est = self.stab.update((200.0, 100.0), _pupils(), 0.033)
        self.assertAlmostEqual(est.x, 0.3 * 200.0 + 0.7 * 100.0)
        self.assertEqual((est.raw_x, est.raw_y), (200.0, 100.0))

        self.cfg.smoothing_enabled = False
        est = self.stab.update((150.0, 100.0), _pupils(), 0.066)
        self.assertEqual(est.x, 150.0)

    def test_history_bounded(self):
        for i in range(3 * self.cfg.history_size):
            self.stab.update((100.0 + i, 100.0), _pupils(), i * 0.033)
        self.assertEqual(len(self.stab.history), self.cfg.history_size)

    def test_confidence(self):
        est = self.stab.update((640.0, 360.0), _pupils(), 0.0)
        # one sample per eye: no stability yet
        self.assertAlmostEqual(est.confidence, (0.9 + 0.9 + 0.0) / 3.0)

        est = self.stab.update((640.0, 360.0), _pupils(), 0.033)
        self.assertAlmostEqual(est.stability, 1.0)
        self.assertAlmostEqual(est.confidence, (0.9 + 0.9 + 1.0) / 3.0)

        est = self.stab.update((640.0, 360.0), PupilPair(), 0.066)
        self.assertEqual(est.confidence, 0.0)

    def test_moving_pupils_lower_stability(self):
        for i in range(4):
            self.stab.update((640.0, 360.0), _pupils(lx=100.0 + 25.0 * i, rx=200.0 + 25.0 * i), i * 0.033)
        self.assertAlmostEqual(self.stab.stability(), 0.5)


class TestStabilityGate(unittest.TestCase):
    def setUp(self):
        self.cfg = config_modules.Gate()
        self.gate = StabilityGate(self.cfg)

    def _fill(self, distances, start=0.0):
        for i, d in enumerate(distances):
            self.gate.add(640.0, 360.0, d, start + i / 30.0)

    def test_steady_fixation_is_stable(self):
        self._fill([5.0] * 15)
        report = self.gate.evaluate(5.0)
        self.assertTrue(report.stable, report.failed)
        self.assertEqual(report.samples, 15)

    def test_too_few_samples(self):
        self._fill([5.0] * 5)
        report = self.gate.evaluate(5.0)
        self.assertFalse(report.stable)
        self.assertIn("samples", report.failed)

    def test_high_std_fails(self):
        self._fill([0.0, 60.0] * 10)
        report = self.gate.evaluate(10.0)
        self.assertFalse(report.stable)
        self.assertIn("std", report.failed)
        self.assertGreater(report.std, self.cfg.max_std_px)

    def test_far_sample_fails_distance(self):
        self._fill([5.0] * 15)
        report = self.gate.evaluate(80.0)
        self.assertIn("distance", report.failed)

    def test_upward_trend_fails(self):
        self._fill([2.0] * 8 + [30.0] * 8)
        report = self.gate.evaluate(30.0)
        self.assertIn("trend", report.failed)

    def test_jumps_fail(self):
        for i in range(20):
            x = 640.0 + (40.0 if i % 2 else 0.0)
            self.gate.add(x, 360.0, 5.0, i / 30.0)
        report = self.gate.evaluate(5.0)
        self.assertIn("jumps", report.failed)

    def test_window_pruned_by_time(self):
        self._fill([5.0] * 10)
        self.gate.add(640.0, 360.0, 5.0, 10.0)
        self.assertEqual(len(self.gate), 1)

    def test_stale_samples_ignored_at_later_time(self):
        self._fill([5.0] * 15)
        self.assertTrue(self.gate.is_stable(5.0, 14 / 30.0))
        # 2 s later every sample is outside the 1.5 s window
        report = self.gate.evaluate(5.0, 14 / 30.0 + 2.0)
        self.assertFalse(report.stable)
        self.assertIn("samples", report.failed)
        self.assertEqual(report.samples, 0)
        self.assertFalse(self.gate.is_stable(5.0, 14 / 30.0 + 2.0))

    def test_fixation_distance(self):
        self.gate.add(0.0, 0.0, 0.0, 0.0)
        self.assertAlmostEqual(self.gate.fixation_distance(10.0, 0.0), 5.0)


if __name__ == "__main__":
    unittest.main()
