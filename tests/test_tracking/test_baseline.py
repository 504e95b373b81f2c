"""Tests for baseline-relative eye movement."""

import unittest

from gaze_core.config_service import config_modules
from gaze_core.tracking.baseline import EyeBaseline
from gaze_core.tracking.tracking_types import EyeDetection, PupilPair


def pair(left=None, right=None):
    def eye(p):
        if p is None:
            return EyeDetection()
        return EyeDetection(x=p[0], y=p[1], radius=4.0, confidence=0.9, detected=True)
    return PupilPair(left=eye(left), right=eye(right))


class TestEyeBaseline(unittest.TestCase):
    def setUp(self):
        self.cfg = config_modules.Baseline()
        self.baseline = EyeBaseline(self.cfg)

    def test_no_movement_without_baseline(self):
        self.assertFalse(self.baseline.is_set)
        self.assertIsNone(self.baseline.movement(pair((10, 10), (50, 10))))

    def test_set_needs_a_detected_eye(self):
        self.assertFalse(self.baseline.set(pair(), 1.0))
        self.assertFalse(self.baseline.set(None, 1.0))
        self.assertFalse(self.baseline.is_set)

        self.assertTrue(self.baseline.set(pair((10, 10), (50, 10)), 2.0))
        self.assertTrue(self.baseline.is_set)
        self.assertEqual(self.baseline.timestamp, 2.0)

    def test_movement_scaled_by_sensitivity(self):
        self.baseline.set(pair((10, 10), (50, 10)), 0.0)

        move = self.baseline.movement(pair((12, 10), (52, 9)))
        self.assertEqual(move.left_delta, (6.0, 0.0))
        self.assertEqual(move.right_delta, (6.0, -3.0))
        self.assertEqual(move.avg_delta, (6.0, -1.5))
        self.assertAlmostEqual(move.magnitude, (36 + 2.25) ** 0.5)

        still = self.baseline.movement(pair((10, 10), (50, 10)))
        self.assertEqual(still.magnitude, 0.0)

    def test_only_eyes_tracked_both_times_count(self):
        self.baseline.set(pair(left=(10, 10)), 0.0)

        move = self.baseline.movement(pair((11, 10), (60, 60)))
        self.assertIsNone(move.right_delta)
        self.assertEqual(move.avg_delta, (3.0, 0.0))

        self.assertIsNone(self.baseline.movement(pair(right=(60, 60))))

    def test_sensitivity_clamped(self):
        self.cfg.sensitivity = 50.0
        self.assertEqual(self.baseline.sensitivity, 10.0)
        self.assertEqual(self.baseline.clamp_sensitivity(0.1), 0.5)
        self.assertEqual(self.baseline.clamp_sensitivity(2), 2.0)

    def test_reset(self):
        self.baseline.set(pair((10, 10)), 0.0)
        self.baseline.reset()
        self.assertFalse(self.baseline.is_set)
        self.assertIsNone(self.baseline.movement(pair((12, 10))))


if __name__ == "__main__":
    unittest.main()
