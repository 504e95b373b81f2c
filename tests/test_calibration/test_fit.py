"""Tests for calibration point layouts, fitting and scoring."""

import math
import unittest
from dataclasses import asdict

import gaze_core.calibration.calibration_types as ct
from gaze_core.calibration import fit
from gaze_core.config_service import config_modules
from gaze_core.errors import CalibrationFitError


def _samples(points, raw_of):
    return [
        ct.CalibrationSample(p.point_id, p.x, p.y, *raw_of(p.x, p.y), confidence=0.9, timestamp=0.0)
        for p in points
    ]


class TestPointLayouts(unittest.TestCase):
    def test_nine_point_layout(self):
        pts = fit.calibration_points(ct.PointMode.NINE, 0.1)
        self.assertEqual(len(pts), 9)
        self.assertEqual((pts[0].x, pts[0].y), (0.5, 0.5))
        self.assertEqual((pts[1].x, pts[1].y), (0.1, 0.1))
        self.assertEqual((pts[4].x, pts[4].y), (0.9, 0.9))
        self.assertEqual([p.point_id for p in pts], list(range(9)))

    def test_thirteen_point_layout(self):
        pts = fit.calibration_points(ct.PointMode.THIRTEEN, 0.1)
        self.assertEqual(len(pts), 13)
        self.assertEqual((pts[9].x, pts[9].y), (0.25, 0.25))

    def test_validation_grid(self):
        pts = fit.validation_points(0.15)
        self.assertEqual(len(pts), 9)
        self.assertEqual((pts[0].x, pts[0].y), (0.15, 0.15))
        self.assertEqual((pts[4].x, pts[4].y), (0.5, 0.5))
        self.assertAlmostEqual(pts[8].x, 0.85)


class TestFitting(unittest.TestCase):
    def setUp(self):
        self.points = fit.calibration_points(ct.PointMode.NINE, 0.1)

    def test_identity_fit(self):
        t = fit.fit_linear_transform(_samples(self.points, lambda x, y: (x, y)))
        self.assertAlmostEqual(t.scale_x, 1.0, places=6)
        self.assertAlmostEqual(t.scale_y, 1.0, places=6)
        self.assertAlmostEqual(t.offset_x, 0.0, places=6)
        self.assertAlmostEqual(t.offset_y, 0.0, places=6)
        for cx, cy in t.quadrant_correction:
            self.assertAlmostEqual(cx, 0.0, places=6)
            self.assertAlmostEqual(cy, 0.0, places=6)

    def test_recovers_linear_mapping(self):
        # raw = (target - 0.1) / 2  ->  target = 2 * raw + 0.1
        samples = _samples(self.points, lambda x, y: ((x - 0.1) / 2.0, (y + 0.2) / 0.5))
        t = fit.fit_linear_transform(samples)
        self.assertAlmostEqual(t.scale_x, 2.0, places=6)
        self.assertAlmostEqual(t.offset_x, 0.1, places=6)
        self.assertAlmostEqual(t.scale_y, 0.5, places=6)
        self.assertAlmostEqual(t.offset_y, -0.2, places=6)

        for s in samples:
            x, y = fit.apply_transform(t, s.raw_x, s.raw_y)
            self.assertAlmostEqual(x, s.target_x, places=6)
            self.assertAlmostEqual(y, s.target_y, places=6)

    def test_too_few_points(self):
        samples = _samples(self.points[:3], lambda x, y: (x, y))
        with self.assertRaises(CalibrationFitError):
            fit.fit_linear_transform(samples)

    def test_constant_raw_is_degenerate(self):
        samples = _samples(self.points, lambda x, y: (0.4, y))
        with self.assertRaises(CalibrationFitError):
            fit.fit_linear_transform(samples)

    def test_best_sample_per_point_used(self):
        samples = _samples(self.points, lambda x, y: (x, y))
        # low-confidence garbage on point 0 is ignored
        samples.append(ct.CalibrationSample(0, 0.5, 0.5, 0.9, 0.1, 0.1, 0.0))
        samples.append(ct.CalibrationSample(1, 0.1, 0.1, math.nan, 0.1, 1.0, 0.0))
        best = fit.best_samples(samples)
        self.assertEqual(len(best), 9)
        self.assertEqual((best[0].raw_x, best[0].raw_y), (0.5, 0.5))
        self.assertEqual(best[1].raw_x, 0.1)

    def test_quadrant_correction_from_residuals(self):
        t = ct.CalibrationTransform()
        samples = [
            ct.CalibrationSample(0, 0.3, 0.2, 0.2, 0.2, 0.9, 0.0),  # top-left, +0.1 x residual
            ct.CalibrationSample(1, 0.8, 0.8, 0.8, 0.8, 0.9, 0.0),  # bottom-right, exact
        ]
        corr = fit.fit_quadrant_correction(t, samples)
        self.assertAlmostEqual(corr[0][0], 0.1)
        self.assertAlmostEqual(corr[0][1], 0.0)
        self.assertEqual(corr[1], (0.0, 0.0))
        self.assertEqual(corr[3], (0.0, 0.0))

    def test_quadrant_index(self):
        self.assertEqual(fit.quadrant_index(0.2, 0.2), 0)
        self.assertEqual(fit.quadrant_index(0.7, 0.2), 1)
        self.assertEqual(fit.quadrant_index(0.2, 0.7), 2)
        self.assertEqual(fit.quadrant_index(0.5, 0.5), 3)


class TestApplyTransform(unittest.TestCase):
    def test_pure_and_repeatable(self):
        t = ct.CalibrationTransform(scale_x=1.2, offset_x=-0.05, quadrant_correction=[
            (0.01, 0.0), (0.0, 0.02), (-0.01, 0.0), (0.0, -0.02),
        ])
        before = asdict(t)
        first = fit.apply_transform(t, 0.3, 0.6)
        second = fit.apply_transform(t, 0.3, 0.6)
        self.assertEqual(first, second)
        self.assertEqual(asdict(t), before)

    def test_output_clamped(self):
        t = ct.CalibrationTransform(scale_x=3.0, offset_y=-1.0)
        self.assertEqual(fit.apply_transform(t, 0.9, 0.2), (1.0, 0.0))

    def test_usable(self):
        self.assertTrue(fit.transform_is_usable(ct.CalibrationTransform()))
        self.assertFalse(fit.transform_is_usable(None))
        self.assertFalse(fit.transform_is_usable(ct.CalibrationTransform(scale_x=0.0)))
        self.assertFalse(fit.transform_is_usable(ct.CalibrationTransform(offset_y=math.inf)))


class TestAccuracy(unittest.TestCase):
    def setUp(self):
        self.cfg = config_modules.Calibration()
        self.point = ct.CalibrationPoint(0, 0.5, 0.5, "test-0")

    def test_on_target_scores_full(self):
        result = fit.score_validation_point(self.point, [(640.0, 360.0)] * 10, 10, (1280, 720), self.cfg)
        self.assertAlmostEqual(result.score, 1.0)
        self.assertAlmostEqual(result.mean_distance_px, 0.0)
        self.assertEqual(result.valid_ratio, 1.0)

    def test_offset_and_missing_samples(self):
        # 100 px off, 5 of 10 samples valid
        result = fit.score_validation_point(self.point, [(740.0, 360.0)] * 5, 10, (1280, 720), self.cfg)
        self.assertAlmostEqual(result.mean_distance_px, 100.0)
        self.assertAlmostEqual(result.mean_dx_px, 100.0)
        self.assertAlmostEqual(result.score, 0.6 * 0.5 + 0.2 * 1.0 + 0.2 * 0.5)

    def test_no_samples(self):
        result = fit.score_validation_point(self.point, [], 0, (1280, 720), self.cfg)
        self.assertEqual(result.score, 0.0)
        self.assertTrue(math.isinf(result.mean_distance_px))

        acc = fit.validation_accuracy([result], self.cfg)
        self.assertEqual(acc.overall, 0.0)
        self.assertEqual(acc.horizontal, 0.0)

    def test_fit_accuracy_perfect(self):
        points = fit.calibration_points(ct.PointMode.NINE, 0.1)
        samples = _samples(points, lambda x, y: (x, y))
        acc = fit.fit_accuracy(ct.CalibrationTransform(), samples)
        self.assertAlmostEqual(acc.overall, 1.0)
        self.assertAlmostEqual(acc.stability, 1.0)

    def test_rating_tiers(self):
        cases = [
            (0.95, ct.AccuracyRating.EXCELLENT),
            (0.8, ct.AccuracyRating.EXCELLENT),
            (0.79, ct.AccuracyRating.GOOD),
            (0.6, ct.AccuracyRating.GOOD),
            (0.4, ct.AccuracyRating.FAIR),
            (0.39, ct.AccuracyRating.POOR),
            (0.0, ct.AccuracyRating.POOR),
        ]
        for overall, expected in cases:
            with self.subTest(overall=overall):
                rating, advice = fit.rate_accuracy(overall)
                self.assertIs(rating, expected)
                self.assertTrue(advice)
        self.assertNotEqual(fit.rate_accuracy(0.9)[1], fit.rate_accuracy(0.1)[1])

    def test_distance_summary(self):
        near = fit.score_validation_point(self.point, [(650.0, 360.0)] * 4, 4, (1280, 720), self.cfg)
        far = fit.score_validation_point(self.point, [(640.0, 390.0)] * 4, 4, (1280, 720), self.cfg)
        empty = fit.score_validation_point(self.point, [], 4, (1280, 720), self.cfg)

        mean_d, best, worst = fit.distance_summary([near, far, empty])
        self.assertAlmostEqual(best, 10.0)
        self.assertAlmostEqual(worst, 30.0)
        self.assertAlmostEqual(mean_d, 20.0)
        self.assertEqual(fit.distance_summary([empty]), (None, None, None))


if __name__ == "__main__":
    unittest.main()
