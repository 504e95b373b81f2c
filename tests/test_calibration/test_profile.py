"""Tests for calibration profile persistence."""

import json
import tempfile
import unittest
from pathlib import Path

import gaze_core.calibration.calibration_types as ct
from gaze_core.calibration import profile
from gaze_core.errors import CalibrationProfileError


class TestProfile(unittest.TestCase):
    def setUp(self):
        self.transform = ct.CalibrationTransform(
            scale_x=1.1, scale_y=0.9, offset_x=-0.02, offset_y=0.03,
            quadrant_correction=[(0.01, 0.0), (0.0, 0.0), (0.0, -0.01), (0.02, 0.02)],
        )
        self.accuracy = ct.CalibrationAccuracy(overall=0.86, horizontal=0.9, vertical=0.8, stability=0.95)

    def test_file_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = profile.save_profile(Path(tmp) / "profiles" / "user.json", self.transform, self.accuracy)
            with path.open() as f:
                raw = json.load(f)
            self.assertEqual(raw["version"], profile.PROFILE_VERSION)
            self.assertIn("timestamp", raw)

            transform, accuracy = profile.load_profile(path)

        self.assertEqual(transform, self.transform)
        self.assertEqual(accuracy, self.accuracy)

    def test_file_uses_given_version(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = profile.save_profile(Path(tmp) / "user.json", self.transform, self.accuracy, version="2.1")
            with path.open() as f:
                self.assertEqual(json.load(f)["version"], "2.1")

            transform, _ = profile.load_profile(path, version="2.1")
            self.assertEqual(transform, self.transform)
            with self.assertRaises(CalibrationProfileError):
                profile.load_profile(path)

    def test_version_mismatch(self):
        data = profile.to_profile(self.transform, self.accuracy)
        data["version"] = "2.0"
        with self.assertRaises(CalibrationProfileError):
            profile.from_profile(data)

    def test_malformed(self):
        data = profile.to_profile(self.transform, self.accuracy)
        del data["transform"]["scale_x"]
        with self.assertRaises(CalibrationProfileError):
            profile.from_profile(data)

        with self.assertRaises(CalibrationProfileError):
            profile.from_profile(["not", "a", "dict"])

    def test_zero_scale_rejected(self):
        data = profile.to_profile(self.transform, self.accuracy)
        data["transform"]["scale_y"] = 0.0
        with self.assertRaises(CalibrationProfileError):
            profile.from_profile(data)

    def test_invalid_json_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(CalibrationProfileError):
                profile.load_profile(path)


if __name__ == "__main__":
    unittest.main()
