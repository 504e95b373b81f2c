"""Tests for the shared Config service."""

import unittest
from unittest.mock import MagicMock

from gaze_core.config_service.config import Config
from gaze_core.errors import ConfigError


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.cfg = Config()

    def test_get_defaults(self):
        self.assertEqual(self.cfg.get("dwell.dwell_time_s"), 1.0)
        self.assertEqual(self.cfg.get("zone.yaw_threshold_deg"), 8.0)
        self.assertEqual(self.cfg.get("gate.max_std_px"), 25.0)
        self.assertEqual(self.cfg.pipeline.selection_mode, "dwell")

    def test_set_coerces_strings(self):
        self.cfg.set("dwell.dwell_time_s", "1.5")
        self.assertEqual(self.cfg.dwell.dwell_time_s, 1.5)

        self.cfg.set("calibration.validate", "off")
        self.assertIs(self.cfg.calibration.validate, False)

        self.cfg.set("gate.min_samples", "12")
        self.assertEqual(self.cfg.gate.min_samples, 12)

    def test_invalid_path_and_value_raise(self):
        with self.assertRaises(ConfigError):
            self.cfg.get("dwell")
        with self.assertRaises(ConfigError):
            self.cfg.set("nope.value", 1)
        with self.assertRaises(ConfigError):
            self.cfg.set("dwell.not_a_field", 1)
        with self.assertRaises(ConfigError):
            self.cfg.set("dwell.dwell_time_s", "soon")
        with self.assertRaises(ConfigError):
            self.cfg.set("calibration.validate", "maybe")

    def test_subscribe_section_and_path(self):
        section_cb = MagicMock()
        path_cb = MagicMock()
        unsub = self.cfg.subscribe("dwell", section_cb)
        self.cfg.subscribe("dwell.dwell_time_s", path_cb)

        self.cfg.set("dwell.dwell_time_s", 1.2)
        section_cb.assert_called_once_with("dwell.dwell_time_s", 1.0, 1.2)
        path_cb.assert_called_once_with("dwell.dwell_time_s", 1.0, 1.2)

        # unchanged value does not notify
        self.cfg.set("dwell.dwell_time_s", 1.2)
        self.assertEqual(section_cb.call_count, 1)

        unsub()
        self.cfg.set("dwell.dwell_time_s", 2.0)
        self.assertEqual(section_cb.call_count, 1)
        self.assertEqual(path_cb.call_count, 2)

    def test_failing_subscriber_does_not_block_others(self):
        bad = MagicMock(side_effect=ValueError("boom"))
        good = MagicMock()
        self.cfg.subscribe("zone", bad)
        self.cfg.subscribe("zone", good)

        self.cfg.set("zone.dwell_time_s", 0.8)
        good.assert_called_once()
        self.assertEqual(self.cfg.zone.dwell_time_s, 0.8)

    def test_rejected_values_are_not_committed(self):
        subscriber = MagicMock()
        self.cfg.subscribe("pipeline", subscriber)
        self.cfg.subscribe("zone", subscriber)

        cases = [
            ("pipeline.selection_mode", "bogus", "dwell"),
            ("zone.grid_size", 4, 3),
            ("calibration.point_mode", "twelve", "nine"),
            ("calibration.gate_reference", "elsewhere", "fixation"),
        ]
        for path, value, kept in cases:
            with self.subTest(path=path):
                with self.assertRaises(ConfigError):
                    self.cfg.set(path, value)
                self.assertEqual(self.cfg.get(path), kept)
        subscriber.assert_not_called()

        self.cfg.set("pipeline.selection_mode", "zone")
        self.assertEqual(self.cfg.pipeline.selection_mode, "zone")

    def test_custom_validator_can_be_removed(self):
        def positive(value):
            if value <= 0:
                raise ValueError("must be positive")

        remove = self.cfg.add_validator("dwell.dwell_time_s", positive)
        with self.assertRaises(ConfigError):
            self.cfg.set("dwell.dwell_time_s", -1.0)
        self.assertEqual(self.cfg.dwell.dwell_time_s, 1.0)

        remove()
        self.cfg.set("dwell.dwell_time_s", -1.0)
        self.assertEqual(self.cfg.dwell.dwell_time_s, -1.0)

        with self.assertRaises(ConfigError):
            self.cfg.add_validator("dwell.nope", positive)

    def test_update_sets_several_fields(self):
        self.cfg.update("zone", yaw_threshold_deg=10, pitch_threshold_deg=7)
        self.assertEqual(self.cfg.zone.yaw_threshold_deg, 10.0)
        self.assertEqual(self.cfg.zone.pitch_threshold_deg, 7.0)


if __name__ == "__main__":
    unittest.main()
