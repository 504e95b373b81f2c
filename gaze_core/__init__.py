"""Gaze estimation, calibration and dwell selection core for AAC boards."""

__version__ = "0.1"
