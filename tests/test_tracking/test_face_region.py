"""Tests for frame validation, the face box estimator and head pose."""

import unittest

import numpy as np

from gaze_core.config_service import config_modules
from gaze_core.errors import InvalidFrameError
from gaze_core.mock_modules.mock_frames import DEFAULT_FACE, make_frame
from gaze_core.tracking.face_region import FaceRegionEstimator, HeadPoseEstimator, clamp_region
from gaze_core.tracking.tracking_types import FaceRegion, Frame, HeadPose


class TestFrame(unittest.TestCase):
    def test_rejects_wrong_buffer_size(self):
        with self.assertRaises(InvalidFrameError):
            Frame(pixels=bytes(10 * 10 * 3), width=10, height=10, timestamp=0.0)

    def test_rejects_non_positive_dimensions(self):
        with self.assertRaises(InvalidFrameError):
            Frame(pixels=b"", width=0, height=10, timestamp=0.0)

    def test_rejects_non_finite_timestamp(self):
        with self.assertRaises(InvalidFrameError):
            Frame(pixels=bytes(4), width=1, height=1, timestamp=float("nan"))

    def test_invalid_frame_error_is_value_error(self):
        with self.assertRaises(ValueError):
            Frame(pixels=np.zeros((2, 2, 4), dtype=np.float32), width=2, height=2, timestamp=0.0)

    def test_bytes_buffer_reshaped(self):
        frame = Frame(pixels=bytes(range(24)), width=3, height=2, timestamp=0.0)
        rgba = frame.rgba()
        self.assertEqual(rgba.shape, (2, 3, 4))
        self.assertEqual(int(rgba[1, 0, 0]), 12)


class TestFaceRegionEstimator(unittest.TestCase):
    def setUp(self):
        self.est = FaceRegionEstimator(config_modules.Face())

    def test_frame_face_box_passes_through(self):
        frame = make_frame(0.0)
        face = self.est.estimate(frame)
        self.assertEqual((face.x, face.y, face.width, face.height), (100, 40, 120, 160))
        self.assertAlmostEqual(face.confidence, 0.9)
        self.assertEqual(face.source, "external")

    def test_external_box_is_clamped_to_frame(self):
        frame = make_frame(0.0, pass_face_box=False)
        face = self.est.estimate(frame, FaceRegion(-20, 200, 100, 100, 0.0))
        self.assertEqual((face.x, face.y, face.width, face.height), (0, 200, 80, 40))
        # missing confidence falls back to the configured default
        self.assertAlmostEqual(face.confidence, 0.8)

    def test_external_box_outside_frame_is_none(self):
        frame = make_frame(0.0, pass_face_box=False)
        self.assertIsNone(self.est.estimate(frame, FaceRegion(400, 10, 50, 50, 0.9)))

    def test_skin_fallback_finds_drawn_face(self):
        frame = make_frame(0.0, pass_face_box=False)
        face = self.est.estimate(frame)

        self.assertIsNotNone(face)
        self.assertEqual(face.source, "skin")
        cx, cy = face.center
        dx, dy = DEFAULT_FACE.center
        self.assertAlmostEqual(cx, dx, delta=5)
        self.assertAlmostEqual(cy, dy, delta=5)
        self.assertGreater(face.confidence, 0.5)

    def test_no_skin_no_face(self):
        frame = make_frame(0.0, face=None)
        self.assertIsNone(self.est.estimate(frame))

    def test_clamp_region_empty(self):
        self.assertIsNone(clamp_region(FaceRegion(10, 10, 0, 5), 100, 100))


class TestHeadPoseEstimator(unittest.TestCase):
    def setUp(self):
        self.est = HeadPoseEstimator(config_modules.HeadPose())

    def test_centred_face_is_neutral(self):
        frame = make_frame(0.0)
        pose = self.est.estimate(frame, DEFAULT_FACE)
        self.assertAlmostEqual(pose.yaw, 0.0)
        self.assertAlmostEqual(pose.pitch, 0.0)

    def test_offset_face_is_smoothed_toward_target(self):
        face = FaceRegion(180, 40, 120, 160, 0.9)
        frame = make_frame(0.0, face=face)

        first = self.est.estimate(frame, face)
        self.assertGreater(first.yaw, 0.0)
        for _ in range(40):
            last = self.est.estimate(frame, face)
        self.assertGreater(last.yaw, first.yaw)
        self.assertLessEqual(last.yaw, 45.0)

    def test_external_pose_wins(self):
        frame = make_frame(0.0, head_pose=HeadPose(yaw=-12.0, pitch=3.0))
        pose = self.est.estimate(frame, DEFAULT_FACE)
        self.assertEqual(pose.yaw, -12.0)
        self.assertEqual(pose.pitch, 3.0)

    def test_no_face_no_pose(self):
        frame = make_frame(0.0, face=None)
        self.assertIsNone(self.est.estimate(frame, None))


if __name__ == "__main__":
    unittest.main()
