"""Face box estimation and head pose derived from the face position."""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from gaze_core.config_service import config_modules
from gaze_core.tracking.tracking_types import FaceRegion, Frame, HeadPose
from gaze_core.utilities.logger_setup import setup_logger


def clamp_region(region: FaceRegion, width: int, height: int) -> Optional[FaceRegion]:
    """Clip a face box to the frame; None if nothing is left."""
    x0 = max(0, int(round(region.x)))
    y0 = max(0, int(round(region.y)))
    x1 = min(width, int(round(region.x + region.width)))
    y1 = min(height, int(round(region.y + region.height)))
    if x1 - x0 <= 0 or y1 - y0 <= 0:
        return None
    return FaceRegion(
        x=x0,
        y=y0,
        width=x1 - x0,
        height=y1 - y0,
        confidence=float(min(max(region.confidence, 0.0), 1.0)),
        source=region.source,
    )


def skin_mask(rgb: np.ndarray) -> np.ndarray:
    """Boolean skin mask for an (h, w, 3) uint8 RGB array.

    A pixel is skin if any of two RGB-ratio rules or the HSV hue/sat/value
    window accepts it.
    """
    r = rgb[..., 0].astype(np.int16)
    g = rgb[..., 1].astype(np.int16)
    b = rgb[..., 2].astype(np.int16)

    rule_bright = (
        (r > 95) & (g > 40) & (b > 20)
        & (r > g) & (r > b)
        & (np.abs(r - g) > 15) & ((r - b) > 15)
    )
    rule_soft = (
        (r > 80) & (g > 50) & (b > 30)
        & (r > b) & (g > b)
        & (np.abs(r - g) < 30)
    )

    # float input gives H in degrees and S, V in 0..1
    hsv = cv2.cvtColor(rgb.astype(np.float32) / 255.0, cv2.COLOR_RGB2HSV)
    h, s, v = hsv[..., 0], hsv[..., 1], hsv[..., 2]
    rule_hsv = (
        ((h <= 30.0) | (h >= 330.0))
        & (s >= 0.2) & (s <= 0.7)
        & (v >= 0.4) & (v <= 0.95)
    )
    return rule_bright | rule_soft | rule_hsv


class FaceRegionEstimator:
    """Passes through an external face box or falls back to skin-tone statistics."""

    def __init__(self, cfg: config_modules.Face) -> None:
        self.cfg = cfg
        self.logger = setup_logger("FaceRegion")

    def estimate(self, frame: Frame, external: Optional[FaceRegion] = None) -> Optional[FaceRegion]:
        """Face box for this frame, or None if no face could be found.

        `external` (from an injected detector) is used when the frame
        carries no box of its own.
        """
        box = frame.face_box if frame.face_box is not None else external
        if box is not None:
            confidence = box.confidence if box.confidence > 0 else self.cfg.external_default_confidence
            return clamp_region(
                FaceRegion(box.x, box.y, box.width, box.height, confidence, "external"),
                frame.width,
                frame.height,
            )
        return self._estimate_from_skin(frame)

    def _estimate_from_skin(self, frame: Frame) -> Optional[FaceRegion]:
        stride = max(1, int(self.cfg.sample_stride))
        sampled = frame.rgba()[::stride, ::stride, :3]
        mask = skin_mask(np.ascontiguousarray(sampled))

        total = mask.size
        count = int(np.count_nonzero(mask))
        if total == 0 or count < self.cfg.min_skin_fraction * total:
            self.logger.debug("Skin fallback: %d/%d sampled pixels, no face", count, total)
            return None

        ys, xs = np.nonzero(mask)
        cx = float(xs.mean()) * stride
        cy = float(ys.mean()) * stride

        w = frame.width * self.cfg.face_width_ratio
        h = frame.height * self.cfg.face_height_ratio
        confidence = min(count / (total * self.cfg.confidence_scale), 1.0)

        return clamp_region(
            FaceRegion(cx - w / 2.0, cy - h / 2.0, w, h, confidence, "skin"),
            frame.width,
            frame.height,
        )


class HeadPoseEstimator:
    """Yaw/pitch from the face box offset relative to the frame centre."""

    def __init__(self, cfg: config_modules.HeadPose) -> None:
        self.cfg = cfg
        self._pose = HeadPose()

    @property
    def pose(self) -> HeadPose:
        return self._pose

    def reset(self) -> None:
        self._pose = HeadPose()

    def estimate(self, frame: Frame, face: Optional[FaceRegion]) -> Optional[HeadPose]:
        """Smoothed pose for this frame; an external pose on the frame wins."""
        if frame.head_pose is not None:
            self._pose = frame.head_pose
            return self._pose
        if face is None:
            return None

        cx, cy = face.center
        half_w = frame.width / 2.0
        half_h = frame.height / 2.0
        span = self.cfg.normalize_span
        nx = float(np.clip((cx - half_w) / (half_w * span), -1.0, 1.0))
        ny = float(np.clip((cy - half_h) / (half_h * span), -1.0, 1.0))

        target = HeadPose(
            yaw=nx * self.cfg.yaw_range_deg,
            pitch=ny * self.cfg.pitch_range_deg,
            roll=0.0,
        )
        k = self.cfg.smoothing_factor
        prev = self._pose
        self._pose = HeadPose(
            yaw=prev.yaw + (target.yaw - prev.yaw) * k,
            pitch=prev.pitch + (target.pitch - prev.pitch) * k,
            roll=0.0,
        )
        return self._pose
