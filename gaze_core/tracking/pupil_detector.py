"""Multi-method pupil detection inside anatomical eye boxes."""

from __future__ import annotations

import math
from time import perf_counter
from typing import Optional, Tuple

import cv2
import numpy as np
from numpy.typing import NDArray

from gaze_core.config_service import config_modules
from gaze_core.tracking.tracking_types import (
    DetectionMethod,
    EyeDetection,
    EyeRegion,
    FaceRegion,
    Frame,
    PupilPair,
)
from gaze_core.utilities.logger_setup import setup_logger

# (x, y, radius, confidence) in crop coordinates
Candidate = Tuple[float, float, float, float]


def eye_regions(face: FaceRegion, cfg: config_modules.Pupil) -> Tuple[EyeRegion, EyeRegion]:
    """Left and right eye search boxes (frame px) from fixed face ratios."""
    y = face.y + int(round(face.height * cfg.eye_band_top))
    h = max(1, int(round(face.height * (cfg.eye_band_bottom - cfg.eye_band_top))))

    def _box(x0: float, x1: float) -> EyeRegion:
        return EyeRegion(
            x=face.x + int(round(face.width * x0)),
            y=y,
            width=max(1, int(round(face.width * (x1 - x0)))),
            height=h,
        )

    return _box(cfg.left_eye_x0, cfg.left_eye_x1), _box(cfg.right_eye_x0, cfg.right_eye_x1)


def sensor_point(pupils: PupilPair) -> Optional[Tuple[float, float]]:
    """Normalized pupil position inside its eye box, averaged over detected eyes."""
    points = []
    for det, region in ((pupils.left, pupils.left_region), (pupils.right, pupils.right_region)):
        if region is None or not det.is_valid():
            continue
        points.append((
            (det.x - region.x) / region.width,
            (det.y - region.y) / region.height,
        ))
    if not points:
        return None
    xs, ys = zip(*points)
    return (sum(xs) / len(xs), sum(ys) / len(ys))


class PupilDetector:
    """Runs the dark-circle, edge, colour and partial scans per eye and keeps the best.

    All scans work on the face crop converted to brightness, contrast
    stretched and optionally blurred. When adaptive resolution is on, the crop
    is downscaled after frames that exceed the time budget and scaled back up
    once detection is comfortably fast again.
    """

    def __init__(self, cfg: config_modules.Pupil) -> None:
        self.cfg = cfg
        self.logger = setup_logger("PupilDetector")
        self.working_scale = 1.0

        angles = np.linspace(0.0, 2.0 * math.pi, cfg.circumference_samples, endpoint=False)
        self._cos = np.cos(angles).astype(np.float32)
        self._sin = np.sin(angles).astype(np.float32)

# ---------- Public API ----------

    def detect(self, frame: Frame, face: FaceRegion) -> PupilPair:
        """Detect both pupils inside `face`. Never raises for missing eyes."""
        t0 = perf_counter()
        scale = self.working_scale if self.cfg.adaptive_resolution else 1.0

        gray, rgb = self._prepare(frame, face, scale)
        left_region, right_region = eye_regions(face, self.cfg)

        left = self._detect_eye(gray, rgb, face, left_region, scale)
        right = self._detect_eye(gray, rgb, face, right_region, scale)

        self._adapt(perf_counter() - t0)

        return PupilPair(
            left=left,
            right=right,
            left_region=left_region,
            right_region=right_region,
            working_scale=scale,
        )

    def reset(self) -> None:
        self.working_scale = 1.0

# ---------- Internals ----------

    def _prepare(
        self,
        frame: Frame,
        face: FaceRegion,
        scale: float,
    ) -> Tuple[NDArray[np.uint8], Optional[NDArray[np.uint8]]]:
        """Face crop as enhanced brightness, plus RGB for the colour scan."""
        rgba = frame.rgba()
        roi = rgba[face.y:face.y + face.height, face.x:face.x + face.width, :3]

        bright = roi.astype(np.float32).mean(axis=2)
        bright = (bright - 128.0) * self.cfg.contrast_boost + 128.0
        gray = np.clip(bright, 0, 255).astype(np.uint8)

        k = int(self.cfg.blur_kernel)
        if k >= 3:
            k = k if k % 2 == 1 else k + 1
            gray = cv2.GaussianBlur(gray, (k, k), 0)

        rgb = np.ascontiguousarray(roi) if self.cfg.use_color_method else None

        if scale < 1.0:
            size = (max(1, int(round(face.width * scale))), max(1, int(round(face.height * scale))))
            gray = cv2.resize(gray, size, interpolation=cv2.INTER_AREA)
            if rgb is not None:
                rgb = cv2.resize(rgb, size, interpolation=cv2.INTER_AREA)

        return gray, rgb

    def _detect_eye(
        self,
        gray: NDArray[np.uint8],
        rgb: Optional[NDArray[np.uint8]],
        face: FaceRegion,
        region: EyeRegion,
        scale: float,
    ) -> EyeDetection:
        cfg = self.cfg
        rx = int(round((region.x - face.x) * scale))
        ry = int(round((region.y - face.y) * scale))
        rw = int(round(region.width * scale))
        rh = int(round(region.height * scale))
        crop = np.ascontiguousarray(gray[ry:ry + rh, rx:rx + rw])
        rh, rw = crop.shape

        r_min = max(1.0, cfg.min_radius * scale)
        r_max = min(cfg.max_radius * scale, (min(rh, rw) - 1) / 2.0 - cfg.boundary_gap)
        if r_max < r_min:
            self.logger.debug("Eye box %dx%d too small for radius %.1f, skipped", rw, rh, r_min)
            return EyeDetection()

        candidates: list[Tuple[DetectionMethod, Candidate]] = []

        if cfg.use_dark_circle_method:
            found = self._dark_circle(crop, r_min, r_max)
            if found is not None:
                candidates.append((DetectionMethod.DARK_CIRCLE, found))

        if cfg.use_partial_method:
            top = int(rh * cfg.partial_skip_ratio)
            lower = crop[top:]
            if (min(lower.shape) - 1) / 2.0 - cfg.boundary_gap >= r_min:
                part_max = min(r_max, (min(lower.shape) - 1) / 2.0 - cfg.boundary_gap)
                found = self._dark_circle(lower, r_min, part_max)
                if found is not None:
                    x, y, r, c = found
                    candidates.append((DetectionMethod.PARTIAL, (x, y + top, r, c)))

        if cfg.use_edge_method:
            found = self._edge_circle(crop, r_min, r_max)
            if found is not None:
                candidates.append((DetectionMethod.EDGE, found))

        if cfg.use_color_method and rgb is not None:
            found = self._color_blob(rgb[ry:ry + rh, rx:rx + rw], crop, r_min, r_max)
            if found is not None:
                candidates.append((DetectionMethod.COLOR, found))

        accepted = [
            (m, c) for m, c in candidates
            if c[3] >= cfg.confidence_floor and all(math.isfinite(v) for v in c)
        ]
        if not accepted:
            return EyeDetection()

        method, (x, y, r, conf) = max(accepted, key=lambda mc: mc[1][3])
        return EyeDetection(
            x=face.x + (rx + x) / scale,
            y=face.y + (ry + y) / scale,
            radius=float(np.clip(r / scale, cfg.min_radius, cfg.max_radius)),
            confidence=float(min(conf, 1.0)),
            detected=True,
            method=method,
        )

    # --- dark circle ---

    def _circle_scores(
        self,
        img: NDArray[np.uint8],
        cx: NDArray[np.float32],
        cy: NDArray[np.float32],
        r: float,
    ) -> NDArray[np.float32]:
        """Score circles of radius r centred at (cx, cy); all arrays are 1-D."""
        cfg = self.cfg
        xs = np.rint(cx[:, None] + r * self._cos).astype(np.intp)
        ys = np.rint(cy[:, None] + r * self._sin).astype(np.intp)
        on_circle = img[ys, xs].astype(np.float32)

        rr = r + cfg.boundary_gap
        xs = np.rint(cx[:, None] + rr * self._cos).astype(np.intp)
        ys = np.rint(cy[:, None] + rr * self._sin).astype(np.intp)
        ring = img[ys, xs].astype(np.float32)

        thr = float(cfg.dark_threshold)
        dark_ratio = (on_circle < thr).mean(axis=1)
        darkness = np.clip((thr - on_circle.mean(axis=1)) / thr, 0.0, 1.0)
        boundary = ((ring - on_circle) > cfg.boundary_contrast).mean(axis=1)

        return (
            cfg.weight_dark_ratio * dark_ratio
            + cfg.weight_darkness * darkness
            + cfg.weight_boundary * boundary
        )

    def _best_at_radius(
        self,
        img: NDArray[np.uint8],
        r: float,
        xs: NDArray[np.float32],
        ys: NDArray[np.float32],
    ) -> Optional[Candidate]:
        h, w = img.shape
        reach = r + self.cfg.boundary_gap
        xs = xs[(xs - reach >= 0) & (xs + reach <= w - 1)]
        ys = ys[(ys - reach >= 0) & (ys + reach <= h - 1)]
        if xs.size == 0 or ys.size == 0:
            return None
        gy, gx = np.meshgrid(ys, xs, indexing="ij")
        cx, cy = gx.ravel(), gy.ravel()
        scores = self._circle_scores(img, cx, cy, r)
        i = int(np.argmax(scores))
        return (float(cx[i]), float(cy[i]), float(r), float(scores[i]))

    def _dark_circle(self, img: NDArray[np.uint8], r_min: float, r_max: float) -> Optional[Candidate]:
        """Coarse grid/radius scan followed by a +/- refine_window px fine pass."""
        cfg = self.cfg
        h, w = img.shape
        step = max(1, int(cfg.grid_step))
        grid_x = np.arange(0, w, step, dtype=np.float32)
        grid_y = np.arange(0, h, step, dtype=np.float32)

        best: Optional[Candidate] = None
        for r in np.arange(r_min, r_max + 1e-6, max(1, cfg.radius_step)):
            cand = self._best_at_radius(img, float(r), grid_x, grid_y)
            if cand is not None and (best is None or cand[3] > best[3]):
                best = cand
        if best is None:
            return None

        bx, by, br, _ = best
        win = int(cfg.refine_window)
        fine_x = np.arange(bx - win, bx + win + 1, dtype=np.float32)
        fine_y = np.arange(by - win, by + win + 1, dtype=np.float32)
        lo = max(r_min, br - cfg.radius_step)
        hi = min(r_max, br + cfg.radius_step)
        for r in np.arange(lo, hi + 1e-6, 1.0):
            cand = self._best_at_radius(img, float(r), fine_x, fine_y)
            if cand is not None and cand[3] > best[3]:
                best = cand
        return best

    # --- edge ---

    def _edge_circle(self, img: NDArray[np.uint8], r_min: float, r_max: float) -> Optional[Candidate]:
        cfg = self.cfg
        h, w = img.shape
        circles = cv2.HoughCircles(
            img,
            cv2.HOUGH_GRADIENT,
            dp=1,
            minDist=float(max(h, w)),
            param1=cfg.hough_param1,
            param2=cfg.hough_param2,
            minRadius=int(math.floor(r_min)),
            maxRadius=max(int(math.floor(r_min)) + 1, int(math.ceil(r_max))),
        )
        if circles is None:
            return None

        x, y, r = (float(v) for v in circles[0][0])
        if x - r < 0 or y - r < 0 or x + r > w - 1 or y + r > h - 1:
            return None

        f = img.astype(np.float32)
        gx = cv2.Sobel(f, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(f, cv2.CV_32F, 0, 1, ksize=3)
        mag = cv2.magnitude(gx, gy)
        peak = float(mag.max())
        if peak <= 0:
            return None

        xs = np.clip(np.rint(x + r * self._cos).astype(np.intp), 0, w - 1)
        ys = np.clip(np.rint(y + r * self._sin).astype(np.intp), 0, h - 1)
        edge = float(mag[ys, xs].mean()) / peak

        inside = np.zeros(img.shape, dtype=np.uint8)
        cv2.circle(inside, (int(round(x)), int(round(y))), max(1, int(round(r))), 255, -1)
        mean_inside = float(cv2.mean(img, mask=inside)[0])
        thr = float(cfg.dark_threshold)
        darkness = min(max((thr - mean_inside) / thr, 0.0), 1.0)

        return (x, y, r, 0.5 * edge + 0.5 * darkness)

    # --- colour ---

    def _color_blob(
        self,
        rgb: NDArray[np.uint8],
        gray: NDArray[np.uint8],
        r_min: float,
        r_max: float,
    ) -> Optional[Candidate]:
        cfg = self.cfg
        hsv = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2HSV)
        mask = ((hsv[..., 2] < cfg.dark_threshold) & (hsv[..., 1] < cfg.color_max_saturation))
        mask = mask.astype(np.uint8) * 255

        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
        if not contours:
            return None
        blob = max(contours, key=cv2.contourArea)
        area = float(cv2.contourArea(blob))
        perimeter = float(cv2.arcLength(blob, True))
        if area <= 0 or perimeter <= 0:
            return None

        radius = math.sqrt(area / math.pi)
        if radius < r_min * 0.5 or radius > r_max:
            return None

        m = cv2.moments(blob)
        if m["m00"] == 0:
            return None
        cx = m["m10"] / m["m00"]
        cy = m["m01"] / m["m00"]

        circularity = min(4.0 * math.pi * area / (perimeter * perimeter), 1.0)

        blob_mask = np.zeros(mask.shape, dtype=np.uint8)
        cv2.drawContours(blob_mask, [blob], -1, 255, -1)
        mean_inside = float(cv2.mean(gray, mask=blob_mask)[0])
        thr = float(cfg.dark_threshold)
        darkness = min(max((thr - mean_inside) / thr, 0.0), 1.0)

        return (cx, cy, radius, 0.6 * circularity + 0.4 * darkness)

    # --- resolution control ---

    def _adapt(self, elapsed: float) -> None:
        cfg = self.cfg
        if not cfg.adaptive_resolution:
            self.working_scale = 1.0
            return

        old = self.working_scale
        if elapsed > cfg.frame_budget_s and old > cfg.min_scale:
            self.working_scale = max(cfg.min_scale, old * cfg.scale_step)
        elif elapsed < cfg.frame_budget_s / 2.0 and old < 1.0:
            self.working_scale = min(1.0, old / cfg.scale_step)

        if self.working_scale != old:
            self.logger.info(
                "Detection took %.1f ms, working scale %.2f -> %.2f",
                elapsed * 1000.0, old, self.working_scale,
            )
