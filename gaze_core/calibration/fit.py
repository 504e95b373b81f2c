"""Point layouts, transform fitting and accuracy scoring."""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

import gaze_core.calibration.calibration_types as ct
from gaze_core.config_service import config_modules
from gaze_core.errors import CalibrationFitError

# ---------- point layouts ----------

def calibration_points(mode: ct.PointMode, margin: float = 0.1) -> List[ct.CalibrationPoint]:
    """Calibration targets, centre first, then corners, then edge midpoints.

    The thirteen point layout adds the four quarter points last.
    """
    lo, hi = margin, 1.0 - margin
    layout = [
        (0.5, 0.5, "center"),
        (lo, lo, "top-left"),
        (hi, lo, "top-right"),
        (lo, hi, "bottom-left"),
        (hi, hi, "bottom-right"),
        (0.5, lo, "top"),
        (lo, 0.5, "left"),
        (hi, 0.5, "right"),
        (0.5, hi, "bottom"),
    ]
    if mode is ct.PointMode.THIRTEEN:
        layout += [
            (0.25, 0.25, "inner-top-left"),
            (0.75, 0.25, "inner-top-right"),
            (0.25, 0.75, "inner-bottom-left"),
            (0.75, 0.75, "inner-bottom-right"),
        ]
    return [ct.CalibrationPoint(i, x, y, label) for i, (x, y, label) in enumerate(layout)]


def validation_points(margin: float = 0.15) -> List[ct.CalibrationPoint]:
    """Row-major 3x3 accuracy-test grid."""
    coords = (margin, 0.5, 1.0 - margin)
    return [
        ct.CalibrationPoint(r * 3 + c, x, y, f"test-{r * 3 + c}")
        for r, y in enumerate(coords)
        for c, x in enumerate(coords)
    ]


# ---------- fitting ----------

def best_samples(samples: Iterable[ct.CalibrationSample]) -> Dict[int, ct.CalibrationSample]:
    """Most confident finite sample per calibration point."""
    best: Dict[int, ct.CalibrationSample] = {}
    for s in samples:
        if not all(math.isfinite(v) for v in (s.raw_x, s.raw_y, s.confidence)):
            continue
        cur = best.get(s.point_id)
        if cur is None or s.confidence > cur.confidence:
            best[s.point_id] = s
    return best


def fit_axis(raw: Sequence[float], target: Sequence[float]) -> Tuple[float, float]:
    """Closed-form least squares target = slope * raw + offset.

    Raises:
        CalibrationFitError: raw values have no spread, or the slope is zero.
    """
    x = np.asarray(raw, dtype=np.float64)
    y = np.asarray(target, dtype=np.float64)
    n = float(x.size)

    sx, sy = x.sum(), y.sum()
    sxy, sxx = (x * y).sum(), (x * x).sum()
    denom = n * sxx - sx * sx
    if n < 2 or abs(denom) <= 1e-12 * max(1.0, n * sxx):
        raise CalibrationFitError("raw gaze did not vary across calibration points")

    slope = (n * sxy - sx * sy) / denom
    offset = (sy - slope * sx) / n
    if not (math.isfinite(slope) and math.isfinite(offset)) or slope == 0.0:
        raise CalibrationFitError(f"degenerate fit (slope={slope}, offset={offset})")
    return float(slope), float(offset)


def quadrant_index(x: float, y: float) -> int:
    """0=TL, 1=TR, 2=BL, 3=BR for a normalized point."""
    return (2 if y >= 0.5 else 0) + (1 if x >= 0.5 else 0)


def apply_linear(t: ct.CalibrationTransform, raw_x: float, raw_y: float) -> Tuple[float, float]:
    return (
        raw_x * t.scale_x + raw_y * t.skew_x + t.offset_x,
        raw_y * t.scale_y + raw_x * t.skew_y + t.offset_y,
    )


def apply_transform(t: ct.CalibrationTransform, raw_x: float, raw_y: float) -> Tuple[float, float]:
    """Map a raw sensor point to normalized screen space, clamped to [0, 1].

    Pure: neither the transform nor any other state is modified.
    """
    x, y = apply_linear(t, raw_x, raw_y)
    cx, cy = t.quadrant_correction[quadrant_index(x, y)]
    return (
        min(max(x + cx, 0.0), 1.0),
        min(max(y + cy, 0.0), 1.0),
    )


def fit_quadrant_correction(
    t: ct.CalibrationTransform,
    samples: Iterable[ct.CalibrationSample],
) -> List[Tuple[float, float]]:
    """Mean residual (target - linear prediction) per predicted quadrant."""
    sums = np.zeros((4, 2), dtype=np.float64)
    counts = np.zeros(4, dtype=np.int64)
    for s in samples:
        if not (math.isfinite(s.raw_x) and math.isfinite(s.raw_y)):
            continue
        px, py = apply_linear(t, s.raw_x, s.raw_y)
        q = quadrant_index(px, py)
        sums[q] += (s.target_x - px, s.target_y - py)
        counts[q] += 1

    corrections = []
    for q in range(4):
        if counts[q]:
            cx, cy = sums[q] / counts[q]
            corrections.append((float(cx), float(cy)))
        else:
            corrections.append((0.0, 0.0))
    return corrections


def fit_linear_transform(
    samples: Sequence[ct.CalibrationSample],
    min_points: int = 4,
) -> ct.CalibrationTransform:
    """Fit the calibration transform.

    Args:
        samples: Every recorded sample of the session.
        min_points: Distinct calibration points required.

    Returns:
        Per-axis linear transform (skew left at 0) with the quadrant
        correction fitted on all samples.

    Raises:
        CalibrationFitError: too few points or degenerate raw data.
    """
    best = best_samples(samples)
    if len(best) < min_points:
        raise CalibrationFitError(
            f"need samples at {min_points} calibration points, got {len(best)}"
        )

    pts = list(best.values())
    scale_x, offset_x = fit_axis([s.raw_x for s in pts], [s.target_x for s in pts])
    scale_y, offset_y = fit_axis([s.raw_y for s in pts], [s.target_y for s in pts])

    transform = ct.CalibrationTransform(
        scale_x=scale_x,
        scale_y=scale_y,
        offset_x=offset_x,
        offset_y=offset_y,
    )
    transform.quadrant_correction = fit_quadrant_correction(transform, samples)
    return transform


# ---------- accuracy ----------

def fit_accuracy(
    t: ct.CalibrationTransform,
    samples: Sequence[ct.CalibrationSample],
) -> ct.CalibrationAccuracy:
    """Accuracy of the fit on its own samples (used when validation is off).

    A mean normalized error of 0.25 scores 0; a std of 0.125 gives 0 stability.
    """
    errors = []
    for s in samples:
        if not (math.isfinite(s.raw_x) and math.isfinite(s.raw_y)):
            continue
        x, y = apply_transform(t, s.raw_x, s.raw_y)
        dx, dy = abs(x - s.target_x), abs(y - s.target_y)
        errors.append((dx, dy, math.hypot(dx, dy)))
    if not errors:
        return ct.CalibrationAccuracy()

    e = np.asarray(errors)
    stability = max(0.0, 1.0 - float(e[:, 2].std()) * 8.0) if len(errors) > 1 else 0.0
    return ct.CalibrationAccuracy(
        overall=max(0.0, 1.0 - float(e[:, 2].mean()) * 4.0),
        horizontal=max(0.0, 1.0 - float(e[:, 0].mean()) * 4.0),
        vertical=max(0.0, 1.0 - float(e[:, 1].mean()) * 4.0),
        stability=stability,
    )


def score_validation_point(
    point: ct.CalibrationPoint,
    screen_points: Sequence[Tuple[float, float]],
    total_samples: int,
    viewport: Tuple[int, int],
    cfg: config_modules.Calibration,
) -> ct.ValidationPointResult:
    """Score one accuracy-test point from its valid transformed samples (screen px)."""
    tx, ty = point.x * viewport[0], point.y * viewport[1]
    valid_ratio = len(screen_points) / total_samples if total_samples else 0.0

    if not screen_points:
        return ct.ValidationPointResult(
            point=point,
            samples=total_samples,
            valid_ratio=valid_ratio,
            mean_distance_px=math.inf,
            std_px=math.inf,
            mean_dx_px=math.inf,
            mean_dy_px=math.inf,
            dispersion_score=0.0,
            score=0.0,
        )

    p = np.asarray(screen_points, dtype=np.float64)
    dx = p[:, 0] - tx
    dy = p[:, 1] - ty
    dist = np.hypot(dx, dy)
    mean_d = float(dist.mean())
    spread = float(np.sqrt(p[:, 0].var() + p[:, 1].var()))

    distance_score = max(0.0, 1.0 - mean_d / cfg.distance_scale_px)
    dispersion_score = max(0.0, 1.0 - spread / cfg.dispersion_scale_px)
    score = 0.6 * distance_score + 0.2 * dispersion_score + 0.2 * valid_ratio

    return ct.ValidationPointResult(
        point=point,
        samples=total_samples,
        valid_ratio=valid_ratio,
        mean_distance_px=mean_d,
        std_px=spread,
        mean_dx_px=float(np.abs(dx).mean()),
        mean_dy_px=float(np.abs(dy).mean()),
        dispersion_score=dispersion_score,
        score=score,
    )


def validation_accuracy(
    results: Sequence[ct.ValidationPointResult],
    cfg: config_modules.Calibration,
) -> ct.CalibrationAccuracy:
    """Aggregate per-point validation results."""
    if not results:
        return ct.CalibrationAccuracy()

    def _axis(mean_px: float) -> float:
        if not math.isfinite(mean_px):
            return 0.0
        return max(0.0, 1.0 - mean_px / cfg.distance_scale_px)

    return ct.CalibrationAccuracy(
        overall=float(np.mean([r.score for r in results])),
        horizontal=float(np.mean([_axis(r.mean_dx_px) for r in results])),
        vertical=float(np.mean([_axis(r.mean_dy_px) for r in results])),
        stability=float(np.mean([r.dispersion_score for r in results])),
    )


def transform_is_usable(t: Optional[ct.CalibrationTransform]) -> bool:
    """False for a missing transform or one with a zero or non-finite term."""
    if t is None:
        return False
    values = [t.scale_x, t.scale_y, t.offset_x, t.offset_y, t.skew_x, t.skew_y]
    values += [v for pair in t.quadrant_correction for v in pair]
    if not all(math.isfinite(v) for v in values):
        return False
    return t.scale_x != 0.0 and t.scale_y != 0.0 and len(t.quadrant_correction) == 4


# ---------- reporting ----------

_RECOMMENDATIONS = {
    ct.AccuracyRating.EXCELLENT: "Excellent accuracy. Gaze tracking should work precisely.",
    ct.AccuracyRating.GOOD: "Good accuracy. Most operations should work without problems.",
    ct.AccuracyRating.FAIR: "Fair accuracy. Usable, but recalibrating is recommended.",
    ct.AccuracyRating.POOR: "Low accuracy. Recalibrating is strongly recommended.",
}


def rate_accuracy(overall: float) -> Tuple[ct.AccuracyRating, str]:
    """Quality tier and user-facing advice for an overall accuracy score."""
    if overall >= 0.8:
        rating = ct.AccuracyRating.EXCELLENT
    elif overall >= 0.6:
        rating = ct.AccuracyRating.GOOD
    elif overall >= 0.4:
        rating = ct.AccuracyRating.FAIR
    else:
        rating = ct.AccuracyRating.POOR
    return rating, _RECOMMENDATIONS[rating]


def distance_summary(
    results: Sequence[ct.ValidationPointResult],
) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """(mean, best, worst) of the per-point mean distances; Nones when no point had samples."""
    d = [r.mean_distance_px for r in results if math.isfinite(r.mean_distance_px)]
    if not d:
        return None, None, None
    return float(np.mean(d)), float(min(d)), float(max(d))
