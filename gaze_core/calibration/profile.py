"""Versioned calibration profile (plain dict / JSON) for reload without recalibrating."""

from __future__ import annotations

import json
import math
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import gaze_core.calibration.calibration_types as ct
from gaze_core.calibration.fit import transform_is_usable
from gaze_core.errors import CalibrationProfileError

PROFILE_VERSION = "1.0"


def to_profile(
    transform: ct.CalibrationTransform,
    accuracy: ct.CalibrationAccuracy,
    version: str = PROFILE_VERSION,
) -> Dict[str, Any]:
    """Serialize a fitted transform and its accuracy to a JSON-ready dict."""
    transform_d = asdict(transform)
    transform_d["quadrant_correction"] = [list(c) for c in transform.quadrant_correction]
    return {
        "version": version,
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "transform": transform_d,
        "accuracy": asdict(accuracy),
    }


def from_profile(
    data: Dict[str, Any],
    version: str = PROFILE_VERSION,
) -> Tuple[ct.CalibrationTransform, ct.CalibrationAccuracy]:
    """Parse a profile dict produced by `to_profile`.

    Raises:
        CalibrationProfileError: wrong version, missing keys or unusable values.
    """
    if not isinstance(data, dict):
        raise CalibrationProfileError("profile must be a mapping")
    found = data.get("version")
    if found != version:
        raise CalibrationProfileError(f"profile version {found!r} is not supported (expected {version!r})")

    try:
        raw_t = data["transform"]
        raw_a = data["accuracy"]
        corrections = [(float(c[0]), float(c[1])) for c in raw_t["quadrant_correction"]]
        transform = ct.CalibrationTransform(
            scale_x=float(raw_t["scale_x"]),
            scale_y=float(raw_t["scale_y"]),
            offset_x=float(raw_t["offset_x"]),
            offset_y=float(raw_t["offset_y"]),
            skew_x=float(raw_t.get("skew_x", 0.0)),
            skew_y=float(raw_t.get("skew_y", 0.0)),
            quadrant_correction=corrections,
        )
        accuracy = ct.CalibrationAccuracy(
            overall=float(raw_a["overall"]),
            horizontal=float(raw_a["horizontal"]),
            vertical=float(raw_a["vertical"]),
            stability=float(raw_a["stability"]),
        )
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise CalibrationProfileError(f"malformed calibration profile: {e}") from e

    if not transform_is_usable(transform):
        raise CalibrationProfileError("profile transform has zero scale or non-finite values")
    if not all(math.isfinite(v) for v in asdict(accuracy).values()):
        raise CalibrationProfileError("profile accuracy has non-finite values")
    return transform, accuracy


def save_profile(
    path: Union[str, Path],
    transform: ct.CalibrationTransform,
    accuracy: ct.CalibrationAccuracy,
    version: str = PROFILE_VERSION,
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(to_profile(transform, accuracy, version), f, indent=2)
    return path


def load_profile(
    path: Union[str, Path],
    version: str = PROFILE_VERSION,
) -> Tuple[ct.CalibrationTransform, ct.CalibrationAccuracy]:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise CalibrationProfileError(f"{path} is not valid JSON: {e}") from e
    return from_profile(data, version)
