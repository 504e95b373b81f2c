"""Synthetic RGBA frames with a drawn face and pupils, for tests and demos."""

from __future__ import annotations

from typing import Callable, Optional, Sequence, Tuple

import cv2
import numpy as np
from numpy.typing import NDArray

from gaze_core.config_service import config_modules
from gaze_core.ports.interfaces import IFrameSource
from gaze_core.tracking.pupil_detector import eye_regions
from gaze_core.tracking.tracking_types import FaceRegion, Frame, HeadPose

BACKGROUND = (40, 60, 90)
SKIN = (220, 170, 140)
PUPIL = (20, 20, 20)

DEFAULT_SIZE = (320, 240)
DEFAULT_FACE = FaceRegion(x=100, y=40, width=120, height=160, confidence=0.9)


def render_face(
    width: int,
    height: int,
    face: FaceRegion,
    pupils: Sequence[Tuple[float, float]] = (),
    pupil_radius: int = 4,
) -> NDArray[np.uint8]:
    """(height, width, 4) RGBA image: skin ellipse filling `face`, dark pupil discs."""
    img = np.empty((height, width, 3), dtype=np.uint8)
    img[:] = BACKGROUND
    cv2.ellipse(
        img,
        (int(face.x + face.width // 2), int(face.y + face.height // 2)),
        (int(face.width // 2), int(face.height // 2)),
        0, 0, 360, SKIN, -1,
    )
    for px, py in pupils:
        cv2.circle(img, (int(round(px)), int(round(py))), int(pupil_radius), PUPIL, -1)
    alpha = np.full((height, width, 1), 255, dtype=np.uint8)
    return np.ascontiguousarray(np.concatenate([img, alpha], axis=2))


def pupil_positions(
    face: FaceRegion,
    gaze_uv: Tuple[float, float],
    cfg: Optional[config_modules.Pupil] = None,
) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """Pupil centres placed at fraction `gaze_uv` inside each eye box."""
    left, right = eye_regions(face, cfg or config_modules.Pupil())
    u, v = gaze_uv
    return (
        (left.x + u * left.width, left.y + v * left.height),
        (right.x + u * right.width, right.y + v * right.height),
    )


def make_frame(
    timestamp: float,
    gaze_uv: Optional[Tuple[float, float]] = (0.5, 0.5),
    size: Tuple[int, int] = DEFAULT_SIZE,
    face: Optional[FaceRegion] = DEFAULT_FACE,
    pass_face_box: bool = True,
    head_pose: Optional[HeadPose] = None,
    pupil_radius: int = 4,
    cfg: Optional[config_modules.Pupil] = None,
) -> Frame:
    """A Frame with a face and, unless `gaze_uv` is None, both pupils."""
    width, height = size
    pupils: Sequence[Tuple[float, float]] = ()
    if face is not None and gaze_uv is not None:
        pupils = pupil_positions(face, gaze_uv, cfg)
    if face is not None:
        pixels = render_face(width, height, face, pupils, pupil_radius)
    else:
        pixels = np.zeros((height, width, 4), dtype=np.uint8)
        pixels[..., :3] = BACKGROUND
        pixels[..., 3] = 255
    return Frame(
        pixels=pixels,
        width=width,
        height=height,
        timestamp=timestamp,
        face_box=face if pass_face_box else None,
        head_pose=head_pose,
    )


class MockFrameSource(IFrameSource):
    """Yields `count` synthetic frames at `fps`, following `gaze_path(t) -> (u, v)`."""

    def __init__(
        self,
        gaze_path: Callable[[float], Optional[Tuple[float, float]]],
        count: int,
        fps: float = 30.0,
        size: Tuple[int, int] = DEFAULT_SIZE,
        face: Optional[FaceRegion] = DEFAULT_FACE,
    ) -> None:
        self.gaze_path = gaze_path
        self.count = count
        self.fps = fps
        self.size = size
        self.face = face
        self._i = 0

    def next_frame(self) -> Optional[Frame]:
        if self._i >= self.count:
            return None
        t = self._i / self.fps
        self._i += 1
        return make_frame(t, self.gaze_path(t), size=self.size, face=self.face)
