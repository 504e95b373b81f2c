"""Collaborator interfaces injected into the core."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from gaze_core.calibration.calibration_types import CalibrationResult
    from gaze_core.tracking.tracking_types import FaceRegion, Frame


class IFrameSource(ABC):
    """Camera side: hands the core one RGBA frame per tick."""

    @abstractmethod
    def next_frame(self) -> Optional[Frame]:
        """Return the next frame, or None when the source is exhausted."""


class IFaceDetector(ABC):
    """Optional external face detector; the skin-tone fallback is used without one."""

    @abstractmethod
    def detect(self, frame: Frame) -> Optional[FaceRegion]:
        """Face box for the frame, or None."""


class ISelectionSink(ABC):
    """Receives dwell progress and committed selections (text board, speech, ...)."""

    @abstractmethod
    def on_dwell_progress(self, target_id: str, progress: float) -> None:
        """Dwell progress 0..1 for the hovered target or zone."""

    @abstractmethod
    def on_select(self, target_id: str) -> None:
        """A target or zone was selected."""


class ICalibrationListener(ABC):
    """Receives calibration progress and the terminal result."""

    @abstractmethod
    def on_calibration_progress(self, point_index: int, progress: float) -> None:
        """Fixation progress 0..1 on the current calibration point."""

    @abstractmethod
    def on_calibration_complete(self, result: CalibrationResult) -> None:
        """Calibration finished (successfully or not)."""
