"""Threaded host adapter: processes the newest captured frame off the UI thread."""

from __future__ import annotations

from typing import Callable, Optional

from gaze_core.base_service import BaseService
from gaze_core.errors import GazeCoreError
from gaze_core.pipeline import FrameResult, GazePipeline
from gaze_core.ports.queues import LatestFrameQueue
from gaze_core.tracking.tracking_types import Frame
from gaze_core.utilities.logger_setup import setup_logger


class FrameWorker(BaseService):
    """Pops the latest frame, runs the pipeline and hands the result to `on_result`.

    The capture thread only calls `frames.put(frame)`; frames that arrive
    while one is being processed replace each other (drop-oldest).
    A frame that fails in the pipeline or in `on_result` is logged and
    skipped; the worker keeps running.
    """

    def __init__(
        self,
        pipeline: GazePipeline,
        frames: LatestFrameQueue[Frame],
        on_result: Optional[Callable[[FrameResult], None]] = None,
        poll_interval: float = 0.1,
    ) -> None:
        super().__init__("FrameWorker")
        self.logger = setup_logger("FrameWorker")

        self.pipeline = pipeline
        self.frames = frames
        self.on_result = on_result
        self.poll_interval = poll_interval

        self.processed = 0
        self.failed = 0  # frames the pipeline could not process
        self.last_result: Optional[FrameResult] = None


# ---------- BaseService lifecycle ----------

    def _on_start(self) -> None:
        """Mark the worker ready."""
        self._ready.set()
        self.logger.info("Service is ready.")


    def _run(self) -> None:
        """Process frames until stopped."""
        while not self._stop.is_set():
            frame = self.frames.get(timeout=self.poll_interval)
            if frame is None:
                continue

            try:
                result = self.pipeline.process_frame(frame)
            except GazeCoreError as e:
                self.logger.warning("Dropped frame at %.3f: %s", frame.timestamp, e)
                self.failed += 1
                continue
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("Pipeline failed on frame at %.3f", frame.timestamp)
                self.failed += 1
                continue

            self.processed += 1
            self.last_result = result
            if self.on_result is None:
                continue
            try:
                self.on_result(result)
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("Result callback failed on frame at %.3f", frame.timestamp)


    def _on_stop(self) -> None:
        """Release a consumer blocked on the queue."""
        self.frames.close()
        self.logger.info(
            "Service stopped (%d processed, %d dropped).",
            self.processed, self.frames.dropped,
        )


    def stop(self) -> None:
        super().stop()
        self.frames.close()
