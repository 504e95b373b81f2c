"""A base class for long-running worker threads with lifecycle management."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

log = logging.getLogger(__name__)


class BaseService(ABC):
    """
    Thread lifecycle for hosts that run the gaze pipeline off their UI thread.

    Lifecycle:
      - start()  : spawns the service thread, runs _on_start() then _run()
      - stop()   : requests shutdown; _run() must return soon after
      - join()   : waits for the thread
      - ready()  : blocks until _on_start() marked the service ready
      - is_online(): non-blocking health probe

    Subclasses implement _run() and may override _on_start()/_on_stop().
    """

    def __init__(self, name: str):
        self.name = name

        self._ready = threading.Event()
        self._stop = threading.Event()
        self._service_stopped = threading.Event()

        # Non-daemon so shutdown always runs _on_stop()
        self._thread = threading.Thread(
            target=self._run_wrapper,
            name=f"{self.name}-svc",
            daemon=False,
        )

        self._fatal = False


    # ---------------- Public API ----------------

    def start(self) -> None:
        """Start the service thread."""
        if self._thread.is_alive():
            log.warning("[%s] start() called but thread already running", self.name)
            return
        self._thread.start()


    def stop(self) -> None:
        """Request the service to stop soon."""
        self._stop.set()


    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the service thread to exit."""
        self._thread.join(timeout=timeout)


    def ready(self, timeout: Optional[float] = None) -> bool:
        """True once the service reported ready (False on timeout)."""
        return self._ready.wait(timeout=timeout)


    def is_online(self) -> bool:
        """Thread alive, ready and not failed."""
        return self._thread.is_alive() and self._ready.is_set() and not self._fatal


    def stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until cleanup finished; True if it did before the timeout."""
        return self._service_stopped.wait(timeout=timeout)


    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()


    # ---------------- Internals ----------------

    def _run_wrapper(self) -> None:
        """_on_start(), then _run(), then _on_stop() even after a failure."""
        try:
            try:
                self._on_start()
            except Exception:  # pylint: disable=broad-except
                log.exception("[%s] error during _on_start()", self.name)
                self._fatal = True
                return

            try:
                self._run()
            except Exception:  # pylint: disable=broad-except
                self._fatal = True
                log.exception("[%s] crashed inside _run()", self.name)

        finally:
            try:
                self._on_stop()
            except Exception:  # pylint: disable=broad-except
                log.exception("[%s] error during _on_stop()", self.name)
            finally:
                self._service_stopped.set()


    # ---------------- Hooks for subclasses ----------------

    def _on_start(self) -> None:
        """Acquire resources; call self._ready.set() once operational."""


    @abstractmethod
    def _run(self) -> None:
        """Main loop; return promptly once self._stop is set."""
        raise NotImplementedError


    def _on_stop(self) -> None:
        """Release resources. Must be safe after a partial _on_start()."""
