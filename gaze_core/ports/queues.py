"""Frame handoff between a capture thread and the processing thread."""

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class LatestFrameQueue(Generic[T]):
    """
    Single-producer/single-consumer slot that keeps only the newest item.
    put() never blocks: an unconsumed item is replaced (drop-oldest) and
    counted in `dropped`. get() blocks until an item arrives or the
    timeout expires.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: Optional[T] = None
        self._has_item = False
        self._closed = False
        self.dropped = 0
        self.delivered = 0

    def put(self, item: T) -> None:
        with self._cond:
            if self._has_item:
                self.dropped += 1
            self._item = item
            self._has_item = True
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Newest item, or None on timeout / after close()."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._has_item or self._closed, timeout=timeout):
                return None
            if not self._has_item:
                return None
            item = self._item
            self._item = None
            self._has_item = False
            self.delivered += 1
            return item

    def clear(self) -> None:
        with self._cond:
            self._item = None
            self._has_item = False

    def close(self) -> None:
        """Wake a blocked consumer for shutdown."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed
