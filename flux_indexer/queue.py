"""A bounded, closable, thread-safe queue used to hand heights to the workers."""

from __future__ import annotations

import threading
from collections import deque
from datetime import timedelta
from typing import Generic, TypeVar

from flux_indexer.utils import sleep_unless_cancelled

T = TypeVar("T")

# How often blocked calls re-check their cancellation event.
_POLL_INTERVAL = 0.02


class QueueClosed(Exception):
    """Raised when no value can be taken or put: the queue is closed, or the wait was cancelled."""


class WorkQueue(Generic[T]):
    """A buffered FIFO queue shared between producer and worker threads."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"queue size must be positive, got {size}")
        self._size = size
        self._items: deque[T] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def put(self, value: T) -> None:
        """Insert ``value``, blocking while the queue is full."""
        with self._cond:
            while True:
                if self._closed:
                    raise QueueClosed("put on a closed queue")
                if len(self._items) < self._size:
                    self._items.append(value)
                    self._cond.notify_all()
                    return
                self._cond.wait()

    def put_unless_cancelled(self, cancel: threading.Event, value: T) -> bool:
        """Insert ``value``, waiting for space; return False if ``cancel`` is set first."""
        with self._cond:
            while True:
                if cancel.is_set():
                    return False
                if self._closed:
                    raise QueueClosed("put on a closed queue")
                if len(self._items) < self._size:
                    self._items.append(value)
                    self._cond.notify_all()
                    return True
                self._cond.wait(_POLL_INTERVAL)

    def put_later(
        self, cancel: threading.Event, delay: timedelta | float, value: T
    ) -> threading.Thread:
        """Insert ``value`` after ``delay`` in a background thread, unless cancelled first."""

        def deliver() -> None:
            if not sleep_unless_cancelled(cancel, delay):
                return
            try:
                self.put_unless_cancelled(cancel, value)
            except QueueClosed:
                pass

        thread = threading.Thread(target=deliver, name="delayed-enqueue", daemon=True)
        thread.start()
        return thread

    def get(self) -> T:
        """Remove and return the oldest value, blocking until one is available.

        Raises QueueClosed once the queue has been closed and emptied.
        """
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if self._items:
                value = self._items.popleft()
                self._cond.notify_all()
                return value
            raise QueueClosed("queue closed")

    def get_unless_cancelled(self, cancel: threading.Event) -> T:
        """Like :meth:`get`, but raise QueueClosed as soon as ``cancel`` is set."""
        with self._cond:
            while True:
                if cancel.is_set():
                    raise QueueClosed("wait cancelled")
                if self._items:
                    value = self._items.popleft()
                    self._cond.notify_all()
                    return value
                if self._closed:
                    raise QueueClosed("queue closed")
                self._cond.wait(_POLL_INTERVAL)

    def close(self) -> None:
        """Mark the queue closed: no more puts; gets drain what is left."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()