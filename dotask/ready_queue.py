"""FIFO ready queue shared between the executor thread and background workers.

Every mutation goes through ``push``/``pop`` under one lock, so handles
enqueued by the same thread come out in the order they went in.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class ReadyQueue(Generic[T]):
    """Mutex-guarded deque with a condition variable for idle waiting.

    ``push`` may be called from any thread. ``pop`` is meant for the single
    executor thread but is safe from anywhere.
    """

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)

    def push(self, item: T) -> None:
        with self._not_empty:
            self._items.append(item)
            self._not_empty.notify()

    def pop(self, timeout: float | None = 0) -> T | None:
        """Remove and return the front item.

        Args:
            timeout: If 0, returns immediately (non-blocking).
                    If None, blocks until an item is available.
                    If > 0, blocks for at most that many seconds.

        Returns:
            The front item, or None if the queue stayed empty or ``wake``
            was called.
        """
        with self._not_empty:
            if not self._items and timeout != 0:
                self._not_empty.wait(timeout)
            if not self._items:
                return None
            return self._items.popleft()

    def wake(self) -> None:
        """Wake a thread blocked in ``pop`` without adding an item."""
        with self._not_empty:
            self._not_empty.notify_all()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __bool__(self) -> bool:
        return len(self) > 0


__all__ = ["ReadyQueue"]
