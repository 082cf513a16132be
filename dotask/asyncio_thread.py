"""Dedicated asyncio event loop in a background thread.

``AwaitCoroutine`` leaves run their coroutine here. The loop is owned by a
:class:`~dotask.workers.WorkerPool`, started on first use and stopped when the
pool shuts down.

Usage:
    thread = AsyncioThread()
    thread.start()

    # Submit coroutine and block until complete
    result = thread.submit(async_function())

    # Clean up
    thread.stop()
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


class AsyncioThread:
    """Manages an asyncio event loop running in a daemon thread.

    Thread Safety:
        - start() is thread-safe and idempotent
        - submit() is thread-safe
        - stop() is thread-safe
    """

    def __init__(self, name: str = "dotask-asyncio") -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the background loop; blocks until it accepts work."""
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._started.clear()
                self._thread = threading.Thread(
                    target=self._run_loop,
                    name=self._name,
                    daemon=True,
                )
                self._thread.start()

        # Wait outside the lock so a concurrent stop() cannot deadlock us
        self._started.wait()

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._started.set()

        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            self._loop = None

    def submit(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run ``coro`` on the background loop and block until it finishes.

        Raises:
            RuntimeError: If the loop is not running
            TimeoutError: If timeout expires
            Exception: Any exception raised by the coroutine
        """
        if self._thread is None or not self._thread.is_alive():
            self.start()

        loop = self._loop
        if loop is None:
            coro.close()
            raise RuntimeError("AsyncioThread not started or already stopped")

        future = asyncio.run_coroutine_threadsafe(coro, loop)
        return future.result(timeout=timeout)

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop the loop and join the thread.

        Returns:
            True if the thread stopped within ``timeout``
        """
        with self._lock:
            loop, thread = self._loop, self._thread
            if loop is None or thread is None:
                return True
            loop.call_soon_threadsafe(loop.stop)

        thread.join(timeout=timeout)
        stopped = not thread.is_alive()
        if stopped:
            with self._lock:
                if self._thread is thread:
                    self._thread = None
        return stopped

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and self._loop is not None


__all__ = ["AsyncioThread"]
