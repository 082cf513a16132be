"""Supervised background workers for leaf operations.

The pool owns every worker thread it starts. Each submission produces exactly
one call to its ``on_done`` callback: with the operation's outcome, or with
``Err(LeafInterrupted)`` if the pool shut down before the work ran.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Coroutine
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from typing import Any, TypeVar

from dotask.asyncio_thread import AsyncioThread
from dotask.errors import LeafInterrupted, WorkerSpawnFailed
from dotask.result import Err, Ok, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkerContext:
    """What a leaf operation can see of the pool that runs it."""

    def __init__(self, pool: WorkerPool) -> None:
        self._pool = pool

    @property
    def stopping(self) -> bool:
        return self._pool._stopping.is_set()

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, waking early if the pool shuts down.

        Raises:
            LeafInterrupted: If the pool began shutting down during the sleep
        """
        if self._pool._stopping.wait(seconds):
            raise LeafInterrupted(f"sleep of {seconds}s interrupted by shutdown")

    def run_coroutine(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the pool's asyncio thread and wait for its result."""
        if self.stopping:
            coro.close()
            raise LeafInterrupted("pool is shutting down")
        try:
            return self._pool._ensure_asyncio_thread().submit(coro)
        except CancelledError as exc:
            raise LeafInterrupted("coroutine cancelled by shutdown") from exc


class WorkerPool:
    """Thread pool that tracks in-flight leaf work and joins it on shutdown."""

    def __init__(self, *, max_workers: int, thread_name_prefix: str = "dotask-worker") -> None:
        self._max_workers = max_workers
        self._thread_name_prefix = thread_name_prefix
        self._executor: ThreadPoolExecutor | None = None
        self._asyncio_thread: AsyncioThread | None = None
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._in_flight: set[Future[Result[Any]]] = set()
        self._stopping = threading.Event()
        self._closed = False

    def _ensure_executor(self) -> ThreadPoolExecutor:
        executor = self._executor
        if executor is not None:
            return executor
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=self._thread_name_prefix,
                )
            return self._executor

    def _ensure_asyncio_thread(self) -> AsyncioThread:
        with self._lock:
            if self._asyncio_thread is None:
                self._asyncio_thread = AsyncioThread(name=f"{self._thread_name_prefix}-asyncio")
            thread = self._asyncio_thread
        thread.start()
        return thread

    def submit(
        self,
        operation: Callable[[WorkerContext], Any],
        on_done: Callable[[Result[Any]], None],
    ) -> None:
        """Run ``operation`` on a worker and report its outcome to ``on_done``.

        ``on_done`` runs on the worker thread (or on the shutting-down thread
        for work that never started).

        Raises:
            WorkerSpawnFailed: If the pool is closed or cannot start a worker
        """
        if self._closed:
            raise WorkerSpawnFailed("worker pool is shut down")

        context = WorkerContext(self)

        def run() -> Result[Any]:
            try:
                return Ok(operation(context))
            except BaseException as exc:
                # SystemExit and friends still belong to the waiting task.
                return Err(exc)

        try:
            future = self._ensure_executor().submit(run)
        except RuntimeError as exc:
            raise WorkerSpawnFailed(f"could not start background work: {exc}") from exc

        with self._lock:
            self._in_flight.add(future)

        def finished(done: Future[Result[Any]]) -> None:
            outcome: Result[Any]
            if done.cancelled():
                outcome = Err(LeafInterrupted("leaf cancelled before it started"))
            elif (error := done.exception()) is not None:
                outcome = Err(error)
            else:
                outcome = done.result()
            try:
                on_done(outcome)
            finally:
                with self._idle:
                    self._in_flight.discard(done)
                    if not self._in_flight:
                        self._idle.notify_all()

        future.add_done_callback(finished)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def closed(self) -> bool:
        return self._closed

    def shutdown(self, timeout: float | None = 5.0) -> bool:
        """Interrupt sleeping leaves, cancel queued ones and join the workers.

        Returns:
            True if every in-flight leaf finished within ``timeout``
        """
        self._closed = True
        self._stopping.set()
        with self._lock:
            executor = self._executor
            asyncio_thread = self._asyncio_thread

        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        if asyncio_thread is not None:
            asyncio_thread.stop(timeout=timeout if timeout is not None else 5.0)
        # In-flight entries are dropped only after on_done has run.
        with self._idle:
            self._idle.wait_for(lambda: not self._in_flight, timeout=timeout)
            not_done = len(self._in_flight)
        if not_done:
            logger.warning("%d leaf operation(s) still running after shutdown", not_done)
        return not not_done


__all__ = ["WorkerContext", "WorkerPool"]
