"""Single-threaded executor that drains the ready queue.

The executor is the only place task bodies run. It pops :class:`Handle`
objects from a FIFO :class:`~dotask.ready_queue.ReadyQueue` and resumes each
one up to the task's next suspension point. Background workers talk to it
through exactly one operation, :meth:`Executor.spawn`.

Usage:
    with Executor() as executor:
        executor.spawn(outer())
        executor.spawn(another())
        executor.block()              # until executor.stop()

    # or, for a single root task
    with Executor() as executor:
        result = executor.run(outer())
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from dotask.config import RootErrorPolicy, RuntimeConfig
from dotask.errors import ExecutorStopped, TaskPanicked, TaskStateError
from dotask.leaf import LeafAwaitable
from dotask.ready_queue import ReadyQueue
from dotask.result import Err, Ok, Result, RunResult
from dotask.task import Handle, Task
from dotask.workers import WorkerPool

logger = logging.getLogger(__name__)

T = TypeVar("T")

RootErrorSink = Callable[[Task[Any], TaskPanicked], None]


@dataclass
class ExecutorStats:
    """Counters updated from the executor thread and from workers."""

    spawned: int = 0
    resumed: int = 0
    completed: int = 0
    failed: int = 0
    leaves_scheduled: int = 0
    leaves_completed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "spawned": self.spawned,
                "resumed": self.resumed,
                "completed": self.completed,
                "failed": self.failed,
                "leaves_scheduled": self.leaves_scheduled,
                "leaves_completed": self.leaves_completed,
            }


class Executor:
    """Owns the ready queue and the worker pool, and runs task bodies.

    Every executor is independent: tasks bind to the executor that first
    spawns or awaits them, so several executors can run side by side (for
    example one per test).

    Args:
        config: Base configuration; defaults to ``RuntimeConfig.from_env()``
        max_workers: Override ``config.max_workers``
        idle_wait: Override ``config.idle_wait``
        root_errors: Override ``config.root_errors``
        on_root_error: Receives every failed root task together with its
            ``TaskPanicked`` error. When given, it replaces the configured
            root error policy.
        name: Prefix for worker thread names
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        *,
        max_workers: int | None = None,
        idle_wait: float | None = None,
        root_errors: RootErrorPolicy | None = None,
        on_root_error: RootErrorSink | None = None,
        name: str = "dotask",
    ) -> None:
        base = config if config is not None else RuntimeConfig.from_env()
        self.config = base.with_overrides(
            max_workers=max_workers,
            idle_wait=idle_wait,
            root_errors=root_errors,
        )
        self.name = name
        self.stats = ExecutorStats()
        self._queue: ReadyQueue[Handle] = ReadyQueue()
        self._pool = WorkerPool(
            max_workers=self.config.max_workers,
            thread_name_prefix=f"{name}-worker",
        )
        self._on_root_error = on_root_error
        self._stop_requested = threading.Event()
        self._loop_lock = threading.Lock()
        self._loop_thread: int | None = None
        self._pending_root_error: TaskPanicked | None = None

    def __enter__(self) -> Executor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"<Executor {self.name} ready={len(self._queue)} in_flight={self._pool.in_flight}>"

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def spawn(self, item: Task[Any] | Handle) -> None:
        """Append a root task or a resumption handle to the ready queue.

        Never resumes anything synchronously. Safe to call from any thread.

        Raises:
            TaskStateError: If ``item`` is a task that was already spawned,
                awaited or started, or belongs to another executor
        """
        if isinstance(item, Task):
            item._claim_as_root(self)
            handle = Handle(item, Ok(None))
        elif isinstance(item, Handle):
            handle = item
        else:
            raise TypeError(f"spawn expects a Task or Handle, got {type(item).__name__}")
        self.stats.incr("spawned")
        self._queue.push(handle)

    def run_once(self, timeout: float | None = 0) -> bool:
        """Resume at most one ready handle.

        Called from outside a running loop, this briefly becomes the driving
        thread, so it cannot race with :meth:`block` on another thread.

        Args:
            timeout: How long to wait for a handle when the queue is empty;
                see :meth:`ReadyQueue.pop`.

        Returns:
            True if a handle was resumed.

        Raises:
            TaskStateError: If another thread is driving the loop
        """
        if self._loop_thread == threading.get_ident():
            return self._resume_next(timeout)
        with self._driving():
            return self._resume_next(timeout)

    def _resume_next(self, timeout: float | None) -> bool:
        handle = self._queue.pop(timeout)
        if handle is None:
            return False
        self.stats.incr("resumed")
        if self.config.debug:
            logger.debug("resume %s (%s) with %r", handle.task.id, handle.task.name, handle.outcome)
        handle.resume()
        self._raise_pending_root_error()
        return True

    def block(self) -> None:
        """Drive the loop until :meth:`stop` is called.

        An empty queue does not end the loop; it waits for a worker or another
        thread to spawn more work. A ``stop()`` that arrived before the loop
        started ends this drive at once.
        """
        with self._driving():
            try:
                while not self._stop_requested.is_set():
                    self._resume_next(self.config.idle_wait)
            finally:
                self._stop_requested.clear()

    def run(self, task: Task[T] | None = None) -> RunResult[T] | None:
        """Run ``task`` to completion, or drive the loop until stopped.

        With a task, this spawns it (unless already spawned) and returns a
        ``RunResult`` once it is done. Without one it behaves like
        :meth:`block` and returns None.
        """
        if task is None:
            self.block()
            return None
        (outcome,) = self.run_until_complete(task)
        return RunResult(task_id=task.id, task_name=task.name, result=outcome)

    async def run_async(self, task: Task[T]) -> RunResult[T]:
        """Run ``task`` from asyncio code without blocking the event loop.

        The executor loop runs on a thread from the default executor.
        """
        result = await asyncio.to_thread(self.run, task)
        assert result is not None
        return result

    def run_until_complete(self, *tasks: Task[Any]) -> list[Result[Any]]:
        """Spawn ``tasks`` as roots and drive the loop until all are done.

        Tasks that were already spawned on this executor are waited for, not
        spawned again.

        Returns:
            Each task's outcome, in argument order

        Raises:
            ExecutorStopped: If :meth:`stop` was called first
        """
        for task in tasks:
            if not (task._is_root and task.executor is self):
                self.spawn(task)

        with self._driving():
            try:
                while not all(task.done for task in tasks):
                    if self._stop_requested.is_set():
                        unfinished = [str(task.id) for task in tasks if not task.done]
                        raise ExecutorStopped(f"stopped before {', '.join(unfinished)} finished")
                    self._resume_next(self.config.idle_wait)
            finally:
                self._stop_requested.clear()

        outcomes: list[Result[Any]] = []
        for task in tasks:
            assert task.outcome is not None
            outcomes.append(task.outcome)
        return outcomes

    def stop(self) -> None:
        """Ask the loop to return after the current resumption. Thread-safe."""
        self._stop_requested.set()
        self._queue.wake()

    def shutdown(self, wait: bool = True) -> bool:
        """Stop the loop and shut the worker pool down.

        Sleeping leaves are interrupted and queued ones cancelled; their
        tasks receive ``LeafInterrupted`` if the executor is driven again.

        Returns:
            True if every worker finished within the configured timeout
        """
        self.stop()
        finished = self._pool.shutdown(timeout=self.config.shutdown_timeout if wait else 0)
        with self._loop_lock:
            # A driving loop clears the flag when it returns.
            if self._loop_thread is None:
                self._stop_requested.clear()
        return finished

    @property
    def ready(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        return self._pool.in_flight

    # ------------------------------------------------------------------
    # Task-facing hooks
    # ------------------------------------------------------------------

    def _submit_leaf(self, task: Task[Any], leaf: LeafAwaitable) -> None:
        def deliver(outcome: Result[Any]) -> None:
            self.stats.incr("leaves_completed")
            self.spawn(Handle(task, outcome))

        self._pool.submit(leaf.perform, deliver)
        self.stats.incr("leaves_scheduled")
        if self.config.debug:
            logger.debug("%s (%s) awaits %s", task.id, task.name, leaf.describe())

    def _task_finished(self, task: Task[Any]) -> None:
        outcome = task.outcome
        self.stats.incr("failed" if isinstance(outcome, Err) else "completed")

    def _root_finished(self, task: Task[Any]) -> None:
        outcome = task.outcome
        if not isinstance(outcome, Err):
            return
        error = outcome.error
        assert isinstance(error, TaskPanicked)

        if self._on_root_error is not None:
            try:
                self._on_root_error(task, error)
            except Exception:
                logger.exception("on_root_error callback failed for %s (%s)", task.id, task.name)
            return

        original = error.original
        logger.error(
            "Root %s (%s) failed",
            task.id,
            task.name,
            exc_info=(type(original), original, original.__traceback__),
        )
        if self.config.root_errors == "raise" and self._pending_root_error is None:
            self._pending_root_error = error

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _raise_pending_root_error(self) -> None:
        error, self._pending_root_error = self._pending_root_error, None
        if error is not None:
            raise error

    def _driving(self) -> _LoopGuard:
        return _LoopGuard(self)


class _LoopGuard:
    """Marks the calling thread as the executor's loop thread."""

    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    def __enter__(self) -> None:
        executor = self._executor
        with executor._loop_lock:
            if executor._loop_thread is not None:
                raise TaskStateError(f"executor {executor.name} is already running")
            executor._loop_thread = threading.get_ident()

    def __exit__(self, *exc_info: Any) -> None:
        executor = self._executor
        with executor._loop_lock:
            executor._loop_thread = None


__all__ = ["Executor", "ExecutorStats", "RootErrorSink"]
