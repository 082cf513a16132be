"""Leaf awaitables: primitive operations that run on a background worker.

A leaf is never satisfied synchronously. Yielding one from a task body always
suspends the task; the executor submits the leaf to its worker pool and the
worker hands the task back to the ready queue when the work is finished.

Usage:
    @task
    def my_task():
        elapsed = yield Delay(2.0)            # timer
        data = yield Blocking(read_file, p)   # blocking call on a worker
        body = yield AwaitCoroutine(fetch)    # asyncio coroutine
        return data
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dotask.workers import WorkerContext


class LeafAwaitable(ABC):
    """Base class for primitive asynchronous operations."""

    def is_ready(self) -> bool:
        """Leaves always report not-ready, so the first await suspends."""
        return False

    @abstractmethod
    def perform(self, worker: WorkerContext) -> Any:
        """Do the real work on a worker thread and return the resume value."""

    def describe(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class DelayLeaf(LeafAwaitable):
    """Sleep for ``seconds`` on a worker; resumes with the measured elapsed time.

    A pool shutdown interrupts the sleep and the awaiting task receives
    ``LeafInterrupted``.
    """

    seconds: float

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ValueError(f"seconds must be non-negative, got {self.seconds}")

    def perform(self, worker: WorkerContext) -> float:
        started = time.monotonic()
        worker.sleep(self.seconds)
        return time.monotonic() - started

    def describe(self) -> str:
        return f"Delay({self.seconds}s)"


@dataclass(frozen=True)
class BlockingLeaf(LeafAwaitable):
    """Run a blocking callable on a worker; resumes with its return value."""

    fn: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not callable(self.fn):
            raise TypeError(f"fn must be callable, got {type(self.fn).__name__}")

    def perform(self, worker: WorkerContext) -> Any:
        return self.fn(*self.args, **self.kwargs)

    def describe(self) -> str:
        return f"Blocking({getattr(self.fn, '__qualname__', repr(self.fn))})"


@dataclass(frozen=True)
class AwaitCoroutineLeaf(LeafAwaitable):
    """Run an asyncio coroutine function on the pool's event-loop thread.

    The coroutine object is created on the worker, so the leaf can be built
    (and discarded) without leaking a never-awaited coroutine.
    """

    coro_fn: Callable[..., Coroutine[Any, Any, Any]]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not callable(self.coro_fn):
            raise TypeError(
                f"coro_fn must be a coroutine function, got {type(self.coro_fn).__name__}"
            )

    def perform(self, worker: WorkerContext) -> Any:
        return worker.run_coroutine(self.coro_fn(*self.args, **self.kwargs))

    def describe(self) -> str:
        return f"AwaitCoroutine({getattr(self.coro_fn, '__qualname__', repr(self.coro_fn))})"


def Delay(seconds: float) -> DelayLeaf:
    """Wait for ``seconds`` without blocking the executor.

    Example:
        @task
        def my_task():
            elapsed = yield Delay(5.0)
            return elapsed
    """
    return DelayLeaf(seconds=seconds)


def Blocking(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> BlockingLeaf:
    """Call ``fn(*args, **kwargs)`` on a background worker."""
    return BlockingLeaf(fn=fn, args=args, kwargs=kwargs)


def AwaitCoroutine(
    coro_fn: Callable[..., Coroutine[Any, Any, Any]], *args: Any, **kwargs: Any
) -> AwaitCoroutineLeaf:
    """Await ``coro_fn(*args, **kwargs)`` on the background event loop."""
    return AwaitCoroutineLeaf(coro_fn=coro_fn, args=args, kwargs=kwargs)


__all__ = [
    "AwaitCoroutine",
    "AwaitCoroutineLeaf",
    "Blocking",
    "BlockingLeaf",
    "Delay",
    "DelayLeaf",
    "LeafAwaitable",
]
