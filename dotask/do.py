"""
The task decorator.

``@task`` turns a generator function into a factory of lazily-started
:class:`~dotask.task.Task` objects.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Generator
from functools import wraps
from typing import Any, Generic, ParamSpec, TypeVar

from dotask.task import Task, TaskGenerator

P = ParamSpec("P")
T = TypeVar("T")


class TaskFunction(Generic[P, T]):
    """Callable wrapper returned by ``@task``; each call builds a new Task."""

    def __init__(self, func: Callable[P, TaskGenerator[T] | T]) -> None:
        @wraps(func)
        def generator_wrapper(*args: P.args, **kwargs: P.kwargs) -> Generator[Any, Any, T]:
            gen_or_value = func(*args, **kwargs)
            if not inspect.isgenerator(gen_or_value):
                return gen_or_value
            return (yield from gen_or_value)

        self._generator_wrapper = generator_wrapper
        self.original_func = func

        for attr in ("__doc__", "__module__", "__name__", "__qualname__", "__annotations__"):
            value = getattr(func, attr, None)
            if value is not None:
                setattr(self, attr, value)

        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            signature = None
        if signature is not None:
            setattr(self, "__signature__", signature)

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> Task[T]:
        name = getattr(self.original_func, "__qualname__", repr(self.original_func))
        return Task(self._generator_wrapper(*args, **kwargs), name=name)

    def __repr__(self) -> str:
        return f"<task function {getattr(self, '__qualname__', self.original_func)!r}>"


def task(func: Callable[P, TaskGenerator[T] | T]) -> TaskFunction[P, T]:
    """
    Decorator that converts a generator function into a task factory.

    Calling the decorated function captures the arguments and returns a
    ``Task`` without running any of the body. The body starts when the task
    is spawned onto an executor or awaited by another task.

    Inside the body, ``yield`` awaits:

        @task
        def inner() -> TaskGenerator[str]:
            yield Delay(3)
            return "inner done"

        @task
        def outer() -> TaskGenerator[str]:
            message = yield inner()      # child starts immediately
            elapsed = yield Delay(2)     # resumes after ~2 seconds
            return message

    Unlike plain generator code, an exception raised by an awaited child or
    leaf is thrown at the ``yield`` that awaited it, so ``try``/``except``
    around a ``yield`` works as expected. A failed child arrives as
    ``TaskPanicked``; a failed leaf arrives as its original exception.

    A function that is not a generator is still deferred: it runs on the
    first resumption and its return value becomes the task's result.

    Args:
        func: A generator function yielding Tasks or LeafAwaitables

    Returns:
        TaskFunction whose calls return new, unstarted Tasks.
    """

    return TaskFunction(func)


__all__ = ["TaskFunction", "task"]
