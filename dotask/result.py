"""
Outcome types for task and leaf completion.

A finished task or leaf operation is described by a ``Result``: ``Ok`` holds
the produced value, ``Err`` holds the exception. Results are what travels
through the ready queue back into a suspended task.
"""

from __future__ import annotations

import traceback
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, NoReturn, TypeVar, cast

if TYPE_CHECKING:
    from dotask.types import TaskId

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
U = TypeVar("U")


class Result(Generic[T_co]):
    """Sum type representing either a successful value or an error."""

    __slots__ = ()

    def is_ok(self) -> bool:
        """Return ``True`` when the result is successful."""

        return isinstance(self, Ok)

    def is_err(self) -> bool:
        """Return ``True`` when the result represents a failure."""

        return isinstance(self, Err)

    def ok(self) -> T_co | None:
        """Return the contained value, or ``None`` if this is an error."""

        if isinstance(self, Ok):
            return self.value
        return None

    def err(self) -> BaseException | None:
        """Return the contained error, or ``None`` if this is a success."""

        if isinstance(self, Err):
            return self.error
        return None

    def unwrap(self) -> T_co:
        """Return the value or raise the stored error."""

        if isinstance(self, Ok):
            return self.value
        raise cast(Err, self).error

    def unwrap_err(self) -> BaseException:
        """Return the error or raise ``RuntimeError`` if this is a success."""

        if isinstance(self, Err):
            return self.error
        raise RuntimeError("Called unwrap_err on Ok value")

    def map(self, f: Callable[[T_co], U]) -> Result[U]:
        """Apply ``f`` to the contained value if this is a success."""

        if isinstance(self, Ok):
            return Ok(f(self.value))
        return cast(Result[U], self)

    def unwrap_or(self, default: U) -> T_co | U:
        """Return the contained value, or ``default`` if this is an error."""

        if isinstance(self, Ok):
            return self.value
        return default

    def __bool__(self) -> bool:
        """Truthiness matches :meth:`is_ok`."""

        return self.is_ok()


@dataclass(frozen=True)
class Ok(Result[T], Generic[T]):
    """Success result."""
    value: T


@dataclass(frozen=True)
class Err(Result[NoReturn]):
    """Error result."""
    error: BaseException


@dataclass(frozen=True)
class RunResult(Generic[T]):
    """What :meth:`Executor.run` hands back for a root task."""

    task_id: TaskId
    task_name: str
    result: Result[T]

    @property
    def is_ok(self) -> bool:
        return self.result.is_ok()

    @property
    def is_err(self) -> bool:
        return self.result.is_err()

    @property
    def value(self) -> T:
        """The task's value; raises the stored error on failure."""
        return self.result.unwrap()

    @property
    def error(self) -> BaseException:
        """The stored error; raises ``RuntimeError`` on success."""
        return self.result.unwrap_err()


def format_exception(e: BaseException) -> str:
    """Render ``e`` with its traceback the way the interpreter would print it."""
    return "".join(traceback.format_exception(e.__class__, e, e.__traceback__))


__all__ = ["Err", "Ok", "Result", "RunResult", "format_exception"]
