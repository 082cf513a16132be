"""Runtime error types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dotask.types import TaskId


class DotaskError(Exception):
    """Base class for all errors raised by the runtime itself."""


@dataclass(eq=False)
class TaskPanicked(DotaskError):
    """An exception escaped a task body.

    The failing task's outcome is ``Err(TaskPanicked(...))``. The error is
    thrown into the parent at its await point, or handed to the executor's
    root-error sink when the task has no parent.

    Attributes:
        task_id: Identity of the task whose body raised
        task_name: Qualified name of the task function
        original: The exception raised by the body
        formatted_traceback: Traceback text captured when the body failed
    """

    task_id: TaskId
    task_name: str
    original: BaseException
    formatted_traceback: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        super().__init__(str(self))
        self.__cause__ = self.original

    def __str__(self) -> str:
        return (
            f"{self.task_id} ({self.task_name}) panicked: "
            f"[{self.original.__class__.__name__}] {self.original}"
        )


class WorkerSpawnFailed(DotaskError):
    """Background execution for a leaf operation could not be started."""


class QueueFull(DotaskError):
    """Reserved for bounded ready queues. The shipped queue is unbounded."""


class TaskStateError(DotaskError):
    """Raised on an illegal task lifecycle transition.

    Examples are awaiting a task that already has a parent, spawning a task
    that was already scheduled, or resuming a task that is mid-execution.
    """


class LeafInterrupted(DotaskError):
    """A leaf operation was interrupted because its worker pool shut down."""


class ExecutorStopped(DotaskError):
    """The executor was stopped before the awaited root tasks finished."""


__all__ = [
    "DotaskError",
    "ExecutorStopped",
    "LeafInterrupted",
    "QueueFull",
    "TaskPanicked",
    "TaskStateError",
    "WorkerSpawnFailed",
]
