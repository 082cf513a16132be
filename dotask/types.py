"""
Identity and lifecycle types shared across the runtime.

This module contains:
- TaskId: Unique identifier for tasks
- TaskPhase: Explicit lifecycle state of a task's continuation
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum

_task_counter = itertools.count(1)


@dataclass(frozen=True, order=True)
class TaskId:
    """Unique identifier for a task.

    Ids are drawn from a process-wide counter, so they are unique across
    executors and increase in creation order.
    """

    _id: int

    @classmethod
    def new(cls) -> TaskId:
        """Create a new unique TaskId."""
        return cls(next(_task_counter))

    def __str__(self) -> str:
        return f"task-{self._id}"

    def __repr__(self) -> str:
        return f"TaskId({self._id})"


class TaskPhase(str, Enum):
    """Where a task's continuation currently stands.

    ``NOT_STARTED`` -> ``RUNNING`` -> (``AWAITING_CHILD`` | ``AWAITING_LEAF``)*
    -> ``DONE``. ``DONE`` is terminal.
    """

    NOT_STARTED = "not_started"
    RUNNING = "running"
    AWAITING_CHILD = "awaiting_child"
    AWAITING_LEAF = "awaiting_leaf"
    DONE = "done"

    @property
    def is_suspended(self) -> bool:
        return self in (TaskPhase.AWAITING_CHILD, TaskPhase.AWAITING_LEAF)


__all__ = ["TaskId", "TaskPhase"]
