"""Tasks: lazily-started, resumable computations built from generators.

A task body is a generator. ``yield`` is the await operator:

- ``value = yield child_task`` starts the child at once (it runs up to its
  first suspension point) and suspends the caller until the child finishes.
- ``value = yield Delay(1.0)`` suspends the caller until a background worker
  finishes the leaf operation.

Every resumption happens on the executor thread by popping a :class:`Handle`
from the ready queue. A finishing task never resumes its parent inline; it
spawns the parent's handle onto the executor, which keeps the call stack flat
for long await chains.

Continuation resources are released as soon as a task finishes: the generator
is dropped and only the outcome is kept for the parent, the root-error sink or
a later awaiter.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from dotask.errors import TaskPanicked, TaskStateError, WorkerSpawnFailed
from dotask.leaf import LeafAwaitable
from dotask.result import Err, Ok, Result, format_exception
from dotask.types import TaskId, TaskPhase

if TYPE_CHECKING:
    from dotask.executor import Executor

logger = logging.getLogger(__name__)

T = TypeVar("T")

TaskGenerator = Generator["Task[Any] | LeafAwaitable", Any, T]


class Handle:
    """One-shot permission to resume a task with a given outcome."""

    __slots__ = ("task", "outcome", "_resumed")

    def __init__(self, task: Task[Any], outcome: Result[Any]) -> None:
        self.task = task
        self.outcome = outcome
        self._resumed = False

    def resume(self) -> None:
        if self._resumed:
            raise TaskStateError(f"handle for {self.task.id} resumed twice")
        self._resumed = True
        self.task._step(self.outcome)

    def __repr__(self) -> str:
        return f"Handle({self.task.id}, {self.outcome!r})"


class Task(Generic[T]):
    """A suspended computation plus the bookkeeping to resume it.

    Tasks are normally created by calling a ``@task`` function. The body does
    not run until the task is spawned onto an executor or awaited by another
    task.
    """

    def __init__(self, gen: TaskGenerator[T], name: str) -> None:
        self.id = TaskId.new()
        self.name = name
        self._gen: TaskGenerator[T] | None = gen
        self._phase = TaskPhase.NOT_STARTED
        self._executor: Executor | None = None
        self._parent: Task[Any] | None = None
        self._is_root = False
        self._awaited = False
        self._outcome: Result[T] | None = None

    def __repr__(self) -> str:
        return f"<Task {self.id} {self.name} phase={self._phase.value}>"

    @property
    def phase(self) -> TaskPhase:
        return self._phase

    @property
    def done(self) -> bool:
        return self._phase is TaskPhase.DONE

    @property
    def outcome(self) -> Result[T] | None:
        """``Ok(value)`` or ``Err(TaskPanicked)`` once done, otherwise None."""
        return self._outcome

    @property
    def executor(self) -> Executor | None:
        return self._executor

    def result(self) -> T:
        """Return the task's value, raising ``TaskPanicked`` if it failed."""
        if self._outcome is None:
            raise TaskStateError(f"{self.id} ({self.name}) has not finished")
        return self._outcome.unwrap()

    # ------------------------------------------------------------------
    # Executor-facing lifecycle
    # ------------------------------------------------------------------

    def _bind(self, executor: Executor) -> None:
        if self._executor is None:
            self._executor = executor
        elif self._executor is not executor:
            raise TaskStateError(f"{self.id} ({self.name}) belongs to another executor")

    def _claim_as_root(self, executor: Executor) -> None:
        if self._is_root or self._awaited or self._phase is not TaskPhase.NOT_STARTED:
            raise TaskStateError(
                f"{self.id} ({self.name}) was already spawned or awaited "
                f"(phase={self._phase.value})"
            )
        self._bind(executor)
        self._is_root = True

    def _step(self, sent: Result[Any]) -> None:
        """Run the body from its last suspension point to the next one."""
        if self._phase is TaskPhase.RUNNING or self._phase is TaskPhase.DONE:
            raise TaskStateError(
                f"cannot resume {self.id} ({self.name}) in phase {self._phase.value}"
            )
        gen = self._gen
        assert gen is not None
        self._phase = TaskPhase.RUNNING

        while True:
            try:
                if isinstance(sent, Ok):
                    yielded = gen.send(sent.value)
                else:
                    yielded = gen.throw(sent.unwrap_err())
            except StopIteration as stop:
                self._finish(Ok(stop.value))
                return
            except Exception as exc:
                if self._executor is not None and self._executor.config.debug:
                    logger.debug("%s (%s) raised %r", self.id, self.name, exc)
                panic = TaskPanicked(
                    task_id=self.id,
                    task_name=self.name,
                    original=exc,
                    formatted_traceback=format_exception(exc),
                )
                self._finish(Err(panic))
                return

            immediate = self._suspend_on(yielded)
            if immediate is None:
                return
            # The await could not even be issued; raise it at the yield.
            self._phase = TaskPhase.RUNNING
            sent = immediate

    def _suspend_on(self, yielded: Any) -> Result[Any] | None:
        """Issue the await for ``yielded``.

        Returns None once the task is suspended, or an ``Err`` to throw back
        into the body when the await is invalid.
        """
        if isinstance(yielded, Task):
            return self._await_child(yielded)
        if isinstance(yielded, LeafAwaitable):
            return self._await_leaf(yielded)
        return Err(
            TypeError(
                f"{self.name} yielded {type(yielded).__name__}; "
                "a task body may only yield a Task or a LeafAwaitable"
            )
        )

    def _await_child(self, child: Task[Any]) -> Result[Any] | None:
        executor = self._executor
        assert executor is not None
        if child is self:
            return Err(TaskStateError(f"{self.id} ({self.name}) awaited itself"))
        if child._awaited:
            return Err(TaskStateError(f"{child.id} ({child.name}) is already awaited"))
        if child._is_root and not child.done:
            return Err(
                TaskStateError(f"{child.id} ({child.name}) is scheduled as a root task")
            )
        try:
            child._bind(executor)
        except TaskStateError as exc:
            return Err(exc)

        child._awaited = True
        self._phase = TaskPhase.AWAITING_CHILD

        if child.done:
            # A finished root task: hand over its stored outcome.
            assert child._outcome is not None
            executor.spawn(Handle(self, child._outcome))
            return None

        # Record the parent before the kick-off so that a child finishing
        # without suspending still wakes us.
        child._parent = self
        child._step(Ok(None))
        return None

    def _await_leaf(self, leaf: LeafAwaitable) -> Result[Any] | None:
        executor = self._executor
        assert executor is not None
        self._phase = TaskPhase.AWAITING_LEAF
        try:
            executor._submit_leaf(self, leaf)
        except WorkerSpawnFailed as exc:
            return Err(exc)
        return None

    def _finish(self, outcome: Result[T]) -> None:
        self._phase = TaskPhase.DONE
        self._outcome = outcome
        self._gen = None

        executor = self._executor
        assert executor is not None
        executor._task_finished(self)

        parent, self._parent = self._parent, None
        if parent is not None:
            executor.spawn(Handle(parent, outcome))
        else:
            executor._root_finished(self)


__all__ = ["Handle", "Task", "TaskGenerator"]
