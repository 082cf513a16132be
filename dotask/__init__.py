"""
dotask - a cooperative task runtime built on generators.

Tasks are lazily-started generator functions decorated with ``@task``. A
single-threaded executor resumes them; leaf operations such as ``Delay`` run
on supervised background workers and hand the waiting task back to the
executor when they finish.

Example:
    >>> from dotask import Delay, Executor, task
    >>>
    >>> @task
    >>> def inner():
    ...     yield Delay(0.1)
    ...     return "inner"
    >>>
    >>> @task
    >>> def outer():
    ...     message = yield inner()
    ...     elapsed = yield Delay(0.2)
    ...     return message, elapsed
    >>>
    >>> with Executor() as executor:
    ...     result = executor.run(outer())
"""

from dotask.config import RootErrorPolicy, RuntimeConfig
from dotask.do import TaskFunction, task
from dotask.errors import (
    DotaskError,
    ExecutorStopped,
    LeafInterrupted,
    QueueFull,
    TaskPanicked,
    TaskStateError,
    WorkerSpawnFailed,
)
from dotask.executor import Executor, ExecutorStats, RootErrorSink
from dotask.leaf import (
    AwaitCoroutine,
    AwaitCoroutineLeaf,
    Blocking,
    BlockingLeaf,
    Delay,
    DelayLeaf,
    LeafAwaitable,
)
from dotask.ready_queue import ReadyQueue
from dotask.result import Err, Ok, Result, RunResult
from dotask.task import Handle, Task, TaskGenerator
from dotask.types import TaskId, TaskPhase
from dotask.workers import WorkerContext, WorkerPool

__version__ = "0.1.0"

__all__ = [
    # Core
    "Executor",
    "ExecutorStats",
    "Handle",
    "ReadyQueue",
    "RootErrorSink",
    "Task",
    "TaskFunction",
    "TaskGenerator",
    "TaskId",
    "TaskPhase",
    "task",
    # Leaves
    "AwaitCoroutine",
    "AwaitCoroutineLeaf",
    "Blocking",
    "BlockingLeaf",
    "Delay",
    "DelayLeaf",
    "LeafAwaitable",
    "WorkerContext",
    "WorkerPool",
    # Results
    "Err",
    "Ok",
    "Result",
    "RunResult",
    # Config
    "RootErrorPolicy",
    "RuntimeConfig",
    # Errors
    "DotaskError",
    "ExecutorStopped",
    "LeafInterrupted",
    "QueueFull",
    "TaskPanicked",
    "TaskStateError",
    "WorkerSpawnFailed",
]
