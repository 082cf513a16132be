"""
Tests for task lifecycle: laziness, child kick-off, completion and failure.
"""

import logging
from dataclasses import replace

import pytest

from dotask import (
    Blocking,
    Delay,
    Executor,
    Handle,
    Ok,
    RuntimeConfig,
    TaskGenerator,
    TaskPanicked,
    TaskPhase,
    TaskStateError,
    task,
)


@task
def pause_then(value: int, seconds: float = 0.01) -> TaskGenerator[int]:
    yield Delay(seconds)
    return value


@task
def boom(message: str = "boom") -> TaskGenerator[None]:
    yield Delay(0.001)
    raise ValueError(message)


class TestLaziness:
    def test_calling_task_function_does_not_run_body(self):
        calls: list[str] = []

        @task
        def body() -> TaskGenerator[None]:
            calls.append("ran")
            yield Delay(0)

        t = body()
        assert calls == []
        assert t.phase is TaskPhase.NOT_STARTED
        assert not t.done

    def test_spawn_does_not_resume_synchronously(self, executor: Executor):
        calls: list[str] = []

        @task
        def body() -> TaskGenerator[None]:
            calls.append("ran")
            return None
            yield

        t = body()
        executor.spawn(t)
        assert calls == []
        assert executor.ready == 1

        assert executor.run_once() is True
        assert calls == ["ran"]
        assert t.done

    def test_plain_function_is_deferred_and_returns_value(self, executor: Executor):
        calls: list[int] = []

        @task
        def plain(x: int) -> int:
            calls.append(x)
            return x * 2

        t = plain(21)
        assert calls == []
        result = executor.run(t)
        assert result.value == 42
        assert calls == [21]

    def test_decorator_preserves_metadata(self):
        @task
        def documented(x: int) -> TaskGenerator[int]:
            """Adds one."""
            return x + 1
            yield

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Adds one."
        assert "documented" in documented(1).name


class TestChildAwait:
    def test_awaiting_child_starts_it_before_parent_suspends(self, executor: Executor):
        events: list[str] = []

        @task
        def child() -> TaskGenerator[str]:
            events.append("child-start")
            yield Delay(0.01)
            events.append("child-end")
            return "child"

        @task
        def parent() -> TaskGenerator[str]:
            events.append("parent-before")
            c = child()
            value = yield c
            events.append("parent-after")
            return value

        p = parent()
        executor.spawn(p)
        executor.run_once()

        assert events == ["parent-before", "child-start"]
        assert p.phase is TaskPhase.AWAITING_CHILD

        (outcome,) = executor.run_until_complete(p)
        assert outcome == Ok("child")
        assert events == ["parent-before", "child-start", "child-end", "parent-after"]

    def test_parent_is_resumed_exactly_once_per_child(self, executor: Executor):
        @task
        def parent() -> TaskGenerator[int]:
            return (yield pause_then(7))

        result = executor.run(parent())

        assert result.value == 7
        # parent start, child's leaf resumption, parent resumption
        assert executor.stats.resumed == 3
        assert executor.ready == 0

    def test_child_finishing_without_suspending_still_wakes_parent(self, executor: Executor):
        @task
        def immediate() -> TaskGenerator[str]:
            return "now"
            yield

        @task
        def parent() -> TaskGenerator[str]:
            value = yield immediate()
            return value + "!"

        result = executor.run(parent())
        assert result.value == "now!"
        assert executor.stats.resumed == 2

    def test_deep_await_chain_does_not_grow_the_stack(self, executor: Executor):
        @task
        def chain(depth: int) -> TaskGenerator[int]:
            if depth == 0:
                yield Delay(0)
                return 0
            return (yield chain(depth - 1)) + 1

        # Kick-off recursion is bounded by the depth of first suspensions;
        # completions travel through the queue one level at a time.
        result = executor.run(chain(100))
        assert result.value == 100

    def test_awaiting_same_task_twice_raises_in_awaiter(self, executor: Executor):
        @task
        def parent() -> TaskGenerator[tuple[int, str]]:
            child = pause_then(3)
            first = yield child
            try:
                yield child
            except TaskStateError:
                return first, "rejected"
            return first, "accepted"

        assert executor.run(parent()).value == (3, "rejected")

    def test_awaiting_running_root_task_raises_in_awaiter(self, executor: Executor):
        busy = pause_then(1, seconds=0.05)

        @task
        def parent() -> TaskGenerator[str]:
            try:
                yield busy
            except TaskStateError:
                return "busy"
            return "joined"

        executor.spawn(busy)
        outcomes = executor.run_until_complete(busy, parent())
        assert outcomes == [Ok(1), Ok("busy")]

    def test_awaiting_finished_root_task_delivers_its_value(self, executor: Executor):
        finished = pause_then(5)
        executor.run(finished)

        @task
        def parent() -> TaskGenerator[int]:
            return (yield finished)

        assert executor.run(parent()).value == 5

    def test_awaiting_itself_raises(self, executor: Executor):
        holder: dict[str, object] = {}

        @task
        def selfish() -> TaskGenerator[str]:
            try:
                yield holder["me"]
            except TaskStateError:
                return "refused"
            return "accepted"

        t = selfish()
        holder["me"] = t
        assert executor.run(t).value == "refused"

    def test_child_bound_to_other_executor_is_rejected(self, executor: Executor, config):
        foreign = pause_then(1)
        with Executor(config) as other:
            other.run(foreign)

        @task
        def parent() -> TaskGenerator[str]:
            try:
                yield foreign
            except TaskStateError:
                return "foreign"
            return "joined"

        assert executor.run(parent()).value == "foreign"


class TestInvalidYields:
    def test_yielding_non_awaitable_throws_type_error_at_yield(self, executor: Executor):
        @task
        def confused() -> TaskGenerator[str]:
            try:
                yield 42
            except TypeError as exc:
                return str(exc)
            return "no error"

        message = executor.run(confused()).value
        assert "int" in message

    def test_uncaught_type_error_fails_task(self, executor: Executor):
        @task
        def confused() -> TaskGenerator[None]:
            yield "not awaitable"

        result = executor.run(confused())
        assert result.is_err
        assert isinstance(result.error.original, TypeError)


class TestFailures:
    def test_child_failure_is_thrown_into_parent_as_task_panicked(self, executor: Executor):
        @task
        def parent() -> TaskGenerator[tuple[str, str]]:
            child = boom("bad input")
            try:
                yield child
            except TaskPanicked as exc:
                assert exc.task_id == child.id
                return type(exc.original).__name__, str(exc.original)
            return "none", ""

        assert executor.run(parent()).value == ("ValueError", "bad input")

    def test_uncaught_child_failure_propagates_to_root(self, executor: Executor):
        @task
        def middle() -> TaskGenerator[None]:
            yield boom()

        result = executor.run(middle())

        assert result.is_err
        panic = result.error
        assert isinstance(panic, TaskPanicked)
        assert isinstance(panic.original, TaskPanicked)
        assert isinstance(panic.original.original, ValueError)
        assert "ValueError" in panic.original.formatted_traceback

    def test_leaf_failure_arrives_as_original_exception(self, executor: Executor):
        def explode() -> None:
            raise KeyError("missing")

        @task
        def careful() -> TaskGenerator[str]:
            try:
                yield Blocking(explode)
            except KeyError:
                return "handled"
            return "unhandled"

        assert executor.run(careful()).value == "handled"

    def test_failure_does_not_escape_executor_loop(self, executor: Executor):
        ok = pause_then(1)
        bad = boom()

        outcomes = executor.run_until_complete(bad, ok)

        assert outcomes[0].is_err()
        assert outcomes[1] == Ok(1)
        assert executor.stats.failed == 1
        assert executor.stats.completed == 1

    def test_result_raises_before_completion(self):
        with pytest.raises(TaskStateError):
            pause_then(1).result()

    def test_failure_trace_is_quiet_without_debug(self, executor: Executor, caplog):
        with caplog.at_level(logging.DEBUG, logger="dotask.task"):
            executor.run(boom())

        assert not [r for r in caplog.records if r.name == "dotask.task"]

    def test_failure_trace_is_logged_with_debug(self, config: RuntimeConfig, caplog):
        with Executor(replace(config, debug=True)) as executor:
            with caplog.at_level(logging.DEBUG, logger="dotask.task"):
                executor.run(boom("traced"))

        messages = [r.getMessage() for r in caplog.records if r.name == "dotask.task"]
        assert any("traced" in message for message in messages)


class TestLifecycle:
    def test_phases_progress_to_done(self, executor: Executor):
        t = pause_then(1)
        executor.spawn(t)
        assert t.phase is TaskPhase.NOT_STARTED

        executor.run_once()
        assert t.phase is TaskPhase.AWAITING_LEAF
        assert t.phase.is_suspended

        executor.run_until_complete(t)
        assert t.phase is TaskPhase.DONE
        assert t.result() == 1

    def test_continuation_released_on_completion(self, executor: Executor):
        t = pause_then(1)
        executor.run(t)
        assert t._gen is None
        assert t.outcome == Ok(1)

    def test_spawning_same_task_twice_is_rejected(self, executor: Executor):
        t = pause_then(1)
        executor.spawn(t)
        with pytest.raises(TaskStateError):
            executor.spawn(t)

    def test_handle_cannot_be_resumed_twice(self, executor: Executor):
        @task
        def quick() -> TaskGenerator[int]:
            return 1
            yield

        t = quick()
        executor.spawn(t)
        handle = executor._queue.pop()
        assert isinstance(handle, Handle)
        handle.resume()
        assert t.done

        with pytest.raises(TaskStateError):
            handle.resume()

    def test_task_ids_are_unique_and_ordered(self):
        first, second = pause_then(1), pause_then(2)
        assert first.id != second.id
        assert first.id < second.id
        assert str(first.id).startswith("task-")
