import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import pytest

from hostup.deploy.scheduler import RunTasksOptions, run_tasks
from hostup.errors import FatalTaskError, TaskTimeoutError, TransientTaskError
from hostup.execution.context import ExecutionContext
from hostup.observers.dispatcher import EventBus
from hostup.observers.events import RunSummary, TaskAttemptFailed, TaskFailed, TaskSucceeded
from hostup.stores import FileKeyStore, FileSecretStore
from hostup.targets.direct import LocalTarget
from hostup.tasks.base import Task, TaskStatus
from hostup.tasks.graph import TaskGraph
from hostup.tasks.key import TaskKey


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


@dataclass
class Step(Task):
    kind = "step"

    action: Optional[Callable[[], None]] = None
    log: List[str] = field(default_factory=list)

    def apply(self, host) -> None:
        if self.action:
            self.action()
        self.log.append(self.name)

    def render(self) -> List[str]:
        return [f"echo {self.name}"]


def sk(name):
    return TaskKey.named("step", name)


def _graph(*tasks):
    g = TaskGraph()
    for t in tasks:
        g.add(t, source="test")
    return g


def _context(tmp_path, graph):
    return ExecutionContext(
        LocalTarget(cache_dir=str(tmp_path)),
        graph,
        FileKeyStore(tmp_path),
        FileSecretStore(tmp_path),
        str(tmp_path),
        fs_root=str(tmp_path),
    )


FAST = RunTasksOptions(interval=0.0, max_interval=0.0)


def test_every_task_runs_once_after_its_dependencies(tmp_path):
    log: List[str] = []
    graph = _graph(
        Step(name="c", depends_on=[sk("a"), sk("b")], log=log),
        Step(name="b", depends_on=[sk("a")], log=log),
        Step(name="a", log=log),
        Step(name="d", log=log),
    )
    with _context(tmp_path, graph) as ctx:
        report = run_tasks(ctx, FAST)
    assert sorted(log) == ["a", "b", "c", "d"]
    assert log.index("a") < log.index("b") < log.index("c")
    assert report.ok
    assert all(r.attempts == 1 for r in report.records.values())
    done = report.completed
    assert done.index(sk("a")) < done.index(sk("b")) < done.index(sk("c"))


def test_independent_tasks_run_concurrently(tmp_path):
    barrier = threading.Barrier(2, timeout=5)
    graph = _graph(Step(name="x", action=barrier.wait), Step(name="y", action=barrier.wait))
    with _context(tmp_path, graph) as ctx:
        report = run_tasks(ctx, RunTasksOptions(interval=0.0, max_task_duration=0.0, max_workers=2))
    assert report.ok


def test_transient_failure_is_retried_until_success(tmp_path):
    failures = [TransientTaskError("not yet"), RuntimeError("still not")]

    def flaky():
        if failures:
            raise failures.pop(0)

    cap = Capture()
    graph = _graph(Step(name="flaky", action=flaky))
    with _context(tmp_path, graph) as ctx:
        report = run_tasks(ctx, FAST, bus=EventBus([cap]))
    assert report.records[sk("flaky")].attempts == 3
    assert len([e for e in cap.events if isinstance(e, TaskAttemptFailed)]) == 2
    assert any(isinstance(e, TaskSucceeded) and e.attempts == 3 for e in cap.events)


def test_retry_ceiling_fails_the_run(tmp_path):
    ticks = iter(range(0, 10_000, 10))

    def always():
        raise TransientTaskError("unreachable mirror")

    graph = _graph(Step(name="stuck", action=always), Step(name="after", depends_on=[sk("stuck")]))
    with _context(tmp_path, graph) as ctx:
        with pytest.raises(TaskTimeoutError):
            run_tasks(ctx, RunTasksOptions(interval=0.0, max_task_duration=45.0), clock=lambda: next(ticks))
    assert ctx.graph[sk("after")].log == []


def test_fatal_failure_aborts_immediately(tmp_path):
    calls = []

    def fatal():
        calls.append(1)
        raise FatalTaskError("bad input")

    cap = Capture()
    after = Step(name="after", depends_on=[sk("boom")])
    graph = _graph(Step(name="boom", action=fatal), after)
    with _context(tmp_path, graph) as ctx:
        with pytest.raises(FatalTaskError, match="bad input"):
            run_tasks(ctx, FAST, bus=EventBus([cap]))
    assert calls == [1]
    assert after.log == []
    summary = next(e for e in cap.events if isinstance(e, RunSummary))
    assert summary.failed == 1 and summary.pending == 1


def test_task_can_declare_errors_non_retryable(tmp_path):
    @dataclass
    class Strict(Step):
        def is_retryable(self, exc):
            return not isinstance(exc, ValueError)

    def bad():
        raise ValueError("no")

    graph = _graph(Strict(name="strict", action=bad))
    with _context(tmp_path, graph) as ctx:
        with pytest.raises(FatalTaskError):
            run_tasks(ctx, FAST)


def test_abort_wakes_tasks_waiting_to_retry(tmp_path):
    def slow_fail():
        raise TransientTaskError("later")

    def fatal():
        time.sleep(0.2)
        raise FatalTaskError("stop")

    cap = Capture()
    graph = _graph(Step(name="waiting", action=slow_fail), Step(name="boom", action=fatal))
    started = time.monotonic()
    with _context(tmp_path, graph) as ctx:
        with pytest.raises(FatalTaskError, match="stop"):
            run_tasks(ctx, RunTasksOptions(interval=3600.0, max_interval=3600.0), bus=EventBus([cap]))
    assert time.monotonic() - started < 30
    abandoned = [e for e in cap.events if isinstance(e, TaskFailed) and e.key == "step/waiting"]
    assert abandoned and "abandoned" in abandoned[0].error


def test_empty_graph_succeeds(tmp_path):
    with _context(tmp_path, TaskGraph()) as ctx:
        report = run_tasks(ctx)
    assert report.ok and report.records == {}


def test_records_reach_terminal_states(tmp_path):
    graph = _graph(Step(name="a"))
    with _context(tmp_path, graph) as ctx:
        report = run_tasks(ctx, FAST)
    assert report.records[sk("a")].status is TaskStatus.DONE
    assert report.summary().startswith("DONE=1")
