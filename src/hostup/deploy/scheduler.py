# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/deploy/scheduler.py

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional

from ..errors import FatalTaskError, TaskTimeoutError
from ..execution.context import ExecutionContext
from ..targets.base import Outcome
from ..tasks.base import Task, TaskStatus
from ..tasks.key import TaskKey
from ..utils.retry import Backoff
from .assembler import dependency_order

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    TaskStarted,
    TaskSkipped,
    TaskAttemptFailed,
    TaskSucceeded,
    TaskFailed,
    RunSummary,
)

log = logging.getLogger("hostup")

MAX_TASK_DURATION = 365 * 24 * 3600.0


@dataclass
class RunTasksOptions:
    interval: float = 10.0          # first retry delay, seconds
    backoff: float = 1.0            # multiplier per failed attempt
    max_interval: float = 60.0
    max_task_duration: float = MAX_TASK_DURATION
    max_workers: int = 8

    def policy(self) -> Backoff:
        return Backoff(interval=self.interval, factor=self.backoff, max_interval=self.max_interval)


_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.READY, TaskStatus.FAILED},
    TaskStatus.READY: {TaskStatus.RUNNING, TaskStatus.FAILED},
    TaskStatus.RUNNING: {TaskStatus.DONE, TaskStatus.FAILED},
}


@dataclass
class TaskRecord:
    """
    Run-time state of one task. Each record guards itself; there is no
    lock around the whole table.
    """

    key: TaskKey
    dependencies: FrozenSet[TaskKey]
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    outcome: Optional[Outcome] = None
    error: Optional[str] = None
    duration_ms: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def transition(self, new: TaskStatus) -> None:
        with self._lock:
            if new not in _TRANSITIONS.get(self.status, ()):
                raise RuntimeError(
                    f"{self.key}: illegal transition {self.status.value} -> {new.value}"
                )
            self.status = new

    def current(self) -> TaskStatus:
        with self._lock:
            return self.status


@dataclass
class RunReport:
    records: Dict[TaskKey, TaskRecord]
    completed: List[TaskKey] = field(default_factory=list)   # in completion order

    def count(self, status: TaskStatus) -> int:
        return sum(1 for r in self.records.values() if r.status is status)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.records.values() if r.outcome is Outcome.SKIPPED)

    @property
    def pending(self) -> int:
        return sum(1 for r in self.records.values() if not r.status.terminal)

    @property
    def ok(self) -> bool:
        return all(r.status is TaskStatus.DONE for r in self.records.values())

    def summary(self) -> str:
        return (
            f"DONE={self.count(TaskStatus.DONE)} SKIPPED={self.skipped} "
            f"FAILED={self.count(TaskStatus.FAILED)} PENDING={self.pending}"
        )


class _Run:
    def __init__(
        self,
        context: ExecutionContext,
        options: RunTasksOptions,
        bus: Optional[EventBus],
        run_ctx: dict,
        clock: Callable[[], float],
    ):
        self.context = context
        self.options = options
        self.bus = bus
        self.run_ctx = run_ctx
        self.clock = clock
        self.abort = threading.Event()
        self.deadline = 0.0
        self.records: Dict[TaskKey, TaskRecord] = {
            key: TaskRecord(key=key, dependencies=frozenset(task.dependencies()))
            for key, task in context.graph.items()
        }
        self.report = RunReport(records=self.records)

    def _emit(self, event) -> None:
        if self.bus:
            self.bus.emit(event)

    def _ready(self) -> List[TaskKey]:
        ready = []
        for key in sorted(self.records):
            rec = self.records[key]
            if rec.current() is not TaskStatus.PENDING:
                continue
            if all(self.records[d].current() is TaskStatus.DONE for d in rec.dependencies):
                ready.append(key)
        return ready

    def _fail(self, rec: TaskRecord, error: BaseException) -> None:
        rec.error = str(error)
        rec.transition(TaskStatus.FAILED)
        log.error("%s failed after %d attempt(s): %s", rec.key, rec.attempts, error)
        self._emit(TaskFailed(key=str(rec.key), attempts=rec.attempts, error=str(error), **self.run_ctx))

    def _abandon(self, rec: TaskRecord) -> None:
        rec.error = "abandoned: run aborted"
        rec.transition(TaskStatus.FAILED)
        log.info("%s abandoned after %d attempt(s)", rec.key, rec.attempts)
        self._emit(TaskFailed(key=str(rec.key), attempts=rec.attempts, error=rec.error, **self.run_ctx))

    def execute(self, task: Task, rec: TaskRecord) -> Optional[Outcome]:
        rec.transition(TaskStatus.RUNNING)
        delays = self.options.policy().delays()
        started = self.clock()
        deadline = self.deadline

        while True:
            if self.abort.is_set():
                self._abandon(rec)
                return None

            rec.attempts += 1
            self._emit(TaskStarted(key=str(rec.key), attempt=rec.attempts, **self.run_ctx))
            try:
                outcome = self.context.target.apply(task, self.context)
            except Exception as e:
                if not task.is_retryable(e):
                    self._fail(rec, e)
                    if isinstance(e, FatalTaskError):
                        raise
                    raise FatalTaskError(f"{rec.key}: {e}") from e

                now = self.clock()
                if now >= deadline:
                    err = TaskTimeoutError(
                        f"{rec.key} did not succeed within {self.options.max_task_duration:.0f}s "
                        f"({rec.attempts} attempts); last error: {e}"
                    )
                    self._fail(rec, err)
                    raise err from e

                delay = min(next(delays), deadline - now)
                log.warning("%s attempt %d failed, retrying in %.1fs: %s", rec.key, rec.attempts, delay, e)
                self._emit(
                    TaskAttemptFailed(
                        key=str(rec.key), attempt=rec.attempts, error=str(e), retry_in_s=delay, **self.run_ctx
                    )
                )
                if self.abort.wait(delay):
                    self._abandon(rec)
                    return None
                continue

            rec.outcome = outcome
            rec.duration_ms = int((self.clock() - started) * 1000)
            rec.transition(TaskStatus.DONE)
            if outcome is Outcome.SKIPPED:
                self._emit(TaskSkipped(key=str(rec.key), reason="already satisfied", **self.run_ctx))
            else:
                self._emit(
                    TaskSucceeded(
                        key=str(rec.key), attempts=rec.attempts, duration_ms=rec.duration_ms, **self.run_ctx
                    )
                )
            return outcome

    def run(self) -> RunReport:
        graph = self.context.graph
        running: Dict[Future, TaskKey] = {}
        failure: Optional[BaseException] = None
        self.deadline = self.clock() + self.options.max_task_duration

        with ThreadPoolExecutor(
            max_workers=max(1, self.options.max_workers), thread_name_prefix="hostup-task"
        ) as pool:
            while True:
                if failure is None:
                    for key in self._ready():
                        rec = self.records[key]
                        rec.transition(TaskStatus.READY)
                        running[pool.submit(self.execute, graph[key], rec)] = key
                if not running:
                    break

                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for fut in done:
                    key = running.pop(fut)
                    exc = fut.exception()
                    if exc is None:
                        if self.records[key].status is TaskStatus.DONE:
                            self.report.completed.append(key)
                        continue
                    if failure is None:
                        failure = exc
                        self.abort.set()
                        log.error("Stopping run after %s failed; draining %d in-flight task(s)", key, len(running))

        log.info("Run finished: %s", self.report.summary())
        self._emit(
            RunSummary(
                done=self.report.count(TaskStatus.DONE),
                skipped=self.report.skipped,
                failed=self.report.count(TaskStatus.FAILED),
                pending=self.report.pending,
                **self.run_ctx,
            )
        )

        if failure is not None:
            raise failure
        if not self.report.ok:
            stuck = ", ".join(str(k) for k, r in sorted(self.records.items()) if r.status is not TaskStatus.DONE)
            raise FatalTaskError(f"tasks did not complete: {stuck}")
        return self.report


def run_tasks(
    context: ExecutionContext,
    options: Optional[RunTasksOptions] = None,
    *,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
    clock: Callable[[], float] = time.monotonic,
) -> RunReport:
    """
    Execute every task in the context's graph through its target.

    A task starts only once all of its dependencies are Done; independent
    tasks run concurrently on a bounded worker pool. Failed attempts are
    retried with backoff until max_task_duration has passed since the
    run started. A FatalTaskError (or a timeout) stops new work,
    lets in-flight tasks finish or abandon their retry wait, then re-raises.

    Returns the RunReport only when every task reached Done.
    """
    options = options or RunTasksOptions()
    dependency_order(context.graph)  # unknown refs and cycles fail before anything runs
    run_ctx = run_ctx or new_ctx(env=context.target.name, context=None)
    log.info("Running %d task(s) on %s target", len(context.graph), context.target.name)
    return _Run(context, options, bus, run_ctx, clock).run()
