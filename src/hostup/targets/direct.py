# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/targets/direct.py

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List

from ..tasks.base import Task
from ..tasks.graph import TaskGraph
from ..tasks.key import TaskKey
from .base import Outcome, Target

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext

log = logging.getLogger("hostup")


class LocalTarget(Target):
    """
    Converges the live host now. With existing-state checks on, a task whose
    find() reports the host already matches is not applied.
    """

    name = "direct"
    check_existing = True

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir
        self._lock = threading.Lock()
        self.applied: List[TaskKey] = []
        self.skipped: List[TaskKey] = []
        self.attempts: Dict[TaskKey, int] = {}

    def apply(self, task: Task, context: "ExecutionContext") -> Outcome:
        with self._lock:
            self.attempts[task.key] = self.attempts.get(task.key, 0) + 1
        if context.check_existing and task.find(context.host):
            log.debug("%s already satisfied", task.key)
            with self._lock:
                self.skipped.append(task.key)
            return Outcome.SKIPPED

        log.info("Applying %s", task.describe())
        task.apply(context.host)
        with self._lock:
            self.applied.append(task.key)
        return Outcome.APPLIED

    def finish(self, graph: TaskGraph) -> None:
        log.info(
            "direct target finished: %d applied, %d already satisfied, %d total",
            len(self.applied), len(self.skipped), len(graph),
        )
        for key in graph.keys_sorted():
            n = self.attempts.get(key, 0)
            if n > 1:
                log.info("  %s converged after %d attempts", key, n)
