# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/targets/base.py

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from ..tasks.base import Task
from ..tasks.graph import TaskGraph

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext


class Outcome(str, enum.Enum):
    APPLIED = "APPLIED"     # host mutated
    SKIPPED = "SKIPPED"     # existing state already satisfied
    PLANNED = "PLANNED"     # dry-run recorded the change
    RENDERED = "RENDERED"   # written into the boot script


class Target(ABC):
    """
    Execution strategy for a task graph.

    The scheduler calls apply() once per attempt, in dependency order, then
    finish() once with the whole graph. A new backend only implements these.
    """

    name: ClassVar[str] = "target"
    check_existing: ClassVar[bool] = True

    @abstractmethod
    def apply(self, task: Task, context: "ExecutionContext") -> Outcome:
        ...

    @abstractmethod
    def finish(self, graph: TaskGraph) -> None:
        ...

    def close(self) -> None:
        """Release anything held open. Called on every exit path."""
