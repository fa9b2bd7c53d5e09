# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/tasks/base.py
from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, List, Optional

from ..errors import FatalTaskError
from .key import TaskKey

if TYPE_CHECKING:
    from ..execution.host import Host
    from ..targets.dryrun import AssetResolver


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    READY = "READY"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.FAILED)


@dataclass
class Task(ABC):
    """
    Smallest named unit of desired host state.

    Subclasses implement:
      - find()   read-only check, True when the host already matches
      - apply()  idempotent mutation of the host
      - render() shell lines reproducing apply() on a bare host
    """

    kind: ClassVar[str] = "task"

    name: str
    depends_on: List[TaskKey] = field(default_factory=list)

    @property
    def key(self) -> TaskKey:
        return TaskKey.named(self.kind, self.name)

    def dependencies(self) -> List[TaskKey]:
        return list(self.depends_on)

    def find(self, host: "Host") -> bool:
        return False

    @abstractmethod
    def apply(self, host: "Host") -> None:
        ...

    @abstractmethod
    def render(self) -> List[str]:
        ...

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        return str(self.key)

    def diff(self, host: "Host") -> str:
        """Read-only summary of what apply() would change. Empty when unknown."""
        return ""

    def is_retryable(self, exc: BaseException) -> bool:
        """Retry eligibility is declared by the task, not inferred by the scheduler."""
        return not isinstance(exc, FatalTaskError)
