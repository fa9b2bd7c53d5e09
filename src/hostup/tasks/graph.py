# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/tasks/graph.py
from __future__ import annotations

from typing import Dict, Iterator, List, Mapping

from ..errors import DuplicateTaskError
from .base import Task
from .key import TaskKey


class TaskGraph(Mapping[TaskKey, Task]):
    """
    Key -> Task mapping for one convergence run.

    Remembers which source contributed every key so a collision can name both.
    Only the assembler adds to it; once handed to the scheduler it is read-only.
    """

    def __init__(self) -> None:
        self._tasks: Dict[TaskKey, Task] = {}
        self._sources: Dict[TaskKey, str] = {}

    def add(self, task: Task, *, source: str) -> None:
        key = task.key
        if key in self._tasks:
            raise DuplicateTaskError(
                f"Task '{key}' contributed by '{source}' is already defined by '{self._sources[key]}'"
            )
        self._tasks[key] = task
        self._sources[key] = source

    def source_of(self, key: TaskKey) -> str:
        return self._sources[key]

    def __getitem__(self, key: TaskKey) -> Task:
        return self._tasks[key]

    def __iter__(self) -> Iterator[TaskKey]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def keys_sorted(self) -> List[TaskKey]:
        return sorted(self._tasks)
