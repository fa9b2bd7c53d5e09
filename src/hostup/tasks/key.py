# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/tasks/key.py
from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Tuple


@functools.total_ordering
@dataclass(frozen=True)
class TaskKey:
    """
    Opaque identity of a task in the graph.

    Named keys render as ``<kind>/<name>`` (``file//etc/sysctl.d/99-k8s.conf``),
    index-qualified keys for homogeneous injected collections render as
    ``<kind>.<n>`` (``loadimage.0``). The two forms can never collide.
    """

    kind: str
    name: str
    is_indexed: bool = False

    @classmethod
    def named(cls, kind: str, name: str) -> "TaskKey":
        if not kind or not name:
            raise ValueError("task key needs a kind and a name")
        return cls(kind=kind.lower(), name=name)

    @classmethod
    def indexed(cls, kind: str, index: int) -> "TaskKey":
        if index < 0:
            raise ValueError(f"task key index must be >= 0, got {index}")
        return cls(kind=kind.lower(), name=str(index), is_indexed=True)

    def _sort_tuple(self) -> Tuple[str, int, int, str]:
        if self.is_indexed:
            return (self.kind, 1, int(self.name), "")
        return (self.kind, 0, 0, self.name)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TaskKey):
            return NotImplemented
        return self._sort_tuple() < other._sort_tuple()

    def __str__(self) -> str:
        sep = "." if self.is_indexed else "/"
        return f"{self.kind}{sep}{self.name}"
