# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/targets/dryrun.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, TextIO

from ..deploy.assembler import dependency_order
from ..errors import HostupError
from ..tasks.base import Task
from ..tasks.graph import TaskGraph
from ..tasks.key import TaskKey
from .base import Outcome, Target

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext

log = logging.getLogger("hostup")


class AssetResolver:
    """
    Rewrites artifact URLs through configured mirrors (longest prefix wins),
    so a dry-run shows where things will really be fetched from.
    """

    def __init__(self, mirrors: Optional[Mapping[str, str]] = None):
        self._mirrors = sorted((mirrors or {}).items(), key=lambda kv: len(kv[0]), reverse=True)

    def resolve(self, url: str) -> str:
        for prefix, replacement in self._mirrors:
            if url.startswith(prefix):
                return replacement + url[len(prefix):]
        return url


@dataclass
class PlannedChange:
    key: TaskKey
    description: str
    changed: bool
    diff: str = ""
    note: str = ""


class DryRunTarget(Target):
    """
    Records what each task would do. Only find() and diff() are called on a
    task; both are read-only. The report is written in finish().
    """

    name = "dryrun"
    check_existing = True

    def __init__(self, out: TextIO, resolver: Optional[AssetResolver] = None):
        self.out = out
        self.resolver = resolver or AssetResolver()
        self._lock = threading.Lock()
        self.changes: Dict[TaskKey, PlannedChange] = {}

    def apply(self, task: Task, context: "ExecutionContext") -> Outcome:
        note = ""
        changed = True
        diff = ""
        if context.check_existing:
            try:
                changed = not task.find(context.host)
                if changed:
                    diff = task.diff(context.host)
            except (HostupError, OSError) as e:
                note = f"could not inspect current state: {e}"
        change = PlannedChange(
            key=task.key,
            description=task.describe(self.resolver),
            changed=changed,
            diff=diff,
            note=note,
        )
        with self._lock:
            self.changes[task.key] = change
        return Outcome.PLANNED

    def finish(self, graph: TaskGraph) -> None:
        order = dependency_order(graph)
        changed: List[PlannedChange] = []
        unchanged: List[PlannedChange] = []
        for key in order:
            c = self.changes.get(key)
            if c is None:
                continue
            (changed if c.changed else unchanged).append(c)

        w = self.out.write
        if changed:
            w("Will create or modify resources:\n")
            for c in changed:
                w(f"  {c.key}\n")
                w(f"    {c.description}\n")
                if c.note:
                    w(f"    ({c.note})\n")
                for line in c.diff.splitlines():
                    w(f"      {line}\n")
            w("\n")
        if unchanged:
            w("No changes needed:\n")
            for c in unchanged:
                w(f"  {c.key}\n")
            w("\n")
        w(f"Plan: {len(changed)} to change, {len(unchanged)} unchanged, {len(graph)} total.\n")
        self.out.flush()
