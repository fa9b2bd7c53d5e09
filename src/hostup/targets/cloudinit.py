# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/targets/cloudinit.py

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, Iterable, List, TextIO

import yaml

from ..deploy.assembler import dependency_order
from ..tasks.base import Task
from ..tasks.graph import TaskGraph
from ..tasks.key import TaskKey
from ..utils.templates import TemplateRenderer
from .base import Outcome, Target

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext

log = logging.getLogger("hostup")

SCRIPT_PATH = "/var/lib/hostup/converge.sh"

_TEMPLATES = {
    "converge.sh": """#!/bin/bash
set -o errexit
set -o nounset
set -o pipefail
{% for step in steps %}

# step {{ loop.index }}: {{ step.key }}
{% for line in step.lines %}
{{ line }}
{% endfor %}
{% endfor %}
""",
    "cloud-config": """#cloud-config
# generated by hostup
# node tags: {{ tags | join(",") }}
{{ body }}""",
}


class CloudInitTarget(Target):
    """
    Collects each task's rendered shell lines and, in finish(), writes one
    #cloud-config document that runs them as a single ordered script.
    Nothing on the local host is inspected or changed.
    """

    name = "cloudinit"
    check_existing = False

    def __init__(self, out: TextIO, tags: Iterable[str] = ()):
        self.out = out
        self.tags = sorted(set(tags))
        self._lock = threading.Lock()
        self._rendered: Dict[TaskKey, List[str]] = {}
        self._renderer = TemplateRenderer(_TEMPLATES)

    def apply(self, task: Task, context: "ExecutionContext") -> Outcome:
        lines = task.render()
        with self._lock:
            self._rendered[task.key] = lines
        return Outcome.RENDERED

    def script(self, graph: TaskGraph) -> str:
        steps = [
            {"key": str(k), "lines": self._rendered[k]}
            for k in dependency_order(graph)
            if k in self._rendered
        ]
        return self._renderer.render("converge.sh", {"steps": steps})

    def finish(self, graph: TaskGraph) -> None:
        doc = {
            "write_files": [
                {
                    "path": SCRIPT_PATH,
                    "owner": "root:root",
                    "permissions": "0700",
                    "content": self.script(graph),
                }
            ],
            "runcmd": [["/bin/bash", SCRIPT_PATH]],
        }
        body = yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)
        self.out.write(self._renderer.render("cloud-config", {"tags": self.tags, "body": body}))
        self.out.flush()
        log.info("cloud-init document rendered with %d step(s)", len(self._rendered))
