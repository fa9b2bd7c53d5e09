# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence

from ..builders.base import Builder, Fragment, ModelContext
from ..config.models import ImageSpec
from ..errors import (
    AssemblyError,
    BuilderError,
    CyclicDependencyError,
    UnknownDependencyError,
)
from ..tasks.graph import TaskGraph
from ..tasks.key import TaskKey
from ..tasks.nodetasks import LoadImage

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import PlanComputed, PlanFailed, new_ctx

log = logging.getLogger("hostup")


def _validate_dependencies(graph: TaskGraph) -> None:
    for key in graph.keys_sorted():
        for d in graph[key].dependencies():
            if d not in graph:
                raise UnknownDependencyError(
                    f"Task '{key}' (from '{graph.source_of(key)}') depends on unknown task '{d}'"
                )


def dependency_order(graph: TaskGraph) -> List[TaskKey]:
    """
    Stable topological sort of the graph (Kahn, ties broken by key order).
    Raises CyclicDependencyError naming the tasks left on a cycle.
    """
    _validate_dependencies(graph)

    indeg: Dict[TaskKey, int] = {k: 0 for k in graph}
    dependents: Dict[TaskKey, List[TaskKey]] = {k: [] for k in graph}
    for k in graph:
        for d in set(graph[k].dependencies()):
            indeg[k] += 1
            dependents[d].append(k)

    queue = deque(sorted(k for k, deg in indeg.items() if deg == 0))
    order: List[TaskKey] = []

    while queue:
        n = queue.popleft()
        order.append(n)
        released = False
        for m in dependents[n]:
            indeg[m] -= 1
            if indeg[m] == 0:
                queue.append(m)
                released = True
        if released:
            queue = deque(sorted(queue))  # deterministic

    if len(order) != len(graph):
        stuck = sorted(str(k) for k, deg in indeg.items() if deg > 0)
        raise CyclicDependencyError(
            "Cyclic dependency detected among tasks: " + ", ".join(stuck)
        )
    return order


class Assembler:
    """
    Single merge gate for builder fragments and injected tasks.

        graph = Assembler(bus=bus, run_ctx=ctx).assemble(builders, model, injected=...)

    Every check runs here, before any task executes.
    """

    def __init__(self, bus: Optional[EventBus] = None, run_ctx: Optional[dict] = None):
        self.bus = bus
        self.run_ctx = run_ctx or new_ctx(env="assemble", context=None)

    def collect(self, builders: Sequence[Builder], model: ModelContext) -> List[Fragment]:
        fragments: List[Fragment] = []
        for builder in builders:
            log.debug("building %s", builder.name)
            try:
                frag = builder.build(model)
            except AssemblyError:
                raise
            except Exception as e:
                raise BuilderError(f"builder '{builder.name}' failed: {e}") from e
            log.debug("%s contributed %d task(s)", builder.name, len(frag))
            fragments.append(frag)
        return fragments

    def merge(self, fragments: Iterable[Fragment], graph: Optional[TaskGraph] = None) -> TaskGraph:
        graph = graph if graph is not None else TaskGraph()
        for frag in fragments:
            for task in frag:
                graph.add(task, source=frag.source)
        return graph

    def assemble(
        self,
        builders: Sequence[Builder],
        model: ModelContext,
        injected: Sequence[Fragment] = (),
    ) -> TaskGraph:
        try:
            fragments = self.collect(builders, model)
            graph = self.merge([*fragments, *injected])
            order = dependency_order(graph)
        except AssemblyError as e:
            self._emit_failure(e)
            raise

        log.info("Assembled %d task(s) from %d builder(s)", len(graph), len(builders))
        if self.bus:
            self.bus.emit(PlanComputed(order=[str(k) for k in order], **self.run_ctx))
        return graph

    def _emit_failure(self, e: Exception) -> None:
        if self.bus:
            self.bus.emit(PlanFailed(error=str(e), **self.run_ctx))


def image_fragment(
    images: Sequence[ImageSpec],
    *,
    runtime: str,
    cache_dir: str,
    after: Sequence[TaskKey] = (),
) -> Fragment:
    """
    One LoadImage task per preloaded image, keyed loadimage.<index>.
    """
    frag = Fragment(source="images")
    for i, image in enumerate(images):
        frag.add(
            LoadImage(
                name=f"image-{i}",
                index=i,
                sources=list(image.sources),
                hash=image.hash,
                runtime=runtime,
                cache_dir=cache_dir,
                depends_on=list(after),
            )
        )
    return frag
