# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/builders/base.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Protocol

from ..config.models import ClusterSpec, InstanceGroup, NodeConfig
from ..platform import Distribution
from ..stores import AssetStore, FileKeyStore, FileSecretStore
from ..tasks.base import Task


@dataclass(frozen=True)
class ModelContext:
    """
    Read-only view of everything a builder may consult.
    """
    architecture: str
    distribution: Distribution
    node_config: NodeConfig
    cluster: ClusterSpec
    instance_group: Optional[InstanceGroup]
    assets: AssetStore
    key_store: FileKeyStore
    secret_store: FileSecretStore
    config_base: str
    cache_dir: str
    fs_root: str = "/"

    @property
    def is_master(self) -> bool:
        return bool(self.instance_group and self.instance_group.role.lower() == "master")


@dataclass
class Fragment:
    """
    Tasks contributed by one builder. Duplicate keys inside a fragment are
    caught by the assembler along with cross-builder collisions.
    """
    source: str
    tasks: List[Task] = field(default_factory=list)

    def add(self, task: Task) -> Task:
        self.tasks.append(task)
        return task

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)


class Builder(Protocol):
    """
    Contract for anything contributing desired node state.
    Implementations read the model, reference other builders' tasks only by
    key, and raise on failure. They never see the merged graph.
    """

    name: str

    def build(self, model: ModelContext) -> Fragment:
        ...
