# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/execution/context.py

from __future__ import annotations

import logging
from typing import Any, Optional

from ..stores import FileKeyStore, FileSecretStore
from ..tasks.graph import TaskGraph
from ..targets.base import Target
from .host import Host, LocalHost

log = logging.getLogger("hostup")


class ExecutionContext:
    """
    Everything a running task and its target may reach: the target, the
    graph, the host, the shared stores and an optional cloud handle.

        with ExecutionContext(target, graph, keys, secrets, base, check_existing=True) as ctx:
            run_tasks(ctx)

    close() releases what the context owns on every exit path.
    """

    def __init__(
        self,
        target: Target,
        graph: TaskGraph,
        key_store: FileKeyStore,
        secret_store: FileSecretStore,
        config_base: str,
        check_existing: bool = True,
        cloud: Optional[Any] = None,
        host: Optional[Host] = None,
        fs_root: str = "/",
    ):
        self.target = target
        self.graph = graph
        self.key_store = key_store
        self.secret_store = secret_store
        self.config_base = config_base
        self.cloud = cloud
        self.host: Host = host or LocalHost(fs_root)
        self._check_existing = check_existing
        self._closed = False

    @property
    def check_existing(self) -> bool:
        # A target may force checks off (cloud-init never inspects this host)
        return self._check_existing and self.target.check_existing

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for name, res in (
            ("target", self.target),
            ("key store", self.key_store),
            ("secret store", self.secret_store),
            ("cloud", self.cloud),
        ):
            closer = getattr(res, "close", None)
            if closer is None:
                continue
            try:
                closer()
            except Exception as e:
                log.warning("Failed to release %s: %s", name, e)

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
