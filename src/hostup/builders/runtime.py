# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/builders/runtime.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..capabilities.negotiator import Enabler, Probe
from ..capabilities.storage import kernel_has_filesystem, modprobe, select_storage_driver
from ..errors import BuilderError
from ..tasks.nodetasks import File, Package, Service
from .base import Fragment, ModelContext
from .node import file_key, package_key

# Observer bits
from ..observers.dispatcher import EventBus

log = logging.getLogger("hostup")

DOCKER_DAEMON_JSON = "/etc/docker/daemon.json"
CONTAINERD_CONFIG = "/etc/containerd/config.toml"

_CONTAINERD_TOML = """version = 2

[plugins."io.containerd.grpc.v1.cri".containerd.runtimes.runc.options]
  SystemdCgroup = true
"""


@dataclass
class ContainerRuntimeBuilder:
    """
    Container runtime package, daemon configuration and service.
    The docker storage driver is negotiated against the live kernel.
    """

    name: str = "container-runtime"
    probe: Probe = kernel_has_filesystem
    enable: Enabler = modprobe
    bus: Optional[EventBus] = None
    run_ctx: Optional[dict] = None

    def build(self, model: ModelContext) -> Fragment:
        runtime = model.cluster.container_runtime
        if runtime == "docker":
            return self._docker(model)
        if runtime == "containerd":
            return self._containerd(model)
        raise BuilderError(f"unsupported container runtime {runtime!r}")

    def _daemon_config(self, model: ModelContext) -> Dict[str, Any]:
        docker = model.cluster.docker
        cfg: Dict[str, Any] = {"exec-opts": ["native.cgroupdriver=systemd"]}
        if docker is None:
            return cfg
        storage: Optional[str] = select_storage_driver(
            docker.storage, probe=self.probe, enable=self.enable, bus=self.bus, run_ctx=self.run_ctx
        )
        if storage:
            cfg["storage-driver"] = storage
        cfg["log-driver"] = docker.log_driver
        if docker.log_opts:
            cfg["log-opts"] = dict(docker.log_opts)
        if docker.insecure_registries:
            cfg["insecure-registries"] = list(docker.insecure_registries)
        return cfg

    def _docker(self, model: ModelContext) -> Fragment:
        pkg = "docker.io" if model.distribution.is_debian_family else "docker"
        frag = Fragment(source=self.name)
        frag.add(Package(name=pkg, manager=model.distribution.package_manager))
        frag.add(
            File(
                name=DOCKER_DAEMON_JSON,
                contents=json.dumps(self._daemon_config(model), indent=2, sort_keys=True) + "\n",
                mode="0644",
            )
        )
        frag.add(
            Service(
                name="docker.service",
                depends_on=[package_key(pkg), file_key(DOCKER_DAEMON_JSON)],
            )
        )
        return frag

    def _containerd(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)
        frag.add(Package(name="containerd", manager=model.distribution.package_manager))
        frag.add(File(name=CONTAINERD_CONFIG, contents=_CONTAINERD_TOML, mode="0644"))
        frag.add(
            Service(
                name="containerd.service",
                depends_on=[package_key("containerd"), file_key(CONTAINERD_CONFIG)],
            )
        )
        return frag
