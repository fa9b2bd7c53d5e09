# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/builders/registry.py

from __future__ import annotations

from typing import List, Optional

from ..capabilities.negotiator import Enabler, Probe
from ..capabilities.storage import kernel_has_filesystem, modprobe
from ..observers.dispatcher import EventBus
from .base import Builder
from .node import (
    AssetsBuilder,
    DirectoryBuilder,
    FileAssetsBuilder,
    HookBuilder,
    KernelModulesBuilder,
    PackagesBuilder,
    SecretsBuilder,
    SysctlBuilder,
)
from .runtime import ContainerRuntimeBuilder


def build_node_builders(
    *,
    probe: Probe = kernel_has_filesystem,
    enable: Enabler = modprobe,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> List[Builder]:
    """
    Every builder contributing node state. Order only affects log output.
    probe/enable are the kernel facilities used for storage negotiation.
    """
    return [
        DirectoryBuilder(),
        KernelModulesBuilder(),
        PackagesBuilder(),
        SysctlBuilder(),
        ContainerRuntimeBuilder(probe=probe, enable=enable, bus=bus, run_ctx=run_ctx),
        AssetsBuilder(),
        SecretsBuilder(),
        FileAssetsBuilder(),
        HookBuilder(),
    ]
