# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/command.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, TextIO

from .builders.base import Builder, ModelContext
from .builders.registry import build_node_builders
from .builders.runtime import ContainerRuntimeBuilder
from .capabilities.negotiator import Enabler, Probe
from .capabilities.storage import kernel_has_filesystem, load_kernel_modules, modprobe, skip_modprobe
from .config.loader import (
    load_cluster,
    load_config,
    load_instance_group,
    resolve_config_base,
    to_path,
)
from .config.models import TargetKind
from .deploy.assembler import Assembler, image_fragment
from .deploy.scheduler import RunReport, RunTasksOptions, run_tasks
from .errors import ConfigurationError
from .execution.context import ExecutionContext
from .execution.host import Host
from .metadata.hostname import Metadata, MetadataClient, evaluate_spec
from .platform import arch_tags, detect_architecture, detect_distribution
from .stores import AssetStore, FileKeyStore, FileSecretStore
from .targets.registry import build_target
from .tasks.key import TaskKey

# Observer bits
from .observers.dispatcher import EventBus
from .observers.events import new_ctx

log = logging.getLogger("hostup")


@dataclass
class CommandOptions:
    config_location: str = ""
    cache_dir: str = ""
    fs_root: str = "/"
    target: str = TargetKind.DIRECT.value

    def validate(self) -> TargetKind:
        if not self.fs_root:
            raise ConfigurationError("FSRoot is required")
        if not self.config_location:
            raise ConfigurationError("ConfigLocation is required")
        if not self.cache_dir:
            raise ConfigurationError("CacheDir is required")
        try:
            return TargetKind(self.target)
        except ValueError:
            raise ConfigurationError(f"unsupported target type {self.target!r}") from None


class ConvergeCommand:
    """
    One convergence run: load configuration, evaluate it against this
    machine, assemble the task graph and drive it through the target.

        report = ConvergeCommand(CommandOptions(...)).run(out=sys.stdout)

    Collaborators that touch the outside world (metadata, host, kernel
    facilities, builders) can be injected; defaults talk to the real host.
    """

    def __init__(
        self,
        options: CommandOptions,
        *,
        run_options: Optional[RunTasksOptions] = None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        metadata: Optional[Metadata] = None,
        host: Optional[Host] = None,
        builders: Optional[Sequence[Builder]] = None,
        probe: Probe = kernel_has_filesystem,
        enable: Enabler = modprobe,
        architecture: Optional[str] = None,
    ):
        self.options = options
        self.run_options = run_options or RunTasksOptions()
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.metadata = metadata
        self.host = host
        self.builders = builders
        self.probe = probe
        self.enable = enable
        self.architecture = architecture

    def run(self, out: Optional[TextIO] = None) -> RunReport:
        o = self.options
        kind = o.validate()

        config = load_config(o.config_location)
        config_base = resolve_config_base(config)
        cluster = load_cluster(config, config_base)
        instance_group = load_instance_group(config, config_base)

        run_ctx = new_ctx(
            env=kind.value,
            context=instance_group.name if instance_group else cluster.name or None,
            run_id=self.run_id,
        )

        metadata = self.metadata or MetadataClient()
        try:
            cluster, config = evaluate_spec(cluster, config, metadata)
        finally:
            if self.metadata is None:
                metadata.close()

        architecture = self.architecture or detect_architecture()
        distribution = detect_distribution(o.fs_root)
        node_tags: List[str] = sorted(
            set(config.tags) | set(arch_tags(architecture)) | set(distribution.build_tags())
        )
        log.info("Config tags: %s", config.tags)
        log.info("Arch tags: %s", arch_tags(architecture))
        log.info("Distro tags: %s", distribution.build_tags())

        assets = AssetStore(o.cache_dir)
        for spec in config.assets.get(architecture, []):
            assets.add(spec)

        if not cluster.secret_store:
            raise ConfigurationError("SecretStore not set")
        log.info("Building SecretStore at %r", cluster.secret_store)
        secret_store = FileSecretStore(to_path(cluster.secret_store))
        if not cluster.key_store:
            raise ConfigurationError("KeyStore not set")
        log.info("Building KeyStore at %r", cluster.key_store)
        key_store = FileKeyStore(to_path(cluster.key_store))

        model = ModelContext(
            architecture=architecture,
            distribution=distribution,
            node_config=config,
            cluster=cluster,
            instance_group=instance_group,
            assets=assets,
            key_store=key_store,
            secret_store=secret_store,
            config_base=config_base,
            cache_dir=o.cache_dir,
            fs_root=o.fs_root,
        )

        # dryrun and cloudinit never load modules on this machine
        enable = self.enable if kind is TargetKind.DIRECT else skip_modprobe
        if kind is TargetKind.DIRECT:
            load_kernel_modules(enable)

        builders = list(self.builders) if self.builders is not None else build_node_builders(
            probe=self.probe, enable=enable, bus=self.bus, run_ctx=run_ctx
        )

        # Images import into the runtime, so they wait for its service
        after: List[TaskKey] = []
        if any(isinstance(b, ContainerRuntimeBuilder) for b in builders):
            after.append(TaskKey.named("service", f"{cluster.container_runtime}.service"))
        images = image_fragment(
            config.images.get(architecture, []),
            runtime=cluster.container_runtime,
            cache_dir=o.cache_dir,
            after=after,
        )

        graph = Assembler(bus=self.bus, run_ctx=run_ctx).assemble(builders, model, injected=[images])

        target = build_target(
            kind.value,
            cache_dir=o.cache_dir,
            tags=node_tags,
            out=out,
            mirrors=config.asset_mirrors,
        )

        with ExecutionContext(
            target,
            graph,
            key_store,
            secret_store,
            config_base,
            check_existing=True,
            host=self.host,
            fs_root=o.fs_root,
        ) as context:
            report = run_tasks(context, self.run_options, bus=self.bus, run_ctx=run_ctx)
            target.finish(graph)
        return report
