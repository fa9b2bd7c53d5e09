# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/builders/node.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterable, List

from ..config.models import HookSpec
from ..errors import BuilderError
from ..tasks.key import TaskKey
from ..tasks.nodetasks import Download, File, KernelModule, Package, Service
from .base import Fragment, ModelContext

log = logging.getLogger("hostup")


def file_key(path: str) -> TaskKey:
    return TaskKey.named(File.kind, path)


def module_key(name: str) -> TaskKey:
    return TaskKey.named(KernelModule.kind, name)


def package_key(name: str) -> TaskKey:
    return TaskKey.named(Package.kind, name)


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for i in items:
        if i and i not in seen:
            seen.add(i)
            out.append(i)
    return out


# ---------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------
@dataclass
class DirectoryBuilder:
    name: str = "directories"

    def build(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)
        for path in _unique(["/srv/kubernetes", "/var/lib/hostup", model.cache_dir]):
            frag.add(File(name=path, is_directory=True, mode="0755"))
        return frag


# ---------------------------------------------------------------------
# Kernel modules
# ---------------------------------------------------------------------
@dataclass
class KernelModulesBuilder:
    name: str = "kernel-modules"

    def build(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)
        for module in _unique(["br_netfilter", *model.node_config.kernel_modules]):
            frag.add(KernelModule(name=module))
        return frag


# ---------------------------------------------------------------------
# Sysctl
# ---------------------------------------------------------------------
SYSCTL_PATH = "/etc/sysctl.d/99-k8s-general.conf"

_DEFAULT_SYSCTLS = [
    "# Kubernetes settings",
    "net.bridge.bridge-nf-call-iptables = 1",
    "net.bridge.bridge-nf-call-ip6tables = 1",
    "net.ipv4.ip_forward = 1",
    "",
    "# Increase the number of inotify watches",
    "fs.inotify.max_user_instances = 1280",
    "fs.inotify.max_user_watches = 655360",
    "",
    "# Prefer to keep workloads in memory",
    "vm.swappiness = 1",
    "",
]


@dataclass
class SysctlBuilder:
    name: str = "sysctl"

    def build(self, model: ModelContext) -> Fragment:
        lines = list(_DEFAULT_SYSCTLS)
        extra = list(model.cluster.sysctl_parameters)
        if model.instance_group:
            extra.extend(model.instance_group.sysctl_parameters)
        for param in extra:
            if "=" not in param:
                raise BuilderError(f"sysctl parameter {param!r} is not of the form key=value")
        if extra:
            lines.append("# Custom sysctl parameters from cluster and instance group spec")
            lines.extend(extra)
            lines.append("")

        frag = Fragment(source=self.name)
        frag.add(
            File(
                name=SYSCTL_PATH,
                contents="\n".join(lines),
                mode="0644",
                on_change=[["sysctl", "--system"]],
                depends_on=[module_key("br_netfilter")],
            )
        )
        return frag


# ---------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------
_BASE_PACKAGES = {
    "apt": ["conntrack", "ebtables", "ethtool", "socat", "curl"],
    "dnf": ["conntrack-tools", "ebtables", "ethtool", "socat", "curl"],
    "yum": ["conntrack-tools", "ebtables", "ethtool", "socat", "curl"],
}


@dataclass
class PackagesBuilder:
    name: str = "packages"

    def build(self, model: ModelContext) -> Fragment:
        manager = model.distribution.package_manager
        wanted = list(_BASE_PACKAGES.get(manager, []))
        wanted.extend(model.node_config.packages)
        if model.instance_group:
            wanted.extend(model.instance_group.additional_packages)

        frag = Fragment(source=self.name)
        for spec in _unique(wanted):
            name, _, version = spec.partition("=")
            frag.add(Package(name=name, version=version or None, manager=manager))
        return frag


# ---------------------------------------------------------------------
# File assets
# ---------------------------------------------------------------------
@dataclass
class FileAssetsBuilder:
    name: str = "file-assets"

    def build(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)
        specs = list(model.cluster.file_assets)
        if model.instance_group:
            specs.extend(model.instance_group.file_assets)
        for spec in specs:
            if not spec.path.startswith("/"):
                raise BuilderError(f"file asset {spec.name!r} path must be absolute: {spec.path}")
            frag.add(File(name=spec.path, contents=spec.content, mode=spec.mode))
        return frag


# ---------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------
def _hook_unit(hook: HookSpec) -> str:
    if hook.manifest:
        return hook.manifest
    if not hook.exec_start:
        raise BuilderError(f"hook {hook.name!r} needs either a manifest or exec_start")
    lines = ["[Unit]", f"Description=Hook {hook.name}"]
    for r in hook.requires:
        lines.append(f"Requires={r}")
        lines.append(f"After={r}")
    for b in hook.before:
        lines.append(f"Before={b}")
    lines += [
        "",
        "[Service]",
        "Type=oneshot",
        f"ExecStart={hook.exec_start}",
        "",
        "[Install]",
        "WantedBy=multi-user.target",
        "",
    ]
    return "\n".join(lines)


@dataclass
class HookBuilder:
    name: str = "hooks"

    def build(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)
        hooks = list(model.cluster.hooks)
        if model.instance_group:
            hooks.extend(model.instance_group.hooks)
        for hook in hooks:
            unit = hook.name if "." in hook.name else f"{hook.name}.service"
            frag.add(Service(name=unit, definition=_hook_unit(hook), running=True))
        return frag


# ---------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------
@dataclass
class AssetsBuilder:
    """One Download per asset registered for this architecture."""

    name: str = "assets"

    def build(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)
        for asset_name in model.assets:
            asset = model.assets.find(asset_name)
            frag.add(
                Download(
                    name=asset.name,
                    url=asset.url,
                    dest=str(asset.local_path),
                    sha256=asset.sha256,
                )
            )
        return frag


# ---------------------------------------------------------------------
# Keys & secrets
# ---------------------------------------------------------------------
CA_CERT_PATH = "/srv/kubernetes/ca.crt"
DOCKER_CONFIG_PATH = "/root/.docker/config.json"


@dataclass
class SecretsBuilder:
    """
    Material from the key and secret stores: the cluster CA certificate and
    registry credentials. Absent entries contribute nothing.
    """

    name: str = "secrets"

    def build(self, model: ModelContext) -> Fragment:
        frag = Fragment(source=self.name)

        ca = model.key_store.find_cert("ca")
        if ca is not None:
            frag.add(File(name=CA_CERT_PATH, contents=ca, mode="0644"))

        try:
            dockercfg = model.secret_store.find_secret("dockerconfig")
        except ValueError as e:
            raise BuilderError(f"invalid dockerconfig secret: {e}") from e
        if dockercfg is not None:
            if not isinstance(dockercfg, str):
                dockercfg = json.dumps(dockercfg, indent=2, sort_keys=True) + "\n"
            frag.add(File(name=DOCKER_CONFIG_PATH, contents=dockercfg, mode="0600"))
        return frag
