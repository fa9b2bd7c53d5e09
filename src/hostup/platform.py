# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/platform.py

from __future__ import annotations

import platform as _platform
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from .errors import ConfigurationError

_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

_DEBIAN_FAMILY = {"debian", "ubuntu"}
_RHEL_FAMILY = {"centos", "rhel", "fedora", "amzn", "rocky", "almalinux"}


def detect_architecture(machine: str | None = None) -> str:
    machine = (machine or _platform.machine()).lower()
    try:
        return _ARCHITECTURES[machine]
    except KeyError:
        raise ConfigurationError(f"unsupported architecture {machine!r}") from None


def arch_tags(arch: str) -> List[str]:
    return [f"_{arch}"]


@dataclass(frozen=True)
class Distribution:
    id: str
    version: str

    @property
    def is_debian_family(self) -> bool:
        return self.id in _DEBIAN_FAMILY

    @property
    def package_manager(self) -> str:
        if self.is_debian_family:
            return "apt"
        major = self.version.split(".", 1)[0]
        if self.id == "fedora" or (major.isdigit() and int(major) >= 8):
            return "dnf"
        return "yum"

    def build_tags(self) -> List[str]:
        tags = [f"_{self.id}"]
        if self.is_debian_family:
            tags.append("_debian_family")
        elif self.id in _RHEL_FAMILY:
            tags.append("_redhat_family")
        return tags


def _parse_os_release(text: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        parts = shlex.split(v) if v else [""]
        out[k] = parts[0] if parts else ""
    return out


def detect_distribution(fs_root: str | Path = "/") -> Distribution:
    path = Path(fs_root) / "etc" / "os-release"
    try:
        info = _parse_os_release(path.read_text())
    except OSError as e:
        raise ConfigurationError(f"error determining OS distribution: {e}") from e
    ident = info.get("ID", "").lower()
    if not ident:
        raise ConfigurationError(f"no ID in {path}")
    return Distribution(id=ident, version=info.get("VERSION_ID", ""))
