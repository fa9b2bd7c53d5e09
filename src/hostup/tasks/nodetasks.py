# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/tasks/nodetasks.py

from __future__ import annotations

import difflib
import hashlib
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, List, Optional

import requests

from ..errors import FatalTaskError, TransientTaskError
from .base import Task
from .key import TaskKey

if TYPE_CHECKING:
    from ..execution.host import Host
    from ..targets.dryrun import AssetResolver

log = logging.getLogger("hostup")


def _write(path: str, contents: str) -> str:
    return f"printf %s {shlex.quote(contents)} > {shlex.quote(path)}"


def _q(argv: List[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _fetch(urls: List[str], target: Path, sha256: Optional[str], timeout: float) -> Path:
    """
    Stream the first reachable url into target. When sha256 is set the
    download must match it; a mismatch moves on to the next url.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    errors: List[str] = []
    for url in urls:
        log.info("Fetching %s from %s", target.name, url)
        digest = hashlib.sha256()
        try:
            with requests.get(url, stream=True, timeout=timeout) as resp:
                resp.raise_for_status()
                with target.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=1 << 20):
                        digest.update(chunk)
                        f.write(chunk)
        except requests.RequestException as e:
            errors.append(f"{url}: {e}")
            continue
        if sha256 and digest.hexdigest() != sha256:
            errors.append(f"{url}: sha256 {digest.hexdigest()} != {sha256}")
            continue
        return target
    raise TransientTaskError(
        f"Could not fetch {target.name} from any source: " + "; ".join(errors)
    )


def _sha256_of(p: Path) -> str:
    digest = hashlib.sha256()
    with p.open("rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


# ---------------------------------------------------------------------
# File / directory
# ---------------------------------------------------------------------
@dataclass
class File(Task):
    """
    A file or directory at an absolute host path.
    on_change commands run after a mutation (e.g. `sysctl --system`).
    """

    kind: ClassVar[str] = "file"

    contents: Optional[str] = None
    mode: str = "0644"
    is_directory: bool = False
    on_change: List[List[str]] = field(default_factory=list)

    def find(self, host: "Host") -> bool:
        p = host.path(self.name)
        if self.is_directory:
            return p.is_dir() and self._mode_matches(p)
        if not p.is_file():
            return False
        if self.contents is not None and p.read_text(encoding="utf-8") != self.contents:
            return False
        return self._mode_matches(p)

    def _mode_matches(self, p: Path) -> bool:
        return (p.stat().st_mode & 0o7777) == int(self.mode, 8)

    def apply(self, host: "Host") -> None:
        p = host.path(self.name)
        if self.is_directory:
            p.mkdir(parents=True, exist_ok=True)
        # contents=None on an existing file only fixes its mode
        elif self.contents is not None or not p.is_file():
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp = p.with_name(f".{p.name}.hostup-tmp")
            tmp.write_text(self.contents or "", encoding="utf-8")
            tmp.replace(p)
        p.chmod(int(self.mode, 8))
        for argv in self.on_change:
            host.run(argv)

    def render(self) -> List[str]:
        if self.is_directory:
            lines = [_q(["install", "-d", "-m", self.mode, self.name])]
        else:
            parent = str(Path(self.name).parent)
            lines = [
                _q(["install", "-d", "-m", "0755", parent]),
                _write(self.name, self.contents)
                if self.contents is not None
                else f"touch {shlex.quote(self.name)}",
                _q(["chmod", self.mode, self.name]),
            ]
        lines.extend(_q(argv) for argv in self.on_change)
        return lines

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        what = "directory" if self.is_directory else "file"
        return f"{what} {self.name} mode={self.mode}"

    def diff(self, host: "Host") -> str:
        if self.is_directory or self.contents is None:
            return ""
        p = host.path(self.name)
        current = p.read_text(encoding="utf-8") if p.is_file() else ""
        return "".join(
            difflib.unified_diff(
                current.splitlines(keepends=True),
                self.contents.splitlines(keepends=True),
                fromfile=f"a{self.name}",
                tofile=f"b{self.name}",
            )
        )


# ---------------------------------------------------------------------
# Package
# ---------------------------------------------------------------------
@dataclass
class Package(Task):
    kind: ClassVar[str] = "package"

    version: Optional[str] = None
    manager: str = "apt"

    def _spec(self) -> str:
        if not self.version:
            return self.name
        sep = "=" if self.manager == "apt" else "-"
        return f"{self.name}{sep}{self.version}"

    def find(self, host: "Host") -> bool:
        if self.manager == "apt":
            cp = host.run(
                ["dpkg-query", "-W", "-f=${Status} ${Version}", self.name], check=False
            )
            if cp.returncode != 0 or "install ok installed" not in cp.stdout:
                return False
            installed = cp.stdout.split()[-1] if cp.stdout.split() else ""
            return not self.version or installed == self.version
        cp = host.run(["rpm", "-q", self._spec()], check=False)
        return cp.returncode == 0

    def _install_argv(self) -> List[str]:
        if self.manager == "apt":
            return ["apt-get", "install", "-y", "--no-install-recommends", self._spec()]
        if self.manager in ("yum", "dnf"):
            return [self.manager, "install", "-y", self._spec()]
        raise FatalTaskError(f"Unsupported package manager '{self.manager}' for {self.name}")

    def apply(self, host: "Host") -> None:
        host.run(self._install_argv(), env={"DEBIAN_FRONTEND": "noninteractive"})

    def render(self) -> List[str]:
        argv = self._install_argv()
        if self.manager == "apt":
            return ["DEBIAN_FRONTEND=noninteractive " + _q(argv)]
        return [_q(argv)]

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        return f"package {self._spec()} via {self.manager}"


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------
@dataclass
class Service(Task):
    """
    A systemd unit. When definition is set the unit file is written first.
    """

    kind: ClassVar[str] = "service"

    definition: Optional[str] = None
    enabled: bool = True
    running: bool = True
    unit_dir: str = "/lib/systemd/system"

    @property
    def unit_path(self) -> str:
        return f"{self.unit_dir}/{self.name}"

    def find(self, host: "Host") -> bool:
        if self.definition is not None:
            p = host.path(self.unit_path)
            if not p.is_file() or p.read_text(encoding="utf-8") != self.definition:
                return False
        if self.enabled:
            if host.run(["systemctl", "is-enabled", self.name], check=False).returncode != 0:
                return False
        if self.running:
            if host.run(["systemctl", "is-active", self.name], check=False).returncode != 0:
                return False
        return True

    def apply(self, host: "Host") -> None:
        if self.definition is not None:
            p = host.path(self.unit_path)
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(self.definition, encoding="utf-8")
            host.run(["systemctl", "daemon-reload"])
        for argv in self._actions():
            host.run(argv)

    def _actions(self) -> List[List[str]]:
        actions: List[List[str]] = []
        if self.enabled:
            actions.append(["systemctl", "enable", self.name])
        if self.running:
            actions.append(["systemctl", "restart", self.name])
        return actions

    def render(self) -> List[str]:
        lines: List[str] = []
        if self.definition is not None:
            lines.append(_write(self.unit_path, self.definition))
            lines.append("systemctl daemon-reload")
        lines.extend(_q(argv) for argv in self._actions())
        return lines

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        return f"service {self.name} enabled={self.enabled} running={self.running}"


# ---------------------------------------------------------------------
# Kernel module
# ---------------------------------------------------------------------
@dataclass
class KernelModule(Task):
    kind: ClassVar[str] = "kernelmodule"

    def _load_conf(self) -> str:
        return f"/etc/modules-load.d/{self.name}.conf"

    def find(self, host: "Host") -> bool:
        loaded = host.path(f"/sys/module/{self.name}").exists()
        persisted = host.path(self._load_conf()).is_file()
        return loaded and persisted

    def apply(self, host: "Host") -> None:
        host.run(["/sbin/modprobe", self.name])
        conf = host.path(self._load_conf())
        conf.parent.mkdir(parents=True, exist_ok=True)
        conf.write_text(self.name + "\n", encoding="utf-8")

    def render(self) -> List[str]:
        return [
            _q(["/sbin/modprobe", self.name]),
            f"echo {shlex.quote(self.name)} > {shlex.quote(self._load_conf())}",
        ]

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        return f"kernel module {self.name}"


# ---------------------------------------------------------------------
# Container image preload
# ---------------------------------------------------------------------
@dataclass
class LoadImage(Task):
    """
    Download an image tarball from the first reachable source, verify its
    sha256 and import it into the container runtime. Keyed loadimage.<index>.
    """

    kind: ClassVar[str] = "loadimage"

    index: int = 0
    sources: List[str] = field(default_factory=list)
    hash: str = ""
    runtime: str = "docker"
    cache_dir: str = "/var/cache/hostup"
    timeout: float = 120.0

    @property
    def key(self) -> TaskKey:
        return TaskKey.indexed(self.kind, self.index)

    def _marker(self) -> str:
        return f"{self.cache_dir}/images/{self.hash}.loaded"

    def _tarball(self) -> str:
        return f"{self.cache_dir}/images/{self.hash}.tar"

    def _import_argv(self, tarball: str) -> List[str]:
        if self.runtime == "containerd":
            return ["ctr", "--namespace", "k8s.io", "images", "import", tarball]
        if self.runtime == "docker":
            return ["docker", "load", "-i", tarball]
        raise FatalTaskError(f"Unsupported container runtime '{self.runtime}'")

    def find(self, host: "Host") -> bool:
        return host.path(self._marker()).is_file()

    def apply(self, host: "Host") -> None:
        if not self.sources:
            raise FatalTaskError(f"Image {self.key} has no sources")
        tarball = _fetch(self.sources, host.path(self._tarball()), self.hash, self.timeout)
        host.run(self._import_argv(str(tarball)))
        host.path(self._marker()).write_text(str(tarball.name) + "\n", encoding="utf-8")

    def render(self) -> List[str]:
        tarball = shlex.quote(self._tarball())
        fetch = " || ".join(
            f"curl -fsSL --retry 5 -o {tarball} {shlex.quote(url)}" for url in self.sources
        ) or "false"
        return [
            _q(["install", "-d", "-m", "0755", f"{self.cache_dir}/images"]),
            f"( {fetch} )",
            f"echo {shlex.quote(self.hash + '  ' + self._tarball())} | sha256sum -c -",
            _q(self._import_argv(self._tarball())),
            f"touch {shlex.quote(self._marker())}",
        ]

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        sources = self.sources
        if resolver is not None:
            sources = [resolver.resolve(s) for s in sources]
        return f"load image sha256:{self.hash} into {self.runtime} from {', '.join(sources)}"


# ---------------------------------------------------------------------
# Asset download
# ---------------------------------------------------------------------
@dataclass
class Download(Task):
    """A registered asset fetched into the cache. Keyed download/<asset name>."""

    kind: ClassVar[str] = "download"

    url: str = ""
    dest: str = ""
    sha256: Optional[str] = None
    mode: str = "0644"
    timeout: float = 120.0

    def find(self, host: "Host") -> bool:
        p = host.path(self.dest)
        if not p.is_file():
            return False
        return not self.sha256 or _sha256_of(p) == self.sha256

    def apply(self, host: "Host") -> None:
        if not self.url:
            raise FatalTaskError(f"Asset {self.key} has no url")
        p = _fetch([self.url], host.path(self.dest), self.sha256, self.timeout)
        p.chmod(int(self.mode, 8))

    def render(self) -> List[str]:
        dest = shlex.quote(self.dest)
        lines = [
            _q(["install", "-d", "-m", "0755", str(Path(self.dest).parent)]),
            f"curl -fsSL --retry 5 -o {dest} {shlex.quote(self.url)}",
        ]
        if self.sha256:
            lines.append(f"echo {shlex.quote(self.sha256 + '  ' + self.dest)} | sha256sum -c -")
        lines.append(_q(["chmod", self.mode, self.dest]))
        return lines

    def describe(self, resolver: Optional["AssetResolver"] = None) -> str:
        url = resolver.resolve(self.url) if resolver is not None else self.url
        return f"asset {self.name} -> {self.dest} from {url}"
