# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/stores.py
"""
Read-only stores shared by builders and tasks. Safe for concurrent reads;
nothing writes through them during a run.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urlparse

import yaml

from .errors import ConfigurationError

log = logging.getLogger("hostup")


# ---------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Asset:
    name: str                 # basename of the URL
    url: str
    sha256: Optional[str]
    local_path: Path          # where the asset lands once fetched


class AssetStore:
    """
    Registry of downloadable artifacts for this architecture.
    Specs are "<sha256>@<url>" or a bare "<url>".
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)
        self._assets: Dict[str, Asset] = {}

    def add(self, spec: str) -> Asset:
        sha256: Optional[str] = None
        url = spec
        head, sep, tail = spec.partition("@")
        if sep and "://" not in head:
            sha256, url = head, tail

        parsed = urlparse(url)
        name = posixpath.basename(parsed.path)
        if not name:
            raise ConfigurationError(f"cannot determine asset name from {spec!r}")
        if name in self._assets and self._assets[name].url != url:
            raise ConfigurationError(
                f"asset {name!r} declared twice: {self._assets[name].url} and {url}"
            )

        asset = Asset(
            name=name,
            url=url,
            sha256=sha256,
            local_path=self.cache_dir / "assets" / (sha256 or name) / name,
        )
        self._assets[name] = asset
        log.debug("Registered asset %s -> %s", name, url)
        return asset

    def find(self, name: str) -> Asset:
        try:
            return self._assets[name]
        except KeyError:
            raise KeyError(f"unknown asset {name!r}") from None

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._assets))


# ---------------------------------------------------------------------
# Keys & secrets
# ---------------------------------------------------------------------
class _DirectoryStore:
    suffix = ""

    def __init__(self, base: str | Path) -> None:
        self.base = Path(base)

    def _path(self, ident: str) -> Path:
        if "/" in ident or ident.startswith("."):
            raise ValueError(f"invalid store id {ident!r}")
        return self.base / f"{ident}{self.suffix}"

    def close(self) -> None:
        """Release held handles. Directory stores hold none."""


class FileKeyStore(_DirectoryStore):
    """CA certificates and keypairs as <base>/<id>.pem."""

    suffix = ".pem"

    def find_cert(self, ident: str) -> Optional[str]:
        p = self._path(ident)
        if not p.is_file():
            return None
        return p.read_text()


class FileSecretStore(_DirectoryStore):
    """Secrets as <base>/<id>.yaml, each a mapping with a 'data' field."""

    suffix = ".yaml"

    def find_secret(self, ident: str) -> Optional[Any]:
        p = self._path(ident)
        if not p.is_file():
            return None
        data = yaml.safe_load(p.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected mapping in {p}, got {type(data)}")
        return data.get("data")
