# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/targets/registry.py

from __future__ import annotations

import sys
from typing import Iterable, Mapping, Optional, TextIO

from ..config.models import TargetKind
from ..errors import ConfigurationError
from .base import Target
from .cloudinit import CloudInitTarget
from .direct import LocalTarget
from .dryrun import AssetResolver, DryRunTarget


def build_target(
    kind: str,
    *,
    cache_dir: str,
    tags: Iterable[str] = (),
    out: Optional[TextIO] = None,
    mirrors: Optional[Mapping[str, str]] = None,
) -> Target:
    """
    Select the execution backend by name. out receives the dry-run report
    or the cloud-init document (stdout when not given).
    """
    try:
        k = TargetKind(kind)
    except ValueError:
        valid = ", ".join(t.value for t in TargetKind)
        raise ConfigurationError(f"unsupported target {kind!r} (expected one of: {valid})") from None

    out = out or sys.stdout
    if k is TargetKind.DIRECT:
        return LocalTarget(cache_dir=cache_dir)
    if k is TargetKind.DRYRUN:
        return DryRunTarget(out=out, resolver=AssetResolver(mirrors))
    return CloudInitTarget(out=out, tags=tags)
