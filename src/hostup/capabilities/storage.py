# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/capabilities/storage.py

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .negotiator import CapabilityDecision, Enabler, Probe, negotiate

log = logging.getLogger("hostup")

PROC_FILESYSTEMS = Path("/proc/filesystems")
MODPROBE = "/sbin/modprobe"

# storage driver -> kernel filesystem it needs
_DRIVER_FILESYSTEMS = {
    "overlay2": "overlay",
}


def driver_filesystem(driver: str) -> str:
    return _DRIVER_FILESYSTEMS.get(driver, driver)


def kernel_has_filesystem(fs: str, proc_path: Path = PROC_FILESYSTEMS) -> bool:
    """
    True when /proc/filesystems lists fs. The nodev column is not skipped;
    it can never equal a filesystem name.
    """
    try:
        contents = proc_path.read_text()
    except OSError as e:
        raise RuntimeError(f"error reading {proc_path}: {e}") from e

    for line in contents.splitlines():
        if fs in line.split():
            return True
    return False


def modprobe(module: str) -> None:
    log.info("Doing modprobe for module %s", module)
    try:
        cp = subprocess.run(
            [MODPROBE, module],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise RuntimeError(f"modprobe for module {module!r} failed: {e}") from e
    out = (cp.stdout + cp.stderr).strip()
    if cp.returncode != 0:
        raise RuntimeError(f"modprobe for module {module!r} failed ({cp.returncode}): {out}")
    if out:
        log.info("Output from modprobe %s:\n%s", module, out)


def skip_modprobe(module: str) -> None:
    """Enabler for targets that must leave the local kernel untouched."""
    log.info("Not loading module %s on this host; target is not direct", module)


def select_storage_driver(
    storage: Optional[str],
    *,
    probe: Probe = kernel_has_filesystem,
    enable: Enabler = modprobe,
    **kwargs,
) -> Optional[str]:
    """
    Resolve a comma-separated storage driver precedence list to one driver.
    A single value (or None) is returned untouched.
    """
    if not storage or "," not in storage:
        return storage

    precedence = [s.strip() for s in storage.split(",") if s.strip()]
    decision: CapabilityDecision = negotiate(
        precedence,
        probe,
        enable,
        driver_filesystem,
        what="storage driver",
        **kwargs,
    )
    return decision.chosen


def load_kernel_modules(enable: Enabler = modprobe) -> None:
    """
    br_netfilter must be loaded before bridge sysctls exist. Failure is only
    a warning; KernelModulesBuilder also schedules it as a retried task.
    """
    try:
        enable("br_netfilter")
    except Exception as e:
        log.warning("error loading br_netfilter module: %s", e)
