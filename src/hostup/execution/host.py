# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/execution/host.py
from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence

from ..errors import FatalTaskError, TransientTaskError

log = logging.getLogger("hostup")


class Host(Protocol):
    """
    What a task may touch on the machine being converged.
    Paths are absolute host paths; implementations map them under fs_root.
    """

    fs_root: Path

    def path(self, p: str) -> Path: ...

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess: ...


class LocalHost:
    """
    The live machine, optionally seen through a chroot-like fs_root.
    """

    def __init__(self, fs_root: str | Path = "/", cmd_timeout: float = 600.0):
        self.fs_root = Path(fs_root)
        self.cmd_timeout = cmd_timeout

    def path(self, p: str) -> Path:
        return self.fs_root / p.lstrip("/")

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        argv = list(argv)
        log.debug("$ %s", " ".join(argv))
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)
        try:
            cp = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False,
                env=full_env,
                timeout=self.cmd_timeout,
            )
        except FileNotFoundError as e:
            raise FatalTaskError(f"Command not found: {argv[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise TransientTaskError(
                f"Command timed out after {self.cmd_timeout}s: {' '.join(argv)}"
            ) from e

        if cp.stdout:
            log.debug(cp.stdout.rstrip())
        if check and cp.returncode != 0:
            raise TransientTaskError(
                f"Command failed ({cp.returncode}): {' '.join(argv)}\n{cp.stderr.strip()}"
            )
        return cp
