# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/hostup/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from datetime import datetime, timezone
import uuid

DEFAULT_LOG_DIR = Path("/var/log/hostup")

FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s"

# Third-party loggers that are noisy at DEBUG
_QUIET = ("urllib3", "requests")


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "hostup",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - per-run log file with the full DEBUG trace, worker thread included
      - console handler on stderr, INFO by default
      - capture of warnings.warn (capability probe warnings) into both
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    base_dir = Path(base_dir) if base_dir is not None else DEFAULT_LOG_DIR
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # File = FULL TRACE
    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    # Console = INFO by default, DEBUG when --verbose is passed
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger = logging.getLogger(name)
    warnings_logger = logging.getLogger("py.warnings")
    for lg in (logger, warnings_logger):
        lg.setLevel(logging.DEBUG)
        lg.handlers.clear()
        lg.propagate = False
        lg.addHandler(fh)
        lg.addHandler(ch)
    logging.captureWarnings(True)

    for noisy in _QUIET:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("=== hostup run started (run_id=%s) ===", run_id)

    return logger, run_id, log_path
