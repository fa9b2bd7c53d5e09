# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/observers/jsonfile.py
from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Optional

from .events import BaseEvent


class JsonFileObserver:
    """
    Appends one JSON object per event, keyed by event type. The file is
    opened on the first event and kept open until close().
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._fh: Optional[IO[str]] = None

    def notify(self, event: BaseEvent) -> None:
        if self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("a", encoding="utf-8")
        record = {"type": event.__class__.__name__, **event.dict()}
        self._fh.write(json.dumps(record, sort_keys=True, default=str) + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
