# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/observers/interface.py
from __future__ import annotations
from typing import Protocol, runtime_checkable
from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """
    Receives every lifecycle event of a run. Task events arrive from worker
    threads; the EventBus delivers them one at a time.
    """

    def notify(self, event: BaseEvent) -> None: ...
