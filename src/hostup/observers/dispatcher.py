# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/observers/dispatcher.py
from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .events import BaseEvent
from .interface import Observer

log = logging.getLogger("hostup")


class EventBus:
    """
    Fans events out to observers. Tasks emit from worker threads, so
    notification is serialized.
    """

    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers = list(observers or [])
        self._lock = threading.Lock()

    def emit(self, event: BaseEvent) -> None:
        with self._lock:
            for ob in self._observers:
                try:
                    ob.notify(event)
                except Exception:
                    # observers must not break a run
                    log.debug("observer %r failed on %s", ob, type(event).__name__, exc_info=True)
