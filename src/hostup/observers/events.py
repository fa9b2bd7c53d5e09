# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single convergence run
    env: str          # target kind: direct/dryrun/cloudinit
    context: Optional[str]  # hostname or instance group

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    order: List[str]

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    error: str


# ---------------------------------------------------------------------
# Task lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class TaskStarted(BaseEvent):
    key: str
    attempt: int

@dataclass(frozen=True)
class TaskSkipped(BaseEvent):
    key: str
    reason: str

@dataclass(frozen=True)
class TaskAttemptFailed(BaseEvent):
    key: str
    attempt: int
    error: str
    retry_in_s: float

@dataclass(frozen=True)
class TaskSucceeded(BaseEvent):
    key: str
    attempts: int
    duration_ms: int

@dataclass(frozen=True)
class TaskFailed(BaseEvent):
    key: str
    attempts: int
    error: str


# ---------------------------------------------------------------------
# Capability negotiation & summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CapabilitySelected(BaseEvent):
    candidates: List[str]
    chosen: str
    fell_back: bool

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    done: int
    skipped: int
    failed: int
    pending: int
