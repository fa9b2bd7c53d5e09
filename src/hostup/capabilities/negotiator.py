# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/capabilities/negotiator.py
"""
Probe -> enable -> re-probe -> best-effort default.

Any "declare a preference list, pick what the live environment actually
supports" decision goes through negotiate(). It never raises to its caller:
probe and enable failures are logged as ProbeWarning and negotiation moves on.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..errors import ConfigurationError, ProbeWarning
from ..observers.dispatcher import EventBus
from ..observers.events import CapabilitySelected

log = logging.getLogger("hostup")

Probe = Callable[[str], bool]
Enabler = Callable[[str], None]
Normalizer = Callable[[str], str]


@dataclass
class CapabilityDecision:
    candidates: List[str]
    chosen: str
    fell_back: bool = False
    notes: List[str] = field(default_factory=list)


def _warn(decision: CapabilityDecision, message: str) -> None:
    # init_logging routes warnings into the run log
    decision.notes.append(message)
    warnings.warn(message, ProbeWarning, stacklevel=3)


def negotiate(
    candidates: Sequence[str],
    probe: Probe,
    enable: Enabler,
    normalize: Optional[Normalizer] = None,
    *,
    what: str = "capability",
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> CapabilityDecision:
    """
    Return the first candidate whose (normalized) facility is supported,
    enabling it once if needed. Falls back to the first candidate.
    """
    if not candidates:
        raise ConfigurationError(f"No {what} candidates to choose from")

    normalize = normalize or (lambda c: c)
    decision = CapabilityDecision(candidates=list(candidates), chosen=candidates[0])

    for candidate in candidates:
        facility = normalize(candidate)

        try:
            supported = probe(facility)
        except Exception as e:
            _warn(decision, f"error checking if {what} {facility!r} is supported: {e}")
            continue

        if not supported:
            try:
                enable(facility)
            except Exception as e:
                _warn(decision, f"error enabling {what} {facility!r}: {e}")

            try:
                supported = probe(facility)
            except Exception as e:
                _warn(decision, f"error checking if {what} {facility!r} is supported: {e}")
                continue

        if supported:
            log.info("Using supported %s %r", what, candidate)
            decision.chosen = candidate
            _emit(decision, bus, run_ctx)
            return decision

        _warn(decision, f"{candidate!r} {what} was specified, but {facility!r} is not supported")

    decision.fell_back = True
    _warn(
        decision,
        f"No {what} was supported from {','.join(candidates)!r}, will default to {candidates[0]!r}",
    )
    _emit(decision, bus, run_ctx)
    return decision


def _emit(decision: CapabilityDecision, bus: Optional[EventBus], run_ctx: Optional[dict]) -> None:
    if bus and run_ctx:
        bus.emit(
            CapabilitySelected(
                candidates=list(decision.candidates),
                chosen=decision.chosen,
                fell_back=decision.fell_back,
                **run_ctx,
            )
        )
