# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/errors.py
from __future__ import annotations


class HostupError(RuntimeError):
    """Base class for every failure the agent reports."""


class ConfigurationError(HostupError):
    """Raised when required input is missing or invalid, before assembly."""


# ---------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------
class AssemblyError(HostupError):
    """Raised when the task graph cannot be built. Nothing has executed."""


class DuplicateTaskError(AssemblyError):
    pass


class CyclicDependencyError(AssemblyError):
    pass


class UnknownDependencyError(AssemblyError):
    pass


class BuilderError(AssemblyError):
    """A builder failed while producing its fragment."""


# ---------------------------------------------------------------------
# Task execution
# ---------------------------------------------------------------------
class TaskError(HostupError):
    pass


class TransientTaskError(TaskError):
    """Retried until the task succeeds or the retry ceiling is reached."""


class FatalTaskError(TaskError):
    """Aborts the whole run on first occurrence."""


class TaskTimeoutError(FatalTaskError):
    """A retryable task kept failing past the retry ceiling."""


# ---------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------
class ProbeWarning(UserWarning):
    """Capability probe or enable failure. Logged, never raised to callers."""


class MetadataLookupError(HostupError):
    """Instance metadata could not be read; there is no safe default identity."""
