# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/config/loader.py

import logging
import os
from pathlib import Path
from typing import Optional, Type, TypeVar
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError
from .models import ClusterSpec, InstanceGroup, NodeConfig

log = logging.getLogger("hostup")

CLUSTER_COMPLETED = "cluster.yaml"

M = TypeVar("M", bound=BaseModel)


def to_path(location: str) -> Path:
    """
    Resolve a config location to a local path. Only plain paths and
    file:// URLs are readable here; remote stores are someone else's job.
    """
    parsed = urlparse(location)
    if parsed.scheme in ("", "file"):
        return Path(parsed.path if parsed.scheme else location)
    raise ConfigurationError(f"Unsupported config location scheme {parsed.scheme!r}: {location}")


def _load_yaml(path: Path, expand_env: bool = False) -> dict:
    """Load a YAML file, optionally expanding ${ENV_VAR} references."""
    try:
        raw = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"error loading {path}: {e}") from e
    if expand_env:
        raw = os.path.expandvars(raw)
    try:
        return yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"error parsing {path}: {e}") from e


def _load_model(location: str, model: Type[M], what: str, expand_env: bool = False) -> M:
    path = to_path(location)
    data = _load_yaml(path, expand_env)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"error parsing {what} {location!r}: {e}") from e


def load_config(path: str | Path) -> NodeConfig:
    """
    ${ENV} references are expanded here only. Cluster and instance group
    documents are loaded verbatim.
    """
    return _load_model(str(path), NodeConfig, "configuration", expand_env=True)


def resolve_config_base(config: NodeConfig) -> str:
    """
    config_base wins; otherwise it is the directory holding cluster_location.
    """
    if config.config_base:
        return config.config_base.rstrip("/")
    if config.cluster_location:
        base, _, _ = config.cluster_location.rpartition("/")
        return base or config.cluster_location
    raise ConfigurationError("ConfigBase is required")


def load_cluster(config: NodeConfig, config_base: str) -> ClusterSpec:
    location = config.cluster_location or f"{config_base}/{CLUSTER_COMPLETED}"
    return _load_model(location, ClusterSpec, "Cluster")


def load_instance_group(config: NodeConfig, config_base: str) -> Optional[InstanceGroup]:
    if not config.instance_group_name:
        log.warning("No instance group defined in node config")
        return None
    location = f"{config_base}/instancegroup/{config.instance_group_name}"
    return _load_model(location, InstanceGroup, "InstanceGroup")
