# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/config/models.py

import enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class TargetKind(str, enum.Enum):
    DIRECT = "direct"
    DRYRUN = "dryrun"
    CLOUDINIT = "cloudinit"


class ImageSpec(BaseModel):
    # Preloaded container image tarball
    sources: List[str]
    hash: str


class FileAssetSpec(BaseModel):
    name: str
    path: str
    content: str
    mode: str = "0644"


class HookSpec(BaseModel):
    name: str                          # unit name, e.g. "disable-ipv6.service"
    manifest: Optional[str] = None     # full unit file
    exec_start: Optional[str] = None   # shorthand: oneshot unit running this command
    requires: List[str] = Field(default_factory=list)
    before: List[str] = Field(default_factory=list)


class DockerConfig(BaseModel):
    storage: Optional[str] = None      # single driver or "overlay2,aufs" precedence
    log_driver: str = "json-file"
    log_opts: Dict[str, str] = Field(default_factory=dict)
    insecure_registries: List[str] = Field(default_factory=list)


class KubeletConfig(BaseModel):
    hostname_override: str = ""


class KubeProxyConfig(BaseModel):
    hostname_override: str = ""
    bind_address: str = ""


class ClusterSpec(BaseModel):
    """Cluster-wide specification, as published by the control plane tooling."""

    name: str = ""
    secret_store: str = ""
    key_store: str = ""
    container_runtime: str = "docker"
    docker: Optional[DockerConfig] = None
    kubelet: KubeletConfig = KubeletConfig()
    master_kubelet: KubeletConfig = KubeletConfig()
    kube_proxy: Optional[KubeProxyConfig] = None
    sysctl_parameters: List[str] = Field(default_factory=list)
    file_assets: List[FileAssetSpec] = Field(default_factory=list)
    hooks: List[HookSpec] = Field(default_factory=list)


class InstanceGroup(BaseModel):
    name: str
    role: str = "Node"
    sysctl_parameters: List[str] = Field(default_factory=list)
    file_assets: List[FileAssetSpec] = Field(default_factory=list)
    hooks: List[HookSpec] = Field(default_factory=list)
    additional_packages: List[str] = Field(default_factory=list)


class NodeConfig(BaseModel):
    """Per-node configuration handed to the agent."""

    config_base: Optional[str] = None
    cluster_location: Optional[str] = None
    instance_group_name: str = ""
    tags: List[str] = Field(default_factory=list)
    assets: Dict[str, List[str]] = Field(default_factory=dict)       # arch -> ["<sha256>@<url>"]
    images: Dict[str, List[ImageSpec]] = Field(default_factory=dict)  # arch -> images
    kernel_modules: List[str] = Field(default_factory=list)
    packages: List[str] = Field(default_factory=list)
    asset_mirrors: Dict[str, str] = Field(default_factory=dict)      # url prefix -> mirror prefix
    kubelet: KubeletConfig = KubeletConfig()
