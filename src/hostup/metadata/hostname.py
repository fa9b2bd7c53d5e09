# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/metadata/hostname.py

from __future__ import annotations

import ipaddress
import logging
from typing import Dict, Mapping, Optional, Protocol, Tuple

import requests

from ..config.models import ClusterSpec, NodeConfig
from ..errors import ConfigurationError, MetadataLookupError
from ..utils.retry import Backoff, RetryError, retry

log = logging.getLogger("hostup")

# provider -> (base url, required headers)
ENDPOINTS: Dict[str, Tuple[str, Dict[str, str]]] = {
    "aws": ("http://169.254.169.254/latest/", {}),
    "gce": ("http://metadata.google.internal/computeMetadata/v1/", {"Metadata-Flavor": "Google"}),
    "digitalocean": ("http://169.254.169.254/metadata/v1/", {}),
    "alicloud": ("http://100.100.100.200/latest/meta-data/", {}),
}


class Metadata(Protocol):
    def read(self, provider: str, path: str) -> str: ...


class MetadataClient:
    """
    Reads instance metadata over HTTP. Values are fetched only when a spec
    field actually refers to a provider, so off-cloud runs never touch it.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        endpoints: Optional[Mapping[str, Tuple[str, Dict[str, str]]]] = None,
        attempts: int = 3,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.endpoints = dict(endpoints or ENDPOINTS)
        self.attempts = attempts

    def read(self, provider: str, path: str) -> str:
        if provider not in self.endpoints:
            raise MetadataLookupError(f"no metadata endpoint known for {provider!r}")
        base, headers = self.endpoints[provider]
        url = base + path

        @retry(
            retries=self.attempts,
            backoff=Backoff(interval=1.0, factor=2.0, max_interval=5.0),
            retry_on=(requests.RequestException,),
            on_retry=lambda n, e: log.debug("metadata read %s attempt %d failed: %s", url, n, e),
        )
        def _get() -> str:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            return resp.text

        try:
            return _get().strip()
        except RetryError as e:
            raise MetadataLookupError(f"error reading {path} from {provider} metadata: {e}") from e

    def close(self) -> None:
        self.session.close()


def evaluate_hostname_override(value: str, metadata: Metadata) -> str:
    """
    Resolve a symbolic hostname override (@aws, @gce, @digitalocean,
    @alicloud). Empty and @hostname mean "use the real hostname".
    """
    if value == "" or value == "@hostname":
        return ""
    k = value.strip().lower()

    if k == "@aws":
        return metadata.read("aws", "meta-data/local-hostname")

    if k == "@gce":
        # foo.c.project.internal => foo
        return metadata.read("gce", "instance/hostname").split(".")[0]

    if k == "@digitalocean":
        ip = metadata.read("digitalocean", "interfaces/private/0/ipv4/address")
        if not ip:
            raise MetadataLookupError("private IP for digitalocean droplet was empty")
        return ip

    if k == "@alicloud":
        zone = metadata.read("alicloud", "zone-id")
        instance_id = metadata.read("alicloud", "instance-id")
        return f"{zone}.{instance_id}"

    return value


def evaluate_bind_address(value: str, metadata: Metadata) -> str:
    if value == "":
        return ""
    if value == "@aws":
        ips = metadata.read("aws", "meta-data/local-ipv4").split()
        if not ips:
            log.warning("Local IP from AWS metadata service was empty")
            return ""
        log.info("Using IP from AWS metadata service: %s", ips[0])
        return ips[0]
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise ConfigurationError(f"bindAddress {value!r} is not a valid IP address") from None
    return value


def evaluate_spec(
    cluster: ClusterSpec, config: NodeConfig, metadata: Metadata
) -> Tuple[ClusterSpec, NodeConfig]:
    """
    Return copies of the cluster spec and node config with every symbolic
    hostname and bind address replaced by its concrete value.
    """

    def _kubelet(k):
        return k.model_copy(
            update={"hostname_override": evaluate_hostname_override(k.hostname_override, metadata)}
        )

    update = {
        "kubelet": _kubelet(cluster.kubelet),
        "master_kubelet": _kubelet(cluster.master_kubelet),
    }
    if cluster.kube_proxy is not None:
        update["kube_proxy"] = cluster.kube_proxy.model_copy(
            update={
                "hostname_override": evaluate_hostname_override(
                    cluster.kube_proxy.hostname_override, metadata
                ),
                "bind_address": evaluate_bind_address(cluster.kube_proxy.bind_address, metadata),
            }
        )

    return (
        cluster.model_copy(update=update),
        config.model_copy(update={"kubelet": _kubelet(config.kubelet)}),
    )
