import pytest
import requests

from hostup.config.models import ClusterSpec, KubeProxyConfig, KubeletConfig, NodeConfig
from hostup.errors import ConfigurationError, MetadataLookupError
from hostup.metadata.hostname import (
    MetadataClient,
    evaluate_bind_address,
    evaluate_hostname_override,
    evaluate_spec,
)


class FakeMetadata:
    def __init__(self, values):
        self.values = values
        self.reads = []

    def read(self, provider, path):
        self.reads.append((provider, path))
        if (provider, path) not in self.values:
            raise MetadataLookupError(f"{provider}:{path} unavailable")
        return self.values[(provider, path)]


def test_plain_hostname_values_need_no_lookup():
    md = FakeMetadata({})
    assert evaluate_hostname_override("", md) == ""
    assert evaluate_hostname_override("@hostname", md) == ""
    assert evaluate_hostname_override("node-1.internal", md) == "node-1.internal"
    assert md.reads == []


def test_provider_hostnames():
    md = FakeMetadata({
        ("aws", "meta-data/local-hostname"): "ip-10-0-0-1.ec2.internal",
        ("gce", "instance/hostname"): "foo.c.project.internal",
        ("digitalocean", "interfaces/private/0/ipv4/address"): "10.1.2.3",
        ("alicloud", "zone-id"): "cn-hangzhou-b",
        ("alicloud", "instance-id"): "i-123",
    })
    assert evaluate_hostname_override("@aws", md) == "ip-10-0-0-1.ec2.internal"
    assert evaluate_hostname_override(" @GCE ", md) == "foo"
    assert evaluate_hostname_override("@digitalocean", md) == "10.1.2.3"
    assert evaluate_hostname_override("@alicloud", md) == "cn-hangzhou-b.i-123"


def test_empty_digitalocean_address_is_an_error():
    md = FakeMetadata({("digitalocean", "interfaces/private/0/ipv4/address"): ""})
    with pytest.raises(MetadataLookupError):
        evaluate_hostname_override("@digitalocean", md)


def test_bind_address():
    md = FakeMetadata({("aws", "meta-data/local-ipv4"): "10.0.0.7 10.0.0.8"})
    assert evaluate_bind_address("", md) == ""
    assert evaluate_bind_address("@aws", md) == "10.0.0.7"
    assert evaluate_bind_address("0.0.0.0", md) == "0.0.0.0"
    assert evaluate_bind_address("::1", md) == "::1"
    with pytest.raises(ConfigurationError):
        evaluate_bind_address("not-an-ip", md)


def test_empty_aws_bind_address_is_a_warning_only():
    md = FakeMetadata({("aws", "meta-data/local-ipv4"): ""})
    assert evaluate_bind_address("@aws", md) == ""


def test_evaluate_spec_returns_resolved_copies():
    md = FakeMetadata({("gce", "instance/hostname"): "n1.c.p.internal"})
    cluster = ClusterSpec(
        kubelet=KubeletConfig(hostname_override="@gce"),
        kube_proxy=KubeProxyConfig(hostname_override="@gce", bind_address="10.0.0.1"),
    )
    config = NodeConfig(kubelet=KubeletConfig(hostname_override="@gce"))
    new_cluster, new_config = evaluate_spec(cluster, config, md)
    assert new_cluster.kubelet.hostname_override == "n1"
    assert new_cluster.master_kubelet.hostname_override == ""
    assert new_cluster.kube_proxy.hostname_override == "n1"
    assert new_cluster.kube_proxy.bind_address == "10.0.0.1"
    assert new_config.kubelet.hostname_override == "n1"
    assert cluster.kubelet.hostname_override == "@gce"


class FakeResponse:
    def __init__(self, text, status=200):
        self.text = text
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(str(self.status_code))


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, headers, timeout):
        self.calls.append((url, headers))
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def close(self):
        self.closed = True


def test_metadata_client_reads_with_provider_headers():
    session = FakeSession([FakeResponse("foo.c.p.internal\n")])
    client = MetadataClient(session=session, attempts=1)
    assert client.read("gce", "instance/hostname") == "foo.c.p.internal"
    url, headers = session.calls[0]
    assert url == "http://metadata.google.internal/computeMetadata/v1/instance/hostname"
    assert headers == {"Metadata-Flavor": "Google"}
    client.close()
    assert session.closed


def test_metadata_client_failure_is_lookup_error():
    session = FakeSession([requests.ConnectionError("no route")])
    client = MetadataClient(session=session, attempts=1)
    with pytest.raises(MetadataLookupError):
        client.read("aws", "meta-data/local-ipv4")


def test_metadata_client_unknown_provider():
    with pytest.raises(MetadataLookupError):
        MetadataClient(session=FakeSession([])).read("azure", "x")
