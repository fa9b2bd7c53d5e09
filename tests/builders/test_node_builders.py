import json

import pytest

from hostup.builders.base import ModelContext
from hostup.builders.node import (
    CA_CERT_PATH,
    DOCKER_CONFIG_PATH,
    SYSCTL_PATH,
    AssetsBuilder,
    DirectoryBuilder,
    FileAssetsBuilder,
    HookBuilder,
    KernelModulesBuilder,
    PackagesBuilder,
    SecretsBuilder,
    SysctlBuilder,
    module_key,
)
from hostup.builders.registry import build_node_builders
from hostup.builders.runtime import DOCKER_DAEMON_JSON, ContainerRuntimeBuilder
from hostup.config.models import (
    ClusterSpec,
    DockerConfig,
    FileAssetSpec,
    HookSpec,
    InstanceGroup,
    NodeConfig,
)
from hostup.deploy.assembler import Assembler
from hostup.errors import BuilderError
from hostup.platform import Distribution
from hostup.stores import AssetStore, FileKeyStore, FileSecretStore
from hostup.tasks.key import TaskKey


def _model(tmp_path, cluster=None, ig=None, config=None, distro=("ubuntu", "22.04")):
    return ModelContext(
        architecture="amd64",
        distribution=Distribution(*distro),
        node_config=config or NodeConfig(),
        cluster=cluster or ClusterSpec(),
        instance_group=ig,
        assets=AssetStore(tmp_path),
        key_store=FileKeyStore(tmp_path),
        secret_store=FileSecretStore(tmp_path),
        config_base=str(tmp_path),
        cache_dir="/var/cache/hostup",
    )


def _by_key(frag):
    return {str(t.key): t for t in frag}


def test_directories_include_cache_dir(tmp_path):
    tasks = _by_key(DirectoryBuilder().build(_model(tmp_path)))
    assert "file//var/cache/hostup" in tasks
    assert all(t.is_directory for t in tasks.values())


def test_kernel_modules_always_include_br_netfilter(tmp_path):
    frag = KernelModulesBuilder().build(_model(tmp_path, config=NodeConfig(kernel_modules=["overlay", "br_netfilter"])))
    assert [t.name for t in frag] == ["br_netfilter", "overlay"]


def test_sysctl_merges_cluster_and_instance_group(tmp_path):
    cluster = ClusterSpec(sysctl_parameters=["net.core.somaxconn = 1024"])
    ig = InstanceGroup(name="nodes", sysctl_parameters=["vm.max_map_count=262144"])
    (task,) = list(SysctlBuilder().build(_model(tmp_path, cluster=cluster, ig=ig)))
    assert task.name == SYSCTL_PATH
    assert "net.ipv4.ip_forward = 1" in task.contents
    assert task.contents.index("net.core.somaxconn") < task.contents.index("vm.max_map_count")
    assert task.on_change == [["sysctl", "--system"]]
    assert task.dependencies() == [module_key("br_netfilter")]


def test_sysctl_rejects_malformed_parameter(tmp_path):
    with pytest.raises(BuilderError):
        SysctlBuilder().build(_model(tmp_path, cluster=ClusterSpec(sysctl_parameters=["nonsense"])))


def test_packages_follow_distribution(tmp_path):
    ig = InstanceGroup(name="nodes", additional_packages=["nfs-utils=2.5"])
    tasks = _by_key(PackagesBuilder().build(_model(tmp_path, ig=ig, distro=("rocky", "9.1"))))
    assert tasks["package/conntrack-tools"].manager == "dnf"
    assert tasks["package/nfs-utils"].version == "2.5"


def test_file_assets_must_be_absolute(tmp_path):
    ok = ClusterSpec(file_assets=[FileAssetSpec(name="motd", path="/etc/motd", content="hi\n")])
    (t,) = list(FileAssetsBuilder().build(_model(tmp_path, cluster=ok)))
    assert t.contents == "hi\n"
    bad = ClusterSpec(file_assets=[FileAssetSpec(name="motd", path="etc/motd", content="hi\n")])
    with pytest.raises(BuilderError):
        FileAssetsBuilder().build(_model(tmp_path, cluster=bad))


def test_hooks_generate_units(tmp_path):
    cluster = ClusterSpec(hooks=[
        HookSpec(name="disable-thp", exec_start="/bin/sh -c 'echo never > /sys/kernel/mm/transparent_hugepage/enabled'",
                 before=["kubelet.service"]),
        HookSpec(name="custom.service", manifest="[Unit]\nDescription=custom\n"),
    ])
    tasks = _by_key(HookBuilder().build(_model(tmp_path, cluster=cluster)))
    thp = tasks["service/disable-thp.service"]
    assert "Type=oneshot" in thp.definition
    assert "Before=kubelet.service" in thp.definition
    assert tasks["service/custom.service"].definition.startswith("[Unit]")


def test_hook_without_body_is_rejected(tmp_path):
    with pytest.raises(BuilderError):
        HookBuilder().build(_model(tmp_path, cluster=ClusterSpec(hooks=[HookSpec(name="empty")])))


def test_docker_storage_is_negotiated_against_kernel(tmp_path):
    enabled = []
    builder = ContainerRuntimeBuilder(probe=lambda fs: fs == "overlay", enable=enabled.append)
    cluster = ClusterSpec(docker=DockerConfig(storage="overlay2,aufs", insecure_registries=["registry.local:5000"]))
    tasks = _by_key(builder.build(_model(tmp_path, cluster=cluster)))
    daemon = json.loads(tasks[f"file/{DOCKER_DAEMON_JSON}"].contents)
    assert daemon["storage-driver"] == "overlay2"
    assert daemon["insecure-registries"] == ["registry.local:5000"]
    assert enabled == []
    svc = tasks["service/docker.service"]
    assert TaskKey.named("package", "docker.io") in svc.dependencies()


def test_containerd_runtime(tmp_path):
    tasks = _by_key(ContainerRuntimeBuilder().build(_model(tmp_path, cluster=ClusterSpec(container_runtime="containerd"))))
    assert set(tasks) == {"package/containerd", "file//etc/containerd/config.toml", "service/containerd.service"}


def test_unknown_runtime_is_rejected(tmp_path):
    with pytest.raises(BuilderError):
        ContainerRuntimeBuilder().build(_model(tmp_path, cluster=ClusterSpec(container_runtime="rkt")))


def test_default_builders_assemble_without_collisions(tmp_path):
    cluster = ClusterSpec(docker=DockerConfig())
    graph = Assembler().assemble(build_node_builders(), _model(tmp_path, cluster=cluster))
    assert TaskKey.named("service", "docker.service") in graph
    assert TaskKey.named("file", SYSCTL_PATH) in graph


def test_assets_become_downloads_into_the_cache(tmp_path):
    model = _model(tmp_path)
    model.assets.add("f" * 64 + "@https://dl.example.com/bin/kubectl")
    model.assets.add("https://dl.example.com/cni.tgz")
    tasks = _by_key(AssetsBuilder().build(model))
    assert sorted(tasks) == ["download/cni.tgz", "download/kubectl"]
    kubectl = tasks["download/kubectl"]
    assert kubectl.url == "https://dl.example.com/bin/kubectl"
    assert kubectl.sha256 == "f" * 64
    assert kubectl.dest == str(tmp_path / "assets" / ("f" * 64) / "kubectl")
    assert tasks["download/cni.tgz"].sha256 is None


def test_secrets_builder_writes_ca_and_registry_credentials(tmp_path):
    (tmp_path / "ca.pem").write_text("-----BEGIN CERTIFICATE-----\n")
    (tmp_path / "dockerconfig.yaml").write_text(
        "data:\n  auths:\n    registry.local:\n      auth: dXNlcjpwYXNz\n"
    )
    tasks = _by_key(SecretsBuilder().build(_model(tmp_path)))
    assert tasks[f"file/{CA_CERT_PATH}"].contents == "-----BEGIN CERTIFICATE-----\n"
    cfg = tasks[f"file/{DOCKER_CONFIG_PATH}"]
    assert cfg.mode == "0600"
    assert json.loads(cfg.contents) == {"auths": {"registry.local": {"auth": "dXNlcjpwYXNz"}}}


def test_secrets_builder_without_entries_contributes_nothing(tmp_path):
    assert len(SecretsBuilder().build(_model(tmp_path))) == 0
