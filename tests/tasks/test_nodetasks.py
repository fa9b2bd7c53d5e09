import hashlib
import subprocess
from pathlib import Path

import pytest
import requests

from hostup.errors import FatalTaskError, TransientTaskError
from hostup.tasks import nodetasks
from hostup.tasks.nodetasks import Download, File, KernelModule, LoadImage, Package, Service
from hostup.targets.dryrun import AssetResolver


class FakeHost:
    """Paths under tmp_path; commands recorded, answered from a table."""

    def __init__(self, root: Path, answers=None):
        self.fs_root = root
        self.answers = answers or {}
        self.commands = []

    def path(self, p):
        return self.fs_root / p.lstrip("/")

    def run(self, argv, *, check=True, env=None):
        argv = list(argv)
        self.commands.append(argv)
        rc, out = self.answers.get(tuple(argv[:2]), (0, ""))
        if check and rc != 0:
            raise TransientTaskError(f"failed: {argv}")
        return subprocess.CompletedProcess(argv, rc, out, "")


def test_file_apply_then_find(tmp_path):
    host = FakeHost(tmp_path)
    f = File(name="/etc/sysctl.d/99-test.conf", contents="a = 1\n", mode="0600", on_change=[["sysctl", "--system"]])
    assert not f.find(host)
    f.apply(host)
    p = tmp_path / "etc/sysctl.d/99-test.conf"
    assert p.read_text() == "a = 1\n"
    assert (p.stat().st_mode & 0o777) == 0o600
    assert f.find(host)
    assert host.commands == [["sysctl", "--system"]]


def test_file_find_detects_content_drift(tmp_path):
    host = FakeHost(tmp_path)
    f = File(name="/etc/x.conf", contents="new\n")
    f.apply(host)
    (tmp_path / "etc/x.conf").write_text("old\n")
    assert not f.find(host)
    diff = f.diff(host)
    assert "-old" in diff and "+new" in diff


def test_file_without_contents_only_fixes_mode(tmp_path):
    host = FakeHost(tmp_path)
    p = tmp_path / "etc/kubernetes/kubelet.conf"
    p.parent.mkdir(parents=True)
    p.write_text("keep me\n")
    p.chmod(0o644)
    f = File(name="/etc/kubernetes/kubelet.conf", mode="0600")
    assert not f.find(host)
    f.apply(host)
    assert p.read_text() == "keep me\n"
    assert (p.stat().st_mode & 0o777) == 0o600
    assert f.find(host)
    assert "touch /etc/kubernetes/kubelet.conf" in f.render()


def test_directory_task(tmp_path):
    host = FakeHost(tmp_path)
    d = File(name="/srv/kubernetes", is_directory=True, mode="0755")
    d.apply(host)
    assert (tmp_path / "srv/kubernetes").is_dir()
    assert d.find(host)
    assert d.render() == ["install -d -m 0755 /srv/kubernetes"]


def test_file_render_reproduces_contents():
    f = File(name="/etc/motd", contents="hello 'world'\n", mode="0644")
    lines = f.render()
    assert lines[0] == "install -d -m 0755 /etc"
    assert lines[1].startswith("printf %s ") and lines[1].endswith("> /etc/motd")
    assert lines[2] == "chmod 0644 /etc/motd"


def test_package_find_uses_dpkg_status(tmp_path):
    host = FakeHost(tmp_path, {("dpkg-query", "-W"): (0, "install ok installed 1.2.3")})
    assert Package(name="socat", manager="apt").find(host)
    assert Package(name="socat", version="1.2.3", manager="apt").find(host)
    assert not Package(name="socat", version="9.9", manager="apt").find(host)


def test_package_version_must_match_whole_token(tmp_path):
    host = FakeHost(tmp_path, {("dpkg-query", "-W"): (0, "install ok installed 11.2")})
    assert not Package(name="socat", version="1.2", manager="apt").find(host)
    assert Package(name="socat", version="11.2", manager="apt").find(host)


def test_package_install_commands(tmp_path):
    host = FakeHost(tmp_path)
    Package(name="docker", version="20.10", manager="yum").apply(host)
    assert host.commands == [["yum", "install", "-y", "docker-20.10"]]
    assert Package(name="curl", manager="apt").render() == [
        "DEBIAN_FRONTEND=noninteractive apt-get install -y --no-install-recommends curl"
    ]


def test_unknown_package_manager_is_fatal(tmp_path):
    with pytest.raises(FatalTaskError):
        Package(name="x", manager="pacman").apply(FakeHost(tmp_path))


def test_service_writes_unit_and_restarts(tmp_path):
    host = FakeHost(tmp_path)
    svc = Service(name="hook.service", definition="[Unit]\n")
    svc.apply(host)
    assert (tmp_path / "lib/systemd/system/hook.service").read_text() == "[Unit]\n"
    assert host.commands == [
        ["systemctl", "daemon-reload"],
        ["systemctl", "enable", "hook.service"],
        ["systemctl", "restart", "hook.service"],
    ]


def test_service_find_checks_state(tmp_path):
    host = FakeHost(tmp_path, {("systemctl", "is-active"): (3, "inactive")})
    assert not Service(name="docker.service").find(host)
    assert Service(name="docker.service", running=False).find(host)


def test_kernel_module(tmp_path):
    host = FakeHost(tmp_path)
    km = KernelModule(name="br_netfilter")
    km.apply(host)
    assert host.commands == [["/sbin/modprobe", "br_netfilter"]]
    assert (tmp_path / "etc/modules-load.d/br_netfilter.conf").read_text() == "br_netfilter\n"
    (tmp_path / "sys/module/br_netfilter").mkdir(parents=True)
    assert km.find(host)


class FakeResponse:
    def __init__(self, body: bytes, status: int = 200):
        self.body = body
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *a):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status}")

    def iter_content(self, chunk_size):
        yield self.body


def test_load_image_downloads_verifies_and_imports(tmp_path, monkeypatch):
    body = b"image-tarball"
    digest = hashlib.sha256(body).hexdigest()
    urls = []

    def fake_get(url, stream, timeout):
        urls.append(url)
        if "bad" in url:
            return FakeResponse(b"", status=404)
        return FakeResponse(body)

    monkeypatch.setattr(nodetasks.requests, "get", fake_get)
    host = FakeHost(tmp_path)
    task = LoadImage(
        name="image-0",
        index=0,
        sources=["https://bad.example/img.tar", "https://good.example/img.tar"],
        hash=digest,
        cache_dir="/var/cache/hostup",
    )
    assert not task.find(host)
    task.apply(host)
    assert urls == ["https://bad.example/img.tar", "https://good.example/img.tar"]
    tarball = tmp_path / "var/cache/hostup/images" / f"{digest}.tar"
    assert host.commands == [["docker", "load", "-i", str(tarball)]]
    assert tarball.read_bytes() == body
    assert task.find(host)


def test_load_image_hash_mismatch_is_transient(tmp_path, monkeypatch):
    monkeypatch.setattr(nodetasks.requests, "get", lambda url, stream, timeout: FakeResponse(b"x"))
    task = LoadImage(name="image-0", sources=["https://a/img.tar"], hash="0" * 64)
    with pytest.raises(TransientTaskError):
        task.apply(FakeHost(tmp_path))


def test_load_image_without_sources_is_fatal(tmp_path):
    with pytest.raises(FatalTaskError):
        LoadImage(name="image-0", hash="abc").apply(FakeHost(tmp_path))


def test_load_image_render_uses_containerd():
    lines = LoadImage(name="image-1", index=1, sources=["https://a/i.tar"], hash="ff", runtime="containerd").render()
    assert any(l.startswith("ctr --namespace k8s.io images import") for l in lines)
    assert lines[-1].startswith("touch ")


def test_download_fetches_verifies_and_is_idempotent(tmp_path, monkeypatch):
    body = b"#!/bin/sh\n"
    digest = hashlib.sha256(body).hexdigest()
    monkeypatch.setattr(nodetasks.requests, "get", lambda url, stream, timeout: FakeResponse(body))
    host = FakeHost(tmp_path)
    task = Download(
        name="kubectl",
        url="https://dl.example.com/kubectl",
        dest=f"/var/cache/hostup/assets/{digest}/kubectl",
        sha256=digest,
        mode="0755",
    )
    assert str(task.key) == "download/kubectl"
    assert not task.find(host)
    task.apply(host)
    p = tmp_path / f"var/cache/hostup/assets/{digest}/kubectl"
    assert p.read_bytes() == body
    assert (p.stat().st_mode & 0o777) == 0o755
    assert task.find(host)
    p.write_bytes(b"tampered")
    assert not task.find(host)


def test_download_describe_uses_mirror():
    task = Download(name="cni.tgz", url="https://dl.example.com/cni.tgz", dest="/var/cache/hostup/assets/cni.tgz/cni.tgz")
    resolver = AssetResolver({"https://dl.example.com/": "https://mirror.local/"})
    assert "https://mirror.local/cni.tgz" in task.describe(resolver)
    assert task.render()[1] == "curl -fsSL --retry 5 -o /var/cache/hostup/assets/cni.tgz/cni.tgz https://dl.example.com/cni.tgz"
