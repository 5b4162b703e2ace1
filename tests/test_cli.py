import asyncio
from types import SimpleNamespace

from dpx import cli
from dpx.settings import Settings
from tests import fakes


def test_env_settings(monkeypatch):
    monkeypatch.setenv("EXPORTER_PORT", "9999")
    monkeypatch.setenv("COLLECT_VOLUME_METRICS", "yes")
    monkeypatch.setenv("COLLECT_IMAGE_METRICS", "0")
    monkeypatch.setenv("DOCKER_TIMEOUT_S", "2.5")
    monkeypatch.setenv("PROBE_CONCURRENCY", "not-a-number")

    s = Settings()

    assert s.port == 9999
    assert s.collect_volume_metrics is True
    assert s.collect_image_metrics is False
    assert s.request_timeout_s == 2.5
    assert s.probe_concurrency == 16


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("EXPORTER_PORT", "9999")
    monkeypatch.delenv("COLLECT_IMAGE_METRICS", raising=False)
    args = SimpleNamespace(
        port=None,
        host="127.0.0.1",
        verbose=None,
        collect_volume_metrics=None,
        collect_image_metrics=True,
        docker_host="tcp://docker:2375",
    )

    s = cli.build_settings(args)

    assert s.port == 9999
    assert s.host == "127.0.0.1"
    assert s.collect_image_metrics is True
    assert s.docker_host == "tcp://docker:2375"


def test_probe_once_renders_private_registry(source):
    source.containers = [fakes.container("abc", "/web")]

    ok, body = asyncio.run(cli.probe_once(Settings(collect_volume_metrics=False, collect_image_metrics=False), source))

    assert ok is True
    assert b'docker_container_running_state{name="web"} 1.0' in body
    assert source.closed is True


def test_probe_command_exit_code(monkeypatch, capsys, source):
    monkeypatch.setattr(cli, "DockerSource", SimpleNamespace(from_settings=lambda cfg: source))
    source.containers = [fakes.container("abc", "/web")]

    assert cli.main(["probe"]) == 0
    assert "docker_containers 1.0" in capsys.readouterr().out

    source.failing.add("list")
    source.failing.add("df")
    assert cli.main(["probe"]) == 1
