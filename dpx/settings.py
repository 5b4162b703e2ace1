from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # HTTP
    port: int = field(default_factory=lambda: _env_int("EXPORTER_PORT", 9417))
    host: str = field(default_factory=lambda: os.getenv("EXPORTER_HOST", "0.0.0.0"))
    verbose: bool = field(default_factory=lambda: _env_bool("VERBOSE", False))

    # What to collect. Either flag switches the probe to the (slower) system df query.
    collect_volume_metrics: bool = field(default_factory=lambda: _env_bool("COLLECT_VOLUME_METRICS", False))
    collect_image_metrics: bool = field(default_factory=lambda: _env_bool("COLLECT_IMAGE_METRICS", False))

    # Docker
    docker_host: str = field(default_factory=lambda: os.getenv("DOCKER_HOST", "unix:///var/run/docker.sock"))
    docker_api_version: str = field(default_factory=lambda: os.getenv("DOCKER_API_VERSION", "auto"))
    request_timeout_s: float = field(default_factory=lambda: _env_float("DOCKER_TIMEOUT_S", 15.0))
    probe_concurrency: int = field(default_factory=lambda: _env_int("PROBE_CONCURRENCY", 16))


settings = Settings()
