from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

import uvicorn
from prometheus_client import CollectorRegistry, generate_latest

from .app import create_app
from .docker_api import DockerSource
from .reconciler import Reconciler
from .settings import Settings

logger = logging.getLogger("dpx")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    """Environment settings with any command-line flags layered on top."""
    base = base or Settings()
    overrides = {
        "port": args.port,
        "host": args.host,
        "verbose": args.verbose,
        "collect_volume_metrics": args.collect_volume_metrics,
        "collect_image_metrics": args.collect_image_metrics,
        "docker_host": args.docker_host,
    }
    return replace(base, **{k: v for k, v in overrides.items() if v is not None})


async def probe_once(cfg: Settings, source: DockerSource | None = None) -> tuple[bool, bytes]:
    """Run a single probe against a private registry and render it."""
    registry = CollectorRegistry()
    source = source or DockerSource.from_settings(cfg)
    reconciler = Reconciler(source, registry=registry, concurrency=cfg.probe_concurrency)
    try:
        ok = await reconciler.probe(cfg)
        return ok, generate_latest(registry)
    finally:
        reconciler.close()
        source.close()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Prometheus exporter for Docker containers, volumes and images")
    p.add_argument("--port", type=int, default=None, help="HTTP port (env EXPORTER_PORT, default 9417)")
    p.add_argument("--host", default=None, help="Bind address (env EXPORTER_HOST)")
    p.add_argument("--verbose", action="store_true", default=None, help="Debug logging (env VERBOSE)")
    p.add_argument("--collect-volume-metrics", action="store_true", default=None)
    p.add_argument("--collect-image-metrics", action="store_true", default=None)
    p.add_argument("--docker-host", default=None, help="Docker daemon URL (env DOCKER_HOST)")
    sub = p.add_subparsers(dest="cmd")

    sub.add_parser("serve", help="Serve /metrics (default)")
    sub.add_parser("probe", help="Probe Docker once and print the metrics")

    args = p.parse_args(argv)
    cfg = build_settings(args)
    configure_logging(cfg.verbose)

    if args.cmd == "probe":
        ok, body = asyncio.run(probe_once(cfg))
        sys.stdout.write(body.decode("utf-8"))
        return 0 if ok else 1

    logger.info("Docker Probe Exporter listening on %s:%d", cfg.host, cfg.port)
    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_level="debug" if cfg.verbose else "info")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
