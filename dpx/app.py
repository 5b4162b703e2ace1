from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, generate_latest

from . import __version__
from .docker_api import DockerQueryError, DockerSource
from .reconciler import Reconciler
from .settings import Settings, settings

logger = logging.getLogger(__name__)


def create_app(
    cfg: Settings = settings,
    source: DockerSource | None = None,
    registry: CollectorRegistry = REGISTRY,
    reconciler: Reconciler | None = None,
) -> FastAPI:
    """Build the exporter app.

    Every ``GET /metrics`` runs exactly one probe before rendering; scrapes are
    serialized so probe cycles never overlap. A failed probe answers 408 with
    an empty body instead of stale or zeroed metrics.
    """
    if source is None:
        source = reconciler.source if reconciler is not None else DockerSource.from_settings(cfg)
    if reconciler is None:
        reconciler = Reconciler(source, registry=registry, concurrency=cfg.probe_concurrency)
    probe_lock = asyncio.Lock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await source.data_usage()
        except DockerQueryError as e:
            raise RuntimeError("Test Docker socket query failed.") from e
        logger.info(
            "Docker reachable; volume metrics %s, image metrics %s",
            "on" if cfg.collect_volume_metrics else "off",
            "on" if cfg.collect_image_metrics else "off",
        )
        yield
        logger.info("Exiting.")
        reconciler.close()
        source.close()

    app = FastAPI(title="Docker Probe Exporter", version=__version__, lifespan=lifespan)
    app.state.reconciler = reconciler

    @app.get("/metrics")
    async def metrics() -> Response:
        async with probe_lock:
            if not await reconciler.probe(cfg):
                return Response(status_code=408)
            body = generate_latest(registry)
        return Response(content=body, media_type=CONTENT_TYPE_LATEST)

    return app
