from __future__ import annotations

import asyncio
import logging
from typing import Callable, TypeVar, Union

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from .contract import Container, Image, Volume
from .docker_api import DockerQueryError, DockerSource
from .handles import HandleRegistry
from .settings import Settings
from .trackers import ContainerTracker, ImageTracker, VolumeTracker, display_name, image_tag

logger = logging.getLogger(__name__)

E = TypeVar("E")
T = TypeVar("T", VolumeTracker, ImageTracker)
AnyTracker = Union[ContainerTracker, VolumeTracker, ImageTracker]

PROBE_BUCKETS = (1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 64.0)


class Reconciler:
    """Keeps one tracker per live Docker entity and refreshes them per probe.

    Not safe for concurrent ``probe()`` calls; the HTTP layer serializes them.
    """

    def __init__(self, source: DockerSource, registry: CollectorRegistry = REGISTRY, concurrency: int = 16):
        self.source = source
        self.handles = HandleRegistry(registry)
        self.concurrency = max(1, int(concurrency))

        self.container_count = Gauge("docker_containers", "Number of containers that exist.", registry=registry)
        self.probe_duration = Histogram(
            "docker_probe_duration_seconds",
            "How long it takes to query Docker for the complete data set. Includes failed requests.",
            buckets=PROBE_BUCKETS,
            registry=registry,
        )
        self.probe_failures = Counter(
            "docker_probe_failures_total",
            "The number of times any individual Docker query failed (because of a timeout or other reasons).",
            registry=registry,
        )

        self._containers: dict[str, ContainerTracker] = {}  # container id -> tracker
        self._volumes: dict[str, VolumeTracker] = {}  # volume name -> tracker
        self._images: dict[str, ImageTracker] = {}  # image id -> tracker

    @property
    def container_ids(self) -> set[str]:
        return set(self._containers)

    @property
    def volume_names(self) -> set[str]:
        return set(self._volumes)

    @property
    def image_ids(self) -> set[str]:
        return set(self._images)

    async def probe(self, config: Settings) -> bool:
        """Run one probe cycle. False means no snapshot could be fetched."""
        logger.debug("Probing Docker.")
        with self.probe_duration.time():
            return await self._probe(config)

    async def _probe(self, config: Settings) -> bool:
        try:
            if config.collect_image_metrics or config.collect_volume_metrics:
                usage = await self.source.data_usage()
                containers, volumes, images = usage.containers, usage.volumes, usage.images
            else:
                # Listing containers alone is much cheaper than system df.
                containers, volumes, images = await self.source.list_containers(), [], []
        except DockerQueryError as e:
            logger.warning("Probe failed, keeping previous trackers: %s", e)
            self.probe_failures.inc()
            return False

        self._reconcile_containers(containers)
        self.container_count.set(len(self._containers))

        failures = await self._update_containers()
        if failures:
            logger.debug("%d of %d container updates failed", failures, len(self._containers))
            self.probe_failures.inc(failures)

        if config.collect_volume_metrics:
            self._reconcile(self._volumes, {v.name: v for v in volumes}, lambda v: v.name, self._new_volume)

        if config.collect_image_metrics:
            self._reconcile(self._images, {i.id: i for i in images}, image_tag, self._new_image)

        return True

    def _reconcile_containers(self, containers: list[Container]) -> None:
        listed = {c.id: c for c in containers}
        self._drop_stale(self._containers, listed, display_name)
        for container_id, container in listed.items():
            if container_id not in self._containers:
                logger.debug("Adding container tracker %s", container_id)
                self._containers[container_id] = ContainerTracker(container, self.handles)

    async def _update_containers(self) -> int:
        sem = asyncio.Semaphore(self.concurrency)

        async def run(tracker: ContainerTracker) -> bool:
            async with sem:
                return await tracker.update(self.source)

        results = await asyncio.gather(*(run(t) for t in list(self._containers.values())))
        return sum(1 for ok in results if not ok)

    @staticmethod
    def _drop_stale(trackers: dict[str, AnyTracker], listed: dict[str, E], label_of: Callable[[E], str]) -> None:
        # Runs before any tracker is built: a new entity may take over a label
        # that a renamed or re-tagged one gave up in the same snapshot.
        for key, tracker in list(trackers.items()):
            entity = listed.get(key)
            if entity is None:
                trackers.pop(key).release()
            elif label_of(entity) != tracker.label:
                logger.debug("%s %s relabelled %s -> %s", tracker.kind, key, tracker.label, label_of(entity))
                trackers.pop(key).release()

    @classmethod
    def _reconcile(
        cls,
        trackers: dict[str, T],
        listed: dict[str, E],
        label_of: Callable[[E], str],
        build: Callable[[E], T],
    ) -> None:
        cls._drop_stale(trackers, listed, label_of)
        for key, entity in listed.items():
            tracker = trackers.get(key)
            if tracker is None:
                trackers[key] = build(entity)
            else:
                tracker.update(entity)

    def _new_volume(self, volume: Volume) -> VolumeTracker:
        logger.debug("Adding volume tracker %s", volume.name)
        return VolumeTracker(volume, self.handles)

    def _new_image(self, image: Image) -> ImageTracker:
        logger.debug("Adding image tracker %s", image.id)
        return ImageTracker(image, self.handles)

    def close(self) -> None:
        """Release every tracker's series."""
        for trackers in (self._containers, self._volumes, self._images):
            while trackers:
                _, tracker = trackers.popitem()
                tracker.release()
        self.container_count.set(0)
