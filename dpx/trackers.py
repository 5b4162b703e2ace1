from __future__ import annotations

import logging
import math
import re
from datetime import datetime

from .contract import Container, ContainerState, ContainerStats, Image, Volume
from .docker_api import DockerQueryError, DockerSource
from .handles import DuplicateHandleError, Handle, HandleRegistry

logger = logging.getLogger(__name__)

DANGLING_TAG = "<none>:<none>"

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>[Zz]|[+-]\d{2}:\d{2})$"
)


def display_name(container: Container) -> str:
    """Label for a container: its first name, else a 12-char id prefix."""
    if container.names:
        name = container.names[0]
        if len(name.strip()) > 1:
            return name.lstrip("/")
    return container.id[:12]


def image_tag(image: Image) -> str:
    for tag in image.repo_tags:
        if tag != DANGLING_TAG:
            return tag
    return image.id.removeprefix("sha256:")


def running_state_value(state: ContainerState) -> float:
    if state.running:
        return 1.0
    if state.restarting:
        return 0.5
    return 0.0


def parse_start_time(value: str) -> int | None:
    """Epoch seconds of an RFC 3339 timestamp, or None if it does not parse.

    Docker reports nanosecond precision; digits past microseconds are dropped.
    """
    m = _RFC3339.match(value.strip())
    if not m:
        return None
    frac = (m.group("frac") or "")[:6].ljust(6, "0")
    tz = m.group("tz")
    if tz in ("Z", "z"):
        tz = "+00:00"
    try:
        dt = datetime.fromisoformat(f"{m.group('base')}.{frac}{tz}")
    except ValueError:
        return None
    return math.floor(dt.timestamp())


def memory_used(stats: ContainerStats) -> int:
    """Usage minus reclaimable page cache (cgroup v1 key first, then v2)."""
    mem = stats.memory_stats
    cache = mem.stats.get("total_inactive_file")
    if cache is None:
        cache = mem.stats.get("inactive_file", 0)
    return max(0, mem.usage - cache)


def network_bytes(stats: ContainerStats) -> tuple[int, int]:
    rx = sum(n.rx_bytes for n in stats.networks.values())
    tx = sum(n.tx_bytes for n in stats.networks.values())
    return rx, tx


def disk_bytes(stats: ContainerStats) -> tuple[int, int]:
    read = written = 0
    for entry in stats.blkio_stats.io_service_bytes_recursive:
        op = entry.op.lower()
        if op == "read":
            read += entry.value
        elif op == "write":
            written += entry.value
    return read, written


class _Tracker:
    kind = "entity"
    label_name = "name"

    def __init__(self, handles: HandleRegistry, label: str):
        self.label = label
        self._registry = handles
        self._handles: list[Handle] = []

    def _register(self, metric: str, documentation: str) -> Handle:
        handle = self._registry.gauge(metric, documentation, self.label_name, self.label)
        self._handles.append(handle)
        return handle

    def release(self) -> None:
        """Unregister every handle this tracker owns. Safe to call twice."""
        if self._handles:
            logger.debug("Dropping %s tracker %s", self.kind, self.label)
        handles, self._handles = self._handles, []
        for handle in handles:
            self._registry.unregister(handle)


class ContainerTracker(_Tracker):
    kind = "container"

    def __init__(self, container: Container, handles: HandleRegistry):
        super().__init__(handles, display_name(container))
        self.id = container.id
        try:
            self.cpu_usage = self._register(
                "docker_container_cpu_used_total",
                "Accumulated CPU usage of a container, in unspecified units, averaged for all logical CPUs "
                "usable by the container.",
            )
            self.cpu_capacity = self._register(
                "docker_container_cpu_capacity_total",
                "All potential CPU usage available to a container, in unspecified units, averaged for all "
                "logical CPUs usable by the container. Start point of measurement is undefined - only relative "
                "values should be used in analytics.",
            )
            self.memory_usage = self._register("docker_container_memory_used_bytes", "Memory usage of a container.")
            self.restart_count = self._register(
                "docker_container_restart_count",
                "Number of times the runtime has restarted this container without explicit user action, since "
                "the container was last started.",
            )
            self.running_state = self._register(
                "docker_container_running_state",
                "Whether the container is running (1), restarting (0.5) or stopped (0).",
            )
            self.start_time = self._register(
                "docker_container_start_time_seconds",
                "Timestamp indicating when the container was started. Does not get reset by automatic restarts.",
            )
            self.bytes_in = self._register(
                "docker_container_network_in_bytes", "Total bytes received by the container's network interfaces."
            )
            self.bytes_out = self._register(
                "docker_container_network_out_bytes", "Total bytes sent by the container's network interfaces."
            )
            self.bytes_read = self._register(
                "docker_container_disk_read_bytes", "Total bytes read from disk by a container."
            )
            self.bytes_written = self._register(
                "docker_container_disk_write_bytes", "Total bytes written to disk by a container."
            )
        except DuplicateHandleError:
            self.release()
            raise

    async def update(self, source: DockerSource) -> bool:
        """Refresh from inspect + stats. Returns False if either query failed.

        State handles are committed before stats are fetched, so a stats
        failure still leaves running state, restart count and start time fresh.
        Usage handles are only touched while the container is running.
        """
        try:
            inspect = await source.inspect_container(self.id)
        except DockerQueryError as e:
            logger.warning("Container %s: inspect failed: %s", self.label, e)
            return False

        self.running_state.set(running_state_value(inspect.state))
        self.restart_count.set(inspect.restart_count)

        started = parse_start_time(inspect.state.started_at)
        if started is not None and started > 0:
            self.start_time.set(started)

        if not inspect.state.running:
            return True

        try:
            stats = await source.container_stats(self.id)
        except DockerQueryError as e:
            logger.warning("Container %s: stats failed: %s", self.label, e)
            return False

        self.cpu_usage.set(stats.cpu_stats.cpu_usage.total_usage)
        self.cpu_capacity.set(stats.cpu_stats.system_cpu_usage)
        self.memory_usage.set(memory_used(stats))

        rx, tx = network_bytes(stats)
        self.bytes_in.set(rx)
        self.bytes_out.set(tx)

        read, written = disk_bytes(stats)
        self.bytes_read.set(read)
        self.bytes_written.set(written)
        return True


class VolumeTracker(_Tracker):
    kind = "volume"

    def __init__(self, volume: Volume, handles: HandleRegistry):
        super().__init__(handles, volume.name)
        self.name = volume.name
        try:
            self.size = self._register("docker_volume_size", "Size of a volume in bytes.")
            self.ref_count = self._register("docker_volume_container_count", "The number of containers using a volume.")
        except DuplicateHandleError:
            self.release()
            raise
        self.update(volume)

    def update(self, volume: Volume) -> None:
        self.size.set(volume.usage_data.size)
        self.ref_count.set(volume.usage_data.ref_count)


class ImageTracker(_Tracker):
    kind = "image"
    label_name = "tag"

    def __init__(self, image: Image, handles: HandleRegistry):
        super().__init__(handles, image_tag(image))
        self.id = image.id
        try:
            self.container_count = self._register(
                "docker_image_container_count", "The number of containers based on an image."
            )
            self.size = self._register("docker_image_size", "The size of an image in bytes.")
        except DuplicateHandleError:
            self.release()
            raise
        self.update(image)

    def update(self, image: Image) -> None:
        self.container_count.set(image.containers)
        self.size.set(image.size)
