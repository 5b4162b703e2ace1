"""In-memory stand-in for DockerSource plus Docker payload builders."""
from __future__ import annotations

import asyncio

from dpx.contract import Container, ContainerInspect, ContainerStats, DataUsage
from dpx.docker_api import DockerTransportError


def container(container_id: str, *names: str) -> dict:
    return {"Id": container_id, "Names": list(names), "Image": "busybox", "State": "running"}


def inspect(running=True, restarting=False, restart_count=0, started_at="2024-01-02T03:04:05.123456789Z") -> dict:
    return {
        "Id": "ignored",
        "State": {"Running": running, "Restarting": restarting, "StartedAt": started_at, "Status": "running"},
        "RestartCount": restart_count,
    }


def stats(
    total_usage=100,
    system_cpu_usage=1000,
    usage=1000,
    memory=None,
    networks=None,
    blkio=None,
) -> dict:
    return {
        "cpu_stats": {"cpu_usage": {"total_usage": total_usage}, "system_cpu_usage": system_cpu_usage},
        "memory_stats": {"usage": usage, "stats": memory if memory is not None else {"total_inactive_file": 300}},
        "networks": networks if networks is not None else {"eth0": {"rx_bytes": 10, "tx_bytes": 20}},
        "blkio_stats": {
            "io_service_bytes_recursive": blkio
            if blkio is not None
            else [{"op": "Read", "value": 5}, {"op": "Write", "value": 7}, {"op": "Total", "value": 12}]
        },
    }


def volume(name: str, size=1024, ref_count=1) -> dict:
    return {"Name": name, "Driver": "local", "UsageData": {"Size": size, "RefCount": ref_count}}


def image(image_id: str, *tags: str, containers=0, size=4096) -> dict:
    return {"Id": image_id, "RepoTags": list(tags), "Containers": containers, "Size": size}


class FakeDockerSource:
    """Serves canned payloads; any call key in ``failing`` raises.

    Call keys: ``list``, ``df``, ``inspect:<id>``, ``stats:<id>``.
    """

    def __init__(self):
        self.containers: list[dict] = []
        self.volumes: list[dict] = []
        self.images: list[dict] = []
        self.inspects: dict[str, dict] = {}
        self.stats: dict[str, dict] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def _call(self, key: str, endpoint: str) -> None:
        self.calls.append(key)
        if key in self.failing:
            raise DockerTransportError(endpoint, "simulated failure")

    async def list_containers(self) -> list[Container]:
        self._call("list", "containers/json")
        return [Container.model_validate(c) for c in self.containers]

    async def data_usage(self) -> DataUsage:
        self._call("df", "system/df")
        return DataUsage.model_validate(
            {"Containers": self.containers, "Volumes": self.volumes, "Images": self.images}
        )

    async def inspect_container(self, container_id: str) -> ContainerInspect:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            self._call(f"inspect:{container_id}", f"containers/{container_id}/json")
            return ContainerInspect.model_validate(self.inspects.get(container_id, inspect()))
        finally:
            self.in_flight -= 1

    async def container_stats(self, container_id: str) -> ContainerStats:
        self._call(f"stats:{container_id}", f"containers/{container_id}/stats")
        return ContainerStats.model_validate(self.stats.get(container_id, stats()))

    def close(self) -> None:
        self.closed = True
