"""Docker Engine API payloads, as far as the exporter reads them.

Only the keys the trackers consume are modelled; everything else is ignored.
A JSON ``null`` is treated like a missing key, so optional fields fall back to
their empty default while required ones fail validation.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Container(_Payload):
    id: str = Field(..., alias="Id")
    names: list[str] = Field(..., alias="Names")


class ContainerState(_Payload):
    running: bool = Field(..., alias="Running")
    restarting: bool = Field(..., alias="Restarting")
    started_at: str = Field("", alias="StartedAt")


class ContainerInspect(_Payload):
    state: ContainerState = Field(..., alias="State")
    restart_count: int = Field(..., alias="RestartCount")


class CpuUsage(_Payload):
    total_usage: int


class CpuStats(_Payload):
    cpu_usage: CpuUsage
    system_cpu_usage: int = 0


class MemoryStats(_Payload):
    stats: dict[str, int] = Field(default_factory=dict)
    usage: int = 0


class Network(_Payload):
    rx_bytes: int
    tx_bytes: int


class BlkioServiceBytesStat(_Payload):
    op: str
    value: int


class BlkioStats(_Payload):
    io_service_bytes_recursive: list[BlkioServiceBytesStat] = Field(default_factory=list)


class ContainerStats(_Payload):
    cpu_stats: CpuStats
    memory_stats: MemoryStats
    networks: dict[str, Network] = Field(default_factory=dict)
    blkio_stats: BlkioStats = Field(default_factory=BlkioStats)


class Image(_Payload):
    id: str = Field(..., alias="Id")
    containers: int = Field(..., alias="Containers")
    repo_tags: list[str] = Field(default_factory=list, alias="RepoTags")
    size: int = Field(..., alias="Size")


class VolumeUsage(_Payload):
    # -1 means the daemon has not computed the value.
    ref_count: int = Field(-1, alias="RefCount")
    size: int = Field(-1, alias="Size")


class Volume(_Payload):
    name: str = Field(..., alias="Name")
    usage_data: VolumeUsage = Field(default_factory=VolumeUsage, alias="UsageData")


class DataUsage(_Payload):
    containers: list[Container] = Field(default_factory=list, alias="Containers")
    volumes: list[Volume] = Field(default_factory=list, alias="Volumes")
    images: list[Image] = Field(default_factory=list, alias="Images")
