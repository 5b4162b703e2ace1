from __future__ import annotations

import asyncio
import logging
from threading import Lock
from typing import Any, Callable, TypeVar

import docker
import requests
from docker.errors import APIError, DockerException
from pydantic import TypeAdapter, ValidationError

from .contract import Container, ContainerInspect, ContainerStats, DataUsage
from .settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONTAINERS = TypeAdapter(list[Container])
_INSPECT = TypeAdapter(ContainerInspect)
_STATS = TypeAdapter(ContainerStats)
_DATA_USAGE = TypeAdapter(DataUsage)


class DockerQueryError(Exception):
    """A single Docker Engine API call did not produce a usable payload."""

    def __init__(self, endpoint: str, message: str):
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint


class DockerTimeoutError(DockerQueryError):
    pass


class DockerTransportError(DockerQueryError):
    pass


class DockerProtocolError(DockerQueryError):
    def __init__(self, endpoint: str, message: str, status_code: int | None = None):
        super().__init__(endpoint, message)
        self.status_code = status_code


class DockerDecodeError(DockerQueryError):
    pass


class DockerSource:
    """Async view of the Docker Engine API.

    Every call runs the blocking SDK request in a worker thread and races it
    against ``timeout_s``. There are no retries; the next probe is the retry.
    """

    def __init__(
        self,
        base_url: str,
        version: str = "auto",
        timeout_s: float = 15.0,
        max_pool_size: int = 16,
        api: docker.APIClient | None = None,
    ):
        self.base_url = base_url
        self.version = version
        self.timeout_s = timeout_s
        self.max_pool_size = max_pool_size
        self._api = api
        self._lock = Lock()

    @classmethod
    def from_settings(cls, s: Settings) -> "DockerSource":
        return cls(
            s.docker_host,
            version=s.docker_api_version,
            timeout_s=s.request_timeout_s,
            max_pool_size=max(1, s.probe_concurrency),
        )

    def _client(self) -> docker.APIClient:
        # Built on first use so a missing daemon surfaces as a query failure.
        with self._lock:
            if self._api is None:
                self._api = docker.APIClient(
                    base_url=self.base_url,
                    version=self.version,
                    timeout=self.timeout_s,
                    max_pool_size=self.max_pool_size,
                )
            return self._api

    async def list_containers(self) -> list[Container]:
        return await self._get("containers/json", lambda api: api.containers(all=True), _CONTAINERS)

    async def data_usage(self) -> DataUsage:
        return await self._get("system/df", lambda api: api.df(), _DATA_USAGE)

    async def inspect_container(self, container_id: str) -> ContainerInspect:
        return await self._get(
            f"containers/{container_id}/json", lambda api: api.inspect_container(container_id), _INSPECT
        )

    async def container_stats(self, container_id: str) -> ContainerStats:
        return await self._get(
            f"containers/{container_id}/stats",
            lambda api: api.stats(container_id, stream=False),
            _STATS,
        )

    async def _get(self, endpoint: str, call: Callable[[docker.APIClient], Any], adapter: TypeAdapter[T]) -> T:
        raw = await self._fetch(endpoint, call)
        try:
            return adapter.validate_python(raw)
        except ValidationError as e:
            logger.error("%s deserialization error %s - %r", endpoint, e, raw)
            raise DockerDecodeError(endpoint, f"unexpected payload: {e.error_count()} validation error(s)") from e

    async def _fetch(self, endpoint: str, call: Callable[[docker.APIClient], Any]) -> Any:
        def run() -> Any:
            return call(self._client())

        try:
            return await asyncio.wait_for(asyncio.to_thread(run), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.error("%s timed out.", endpoint)
            raise DockerTimeoutError(endpoint, f"no response within {self.timeout_s}s") from None
        except APIError as e:
            logger.error("%s HTTP %s - %s", endpoint, e.status_code, e.explanation)
            raise DockerProtocolError(endpoint, f"HTTP {e.status_code}", e.status_code) from e
        except requests.exceptions.Timeout as e:
            logger.error("%s timed out.", endpoint)
            raise DockerTimeoutError(endpoint, str(e)) from e
        except requests.exceptions.JSONDecodeError as e:
            logger.error("%s deserialization error %s", endpoint, e)
            raise DockerDecodeError(endpoint, f"invalid JSON: {e}") from e
        except (requests.exceptions.RequestException, DockerException) as e:
            logger.error("%s %s", endpoint, e)
            raise DockerTransportError(endpoint, str(e)) from e

    def close(self) -> None:
        with self._lock:
            if self._api is not None:
                self._api.close()
                self._api = None
