"""Bookkeeping for per-entity metric handles.

prometheus_client allows one collector per metric name, so every per-entity
series lives as a child of a shared labelled ``Gauge`` family. A handle is one
such child, identified by ``(metric name, label value)``. Registering the same
key twice is a programming error; unregistering is best effort.
"""
from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import REGISTRY, CollectorRegistry, Gauge


class DuplicateHandleError(ValueError):
    pass


@dataclass(frozen=True)
class HandleKey:
    metric: str
    label_value: str


class Handle:
    """A registered, settable series owned by exactly one tracker."""

    __slots__ = ("key", "_child")

    def __init__(self, key: HandleKey, child: Gauge):
        self.key = key
        self._child = child

    def set(self, value: float) -> None:
        self._child.set(value)

    def __repr__(self) -> str:
        return f"Handle({self.key.metric}, {self.key.label_value!r})"


class HandleRegistry:
    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry
        self._families: dict[str, tuple[Gauge, str]] = {}
        self._live: set[HandleKey] = set()
        self.registrations = 0
        self.unregistrations = 0

    def _family(self, metric: str, documentation: str, label_name: str) -> Gauge:
        existing = self._families.get(metric)
        if existing is not None:
            family, declared_label = existing
            if declared_label != label_name:
                raise DuplicateHandleError(
                    f"{metric} is labelled by {declared_label!r}, not {label_name!r}"
                )
            return family
        try:
            family = Gauge(metric, documentation, [label_name], registry=self.registry)
        except ValueError as e:
            raise DuplicateHandleError(str(e)) from e
        self._families[metric] = (family, label_name)
        return family

    def gauge(self, metric: str, documentation: str, label_name: str, label_value: str) -> Handle:
        key = HandleKey(metric, label_value)
        if key in self._live:
            raise DuplicateHandleError(f"{metric}{{{label_name}={label_value!r}}} is already registered")
        family = self._family(metric, documentation, label_name)
        child = family.labels(label_value)
        self._live.add(key)
        self.registrations += 1
        return Handle(key, child)

    def unregister(self, handle: Handle) -> None:
        if handle.key not in self._live:
            return
        self._live.discard(handle.key)
        self.unregistrations += 1
        family, _ = self._families[handle.key.metric]
        try:
            family.remove(handle.key.label_value)
        except KeyError:
            pass

    def live_keys(self) -> set[HandleKey]:
        return set(self._live)

    def __contains__(self, key: object) -> bool:
        return key in self._live

    def __len__(self) -> int:
        return len(self._live)
