"""In-process key-value store for dry runs and tests."""

from __future__ import annotations

import threading
from collections.abc import Collection, Mapping
from typing import Any

import structlog

from region_sink.store.base import DestinationExistsError, StoreError

logger = structlog.get_logger()


class InMemoryStore:
    """Thread-safe stand-in for the server side of a key-value store.

    Several :class:`InMemoryStoreClient` instances may share one store to
    model parallel workers talking to the same cluster.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._regions: dict[str, dict[Any, Any]] = {}

    def create_region(self, name: str) -> None:
        with self._lock:
            if name in self._regions:
                msg = f"Region '{name}' already exists"
                raise DestinationExistsError(msg)
            self._regions[name] = {}

    def has_region(self, name: str) -> bool:
        with self._lock:
            return name in self._regions

    def region_names(self) -> list[str]:
        with self._lock:
            return list(self._regions)

    def snapshot(self, name: str) -> dict[Any, Any]:
        """Copy of the entries currently stored in region *name*."""
        with self._lock:
            return dict(self._regions[name])

    def put_all(self, name: str, entries: Mapping[Any, Any]) -> None:
        with self._lock:
            self._region(name).update(entries)

    def remove_all(self, name: str, keys: Collection[Any]) -> None:
        with self._lock:
            region = self._region(name)
            for key in keys:
                region.pop(key, None)

    def _region(self, name: str) -> dict[Any, Any]:
        region = self._regions.get(name)
        if region is None:
            msg = f"Region '{name}' does not exist"
            raise StoreError(msg)
        return region


class InMemoryRegion:
    """Proxy handle onto one region of an :class:`InMemoryStore`."""

    def __init__(self, store: InMemoryStore, name: str) -> None:
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def put_all(self, entries: Mapping[Any, Any]) -> None:
        self._store.put_all(self._name, entries)

    def remove_all(self, keys: Collection[Any]) -> None:
        self._store.remove_all(self._name, keys)

    def __repr__(self) -> str:
        return f"InMemoryRegion({self._name!r})"


class InMemoryStoreClient:
    """Store client bound to an :class:`InMemoryStore`."""

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store if store is not None else InMemoryStore()
        self._connected = False

    def connect(self) -> None:
        self._connected = True
        logger.info("memory_store.connected")

    def create_destination(self, name: str) -> InMemoryRegion:
        self._require_connected()
        self.store.create_region(name)
        return InMemoryRegion(self.store, name)

    def get_destination(self, name: str) -> InMemoryRegion | None:
        self._require_connected()
        if not self.store.has_region(name):
            return None
        return InMemoryRegion(self.store, name)

    def close(self) -> None:
        self._connected = False
        logger.info("memory_store.closed")

    def health(self) -> dict[str, Any]:
        return {
            "type": "memory",
            "status": "running" if self._connected else "stopped",
            "regions": self.store.region_names(),
        }

    def _require_connected(self) -> None:
        if not self._connected:
            msg = "InMemoryStoreClient not connected — call connect() first"
            raise StoreError(msg)
