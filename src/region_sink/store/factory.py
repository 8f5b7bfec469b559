"""Store factory — maps StoreType to concrete client classes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from region_sink.config.models import RetryConfig, StoreConfig, StoreType
from region_sink.store.base import StoreClient
from region_sink.store.memory import InMemoryStoreClient
from region_sink.store.rest import RestStoreClient, wire_key


def _rest(config: StoreConfig, retry: RetryConfig) -> StoreClient:
    if config.rest is None:
        msg = "rest config is required when store_type is 'rest'"
        raise ValueError(msg)
    return RestStoreClient(config.rest, retry)


def _memory(config: StoreConfig, retry: RetryConfig) -> StoreClient:
    return InMemoryStoreClient()


_STORE_REGISTRY = {
    StoreType.REST: _rest,
    StoreType.MEMORY: _memory,
}

# Backends whose remote keys are coarser than Python values. Batches for
# these stores are keyed by the remote form so equal remote keys collapse.
_KEY_FORMS: dict[StoreType, Callable[[Any], Any]] = {
    StoreType.REST: wire_key,
}


def create_store_client(
    config: StoreConfig, retry: RetryConfig | None = None
) -> StoreClient:
    """Create an (unconnected) store client from configuration.

    Adding a new backend = one client class + one dict entry in ``_STORE_REGISTRY``.
    """
    builder = _STORE_REGISTRY.get(config.store_type)
    if builder is None:
        msg = f"Unknown store type: {config.store_type}"
        raise ValueError(msg)
    return builder(config, retry or RetryConfig())


def key_form_for(store_type: StoreType) -> Callable[[Any], Any] | None:
    """Key normaliser for *store_type*, or ``None`` when keys are stored as-is."""
    return _KEY_FORMS.get(store_type)
