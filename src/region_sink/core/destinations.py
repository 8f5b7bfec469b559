"""Destination handle lifecycle — create on first use, cache for the task."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from region_sink.errors import ConfigurationError, DestinationCreationError
from region_sink.store.base import DestinationExistsError, DestinationHandle, StoreClient

logger = structlog.get_logger()


class CreateOutcome(StrEnum):
    CREATED = "created"
    ALREADY_PRESENT = "already_present"


class DestinationState(StrEnum):
    UNRESOLVED = "unresolved"
    CREATING = "creating"
    READY = "ready"


@dataclass(frozen=True)
class CreateResult:
    outcome: CreateOutcome
    handle: DestinationHandle


def create_or_fetch(client: StoreClient, name: str) -> CreateResult:
    """Create *name*, or fetch it if a peer worker created it first.

    Both outcomes are success for the caller. Any other failure raises
    :class:`DestinationCreationError`.
    """
    try:
        return CreateResult(CreateOutcome.CREATED, client.create_destination(name))
    except DestinationExistsError:
        pass
    except Exception as exc:
        msg = f"Unable to create destination '{name}': {exc}"
        raise DestinationCreationError(name, msg) from exc

    try:
        handle = client.get_destination(name)
    except Exception as exc:
        msg = f"Destination '{name}' exists but could not be fetched: {exc}"
        raise DestinationCreationError(name, msg) from exc
    if handle is None:
        msg = f"Destination '{name}' reported as existing but was not found"
        raise DestinationCreationError(name, msg)
    return CreateResult(CreateOutcome.ALREADY_PRESENT, handle)


class DestinationManager:
    """Owns the live destination handles of one sink task.

    Handles are created once and reused by every invocation until
    :meth:`close` is called at task shutdown.
    """

    def __init__(self, client: StoreClient) -> None:
        self._client = client
        self._handles: dict[str, DestinationHandle] = {}
        self._creating: set[str] = set()
        self._closed = False

    def open(self) -> None:
        try:
            self._client.connect()
        except Exception as exc:
            msg = f"Unable to connect to the remote store: {exc}"
            raise ConfigurationError(msg) from exc
        logger.info("destinations.opened")

    def get_or_create(self, name: str) -> DestinationHandle:
        handle = self._handles.get(name)
        if handle is not None:
            return handle

        self._creating.add(name)
        try:
            result = create_or_fetch(self._client, name)
        finally:
            self._creating.discard(name)

        self._handles[name] = result.handle
        if result.outcome == CreateOutcome.CREATED:
            logger.info("destination.created", destination=name)
        else:
            logger.info("destination.already_exists", destination=name)
        return result.handle

    def ensure(self, names: Iterable[str]) -> None:
        """Resolve every destination in *names* up front."""
        for name in names:
            self.get_or_create(name)

    def state(self, name: str) -> DestinationState:
        if name in self._handles:
            return DestinationState.READY
        if name in self._creating:
            return DestinationState.CREATING
        return DestinationState.UNRESOLVED

    @property
    def handles(self) -> dict[str, DestinationHandle]:
        return dict(self._handles)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._handles.clear()
        self._client.close()
        logger.info("destinations.closed")

    def __enter__(self) -> DestinationManager:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
