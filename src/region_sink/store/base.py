"""Remote key-value store protocols.

New store backends implement these protocols to plug into the sink
without modifying core code.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Any, Protocol, runtime_checkable


class StoreError(Exception):
    """Raised when a store call fails."""


class DestinationExistsError(StoreError):
    """Raised by ``create_destination`` when the destination already exists."""


@runtime_checkable
class DestinationHandle(Protocol):
    """Client-side proxy for a server-side destination (region)."""

    @property
    def name(self) -> str:
        """Destination name."""
        ...

    def put_all(self, entries: Mapping[Any, Any]) -> None:
        """Write every key → value in *entries*."""
        ...

    def remove_all(self, keys: Collection[Any]) -> None:
        """Delete every key in *keys*."""
        ...


@runtime_checkable
class StoreClient(Protocol):
    """Connected client context for a remote key-value store."""

    def connect(self) -> None:
        """Establish the connection. Raises :class:`StoreError` on failure."""
        ...

    def create_destination(self, name: str) -> DestinationHandle:
        """Create *name*. Raises :class:`DestinationExistsError` if present."""
        ...

    def get_destination(self, name: str) -> DestinationHandle | None:
        """Return a handle for an existing destination, or ``None``."""
        ...

    def close(self) -> None:
        """Release the connection."""
        ...

    def health(self) -> dict[str, Any]:
        """Return a health-check status dict."""
        ...
