"""Error taxonomy for the region sink."""

from __future__ import annotations


class SinkError(Exception):
    """Base class for all region sink errors."""


class ConfigurationError(SinkError, ValueError):
    """Configuration is structurally invalid or the store is unreachable.

    Fatal at task start: no records are processed.
    """


class DestinationCreationError(SinkError):
    """A destination could not be created for a reason other than a
    concurrent creation by a peer worker. Fatal at task start."""

    def __init__(self, destination: str, message: str) -> None:
        super().__init__(message)
        self.destination = destination


class MalformedRecordError(SinkError):
    """A single record cannot be applied (missing key).

    Recovered locally by dropping the record with a warning.
    """


class ExecutionError(SinkError):
    """Applying a destination batch to the store failed.

    Surfaced to the host, which decides whether to retry the invocation.
    Operations applied before the failure are not rolled back.
    """

    def __init__(self, destination: str, message: str) -> None:
        super().__init__(message)
        self.destination = destination
