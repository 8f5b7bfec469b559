"""Change records and the net operations derived from them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ChangeRecord:
    """One keyed change consumed from a source topic.

    ``partition`` and ``offset`` are provenance only and are used for
    diagnostics, never for routing or conflict resolution.
    """

    topic: str
    key: Any
    value: Any
    partition: int | None = None
    offset: int | None = None

    @property
    def coordinates(self) -> tuple[str, int | None, int | None]:
        return (self.topic, self.partition, self.offset)


@dataclass(frozen=True)
class Upsert:
    key: Any
    value: Any


@dataclass(frozen=True)
class Remove:
    key: Any


PendingOperation = Upsert | Remove
