"""Per-destination accumulation of net key operations."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Any

import structlog

from region_sink.core.records import ChangeRecord, PendingOperation, Remove, Upsert
from region_sink.errors import ExecutionError, MalformedRecordError
from region_sink.store.base import DestinationHandle

logger = structlog.get_logger()


class DestinationBatch:
    """Net operation per key for one destination within one invocation.

    Installing an operation for a key replaces whatever was pending for it,
    so at most one operation per key is ever applied (last write wins).
    """

    def __init__(self, destination: str) -> None:
        self.destination = destination
        self._operations: dict[Any, PendingOperation] = {}

    def upsert(self, key: Any, value: Any) -> None:
        self._operations[key] = Upsert(key, value)

    def remove(self, key: Any) -> None:
        self._operations[key] = Remove(key)

    def get(self, key: Any) -> PendingOperation | None:
        return self._operations.get(key)

    def operations(self) -> Iterator[PendingOperation]:
        return iter(self._operations.values())

    def as_dict(self) -> dict[Any, PendingOperation]:
        return dict(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, key: object) -> bool:
        return key in self._operations

    def __repr__(self) -> str:
        return f"DestinationBatch({self.destination!r}, {self._operations!r})"


class BatchAccumulator:
    """Folds change records into destination batches and applies them."""

    def __init__(
        self,
        null_value_means_remove: bool = True,
        key_form: Callable[[Any], Any] | None = None,
    ) -> None:
        self._null_value_means_remove = null_value_means_remove
        # Maps record keys to the form the store keeps them in.
        self._key_form = key_form

    def fold(
        self,
        batches: dict[str, DestinationBatch],
        record: ChangeRecord,
        destination: str,
    ) -> bool:
        """Install the net effect of *record* into *destination*'s batch.

        Returns ``False`` when the record was dropped.
        """
        try:
            self._check(record)
        except MalformedRecordError as exc:
            logger.warning(
                "batch.record_dropped",
                destination=destination,
                topic=record.topic,
                partition=record.partition,
                offset=record.offset,
                reason=str(exc),
            )
            return False

        batch = batches.get(destination)
        if batch is None:
            batch = DestinationBatch(destination)
            batches[destination] = batch

        key = record.key if self._key_form is None else self._key_form(record.key)
        if record.value is None and self._null_value_means_remove:
            batch.remove(key)
        else:
            batch.upsert(key, record.value)
        return True

    @staticmethod
    def _check(record: ChangeRecord) -> None:
        if record.key is None:
            msg = f"record has no key; cannot apply value {record.value!r}"
            raise MalformedRecordError(msg)

    def execute(self, handle: DestinationHandle, batch: DestinationBatch) -> None:
        """Apply every pending operation in *batch* against *handle*.

        The first failure aborts the batch and is raised as
        :class:`ExecutionError`; earlier writes are not rolled back.
        """
        upserts: dict[Any, Any] = {}
        removes: list[Any] = []
        for op in batch.operations():
            if isinstance(op, Remove):
                removes.append(op.key)
            else:
                upserts[op.key] = op.value

        t0 = time.monotonic()
        try:
            if upserts:
                handle.put_all(upserts)
            if removes:
                handle.remove_all(removes)
        except Exception as exc:
            logger.error(
                "batch.execute_failed",
                destination=batch.destination,
                upserts=len(upserts),
                removes=len(removes),
                error=str(exc),
            )
            msg = f"Failed to apply batch to destination '{batch.destination}': {exc}"
            raise ExecutionError(batch.destination, msg) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        logger.info(
            "batch.executed",
            destination=batch.destination,
            upserts=len(upserts),
            removes=len(removes),
            latency_ms=round(elapsed_ms, 2),
        )
