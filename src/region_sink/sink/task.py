"""Sink task — routes, batches and applies change records to store regions."""

from __future__ import annotations

from collections.abc import Collection
from importlib import metadata

import structlog

from region_sink.config.models import SinkConfig
from region_sink.core.batch import BatchAccumulator, DestinationBatch
from region_sink.core.destinations import DestinationManager
from region_sink.core.records import ChangeRecord
from region_sink.core.router import TopicRouter
from region_sink.store.base import StoreClient
from region_sink.store.factory import create_store_client, key_form_for

logger = structlog.get_logger()


class RegionSinkTask:
    """One worker's view of the sink.

    Each :meth:`put` call is one invocation: every record is routed and
    folded into fresh per-destination batches, then each batch is applied
    in a single pass. Invocations run strictly one after another; many
    tasks may run in parallel against the same store, sharing nothing.
    """

    def __init__(self, config: SinkConfig, client: StoreClient | None = None) -> None:
        self._config = config
        self._client = client
        self._router = TopicRouter(config.topic_to_destinations)
        self._accumulator = BatchAccumulator(
            config.null_value_means_remove,
            key_form=key_form_for(config.store.store_type),
        )
        self._manager: DestinationManager | None = None

    @staticmethod
    def version() -> str:
        try:
            return metadata.version("region-sink")
        except metadata.PackageNotFoundError:
            return "unknown"

    @property
    def router(self) -> TopicRouter:
        return self._router

    @property
    def manager(self) -> DestinationManager | None:
        return self._manager

    def start(self) -> None:
        """Connect to the store and resolve every routed destination.

        Raises :class:`~region_sink.errors.ConfigurationError` or
        :class:`~region_sink.errors.DestinationCreationError`; either one
        means the task must not process records.
        """
        logger.info(
            "task.starting",
            name=self._config.name,
            task_id=self._config.task_id,
            version=self.version(),
        )
        client = self._client
        if client is None:
            client = create_store_client(self._config.store, self._config.retry)
        manager = DestinationManager(client)
        try:
            manager.open()
            manager.ensure(self._router.destinations)
        except Exception:
            manager.close()
            raise
        self._manager = manager
        logger.info(
            "task.started",
            task_id=self._config.task_id,
            topics=self._router.topics,
            destinations=self._router.destinations,
        )

    def fold_records(
        self, records: Collection[ChangeRecord]
    ) -> dict[str, DestinationBatch]:
        """Route and fold *records* into new batches without touching the store."""
        batches: dict[str, DestinationBatch] = {}
        for record in records:
            logger.debug(
                "task.record",
                topic=record.topic,
                partition=record.partition,
                offset=record.offset,
            )
            destinations = self._router.destinations_for(record.topic)
            if not destinations:
                logger.warning(
                    "task.unrouted_topic",
                    topic=record.topic,
                    partition=record.partition,
                    offset=record.offset,
                )
                continue
            for destination in destinations:
                self._accumulator.fold(batches, record, destination)
        return batches

    def put(self, records: Collection[ChangeRecord]) -> None:
        """Process one invocation.

        The first :class:`~region_sink.errors.ExecutionError` aborts the
        invocation and propagates; batches already applied stay applied.
        """
        if self._manager is None:
            msg = "RegionSinkTask not started — call start() first"
            raise RuntimeError(msg)

        logger.debug("task.received", task_id=self._config.task_id, records=len(records))
        batches = self.fold_records(records)
        for destination, batch in batches.items():
            if not batch:
                continue
            handle = self._manager.get_or_create(destination)
            self._accumulator.execute(handle, batch)

    def stop(self) -> None:
        logger.info("task.stopping", task_id=self._config.task_id)
        if self._manager is not None:
            self._manager.close()
            self._manager = None
