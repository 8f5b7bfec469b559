"""Host loop — Kafka → sink task → offset commit."""

from __future__ import annotations

import signal
from collections.abc import Sequence
from typing import Any

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from region_sink.config.models import SinkConfig
from region_sink.core.records import ChangeRecord
from region_sink.errors import ExecutionError
from region_sink.sink.task import RegionSinkTask
from region_sink.streaming.consumer import RecordConsumer

logger = structlog.get_logger()


class SinkRunner:
    """Drives a :class:`RegionSinkTask` from a Kafka consumer.

    Each polled batch is one invocation. A failed invocation is retried as a
    whole; offsets are committed only once it has been applied.
    """

    def __init__(
        self,
        config: SinkConfig,
        *,
        task: RegionSinkTask | None = None,
        consumer: RecordConsumer | None = None,
    ) -> None:
        self._config = config
        self._task = task or RegionSinkTask(config)
        self._consumer = consumer
        self._running = False

    def run(self) -> None:
        """Start the task and consume until stopped (blocking)."""
        self._task.start()
        try:
            if self._consumer is None:
                self._consumer = RecordConsumer(self._config.topics, self._config.kafka)
            self._consumer.subscribe()
            self._install_signal_handlers()
            self._running = True
            logger.info("runner.started", task_id=self._config.task_id)
            while self._running:
                records = self._consumer.poll_batch()
                if records:
                    self.process(records)
                self._consumer.commit()
        finally:
            self._task.stop()
            if self._consumer is not None:
                self._consumer.close()
            logger.info("runner.stopped", task_id=self._config.task_id)

    def process(self, records: Sequence[ChangeRecord]) -> None:
        """Apply one invocation, retrying it whole on :class:`ExecutionError`."""
        retry_cfg = self._config.retry

        @retry(
            stop=stop_after_attempt(retry_cfg.max_attempts),
            wait=wait_exponential_jitter(
                initial=retry_cfg.initial_wait_seconds,
                max=retry_cfg.max_wait_seconds,
                jitter=retry_cfg.multiplier if retry_cfg.jitter else 0,
            ),
            retry=retry_if_exception_type(ExecutionError),
            reraise=True,
        )
        def _put() -> None:
            try:
                self._task.put(records)
            except ExecutionError as exc:
                logger.warning(
                    "runner.invocation_failed",
                    destination=exc.destination,
                    records=len(records),
                    error=str(exc),
                )
                raise

        _put()
        logger.info("runner.invocation_applied", records=len(records))

    def stop(self) -> None:
        """Signal the consume loop to stop after the current invocation."""
        self._running = False

    def _install_signal_handlers(self) -> None:
        def _shutdown(signum: int, frame: Any) -> None:
            logger.info("runner.shutdown_signal", signal=signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
