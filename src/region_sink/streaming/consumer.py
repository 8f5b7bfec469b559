"""Synchronous Kafka consumer that yields batches of change records."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import structlog
from confluent_kafka import Consumer, KafkaError, KafkaException, Message, TopicPartition
from confluent_kafka.schema_registry import SchemaRegistryClient
from confluent_kafka.schema_registry.avro import AvroDeserializer
from confluent_kafka.serialization import (
    MessageField,
    SerializationContext,
    SerializationError,
)

from region_sink.config.models import KafkaConfig, RecordFormat
from region_sink.core.records import ChangeRecord
from region_sink.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()

Decoder = Callable[[bytes, SerializationContext], Any]


def canonical_key(key: Any) -> Any:
    """Make structured keys hashable and stable (sorted-key JSON)."""
    if isinstance(key, dict | list):
        return json.dumps(key, sort_keys=True, separators=(",", ":"))
    return key


def _decode_string(data: bytes, ctx: SerializationContext) -> str:
    return data.decode("utf-8")


def _decode_json(data: bytes, ctx: SerializationContext) -> Any:
    return json.loads(data)


def _decode_bytes(data: bytes, ctx: SerializationContext) -> bytes:
    return data


def _build_decoder(
    fmt: RecordFormat, registry: SchemaRegistryClient | None
) -> Decoder:
    if fmt == RecordFormat.AVRO:
        assert registry is not None
        return AvroDeserializer(registry)  # type: ignore[no-any-return]
    if fmt == RecordFormat.JSON:
        return _decode_json
    if fmt == RecordFormat.BYTES:
        return _decode_bytes
    return _decode_string


class RecordConsumer:
    """Polls Kafka in batches and commits manually after each invocation."""

    def __init__(self, topics: list[str], kafka_config: KafkaConfig) -> None:
        self._topics = topics
        self._kafka_config = kafka_config
        self._positions: dict[tuple[str, int], int] = {}

        conf: dict[str, Any] = {
            "bootstrap.servers": kafka_config.bootstrap_servers,
            "group.id": kafka_config.group_id,
            "auto.offset.reset": kafka_config.auto_offset_reset,
            "enable.auto.commit": False,
            "session.timeout.ms": kafka_config.session_timeout_ms,
            "max.poll.interval.ms": kafka_config.max_poll_interval_ms,
        }
        conf.update(build_kafka_auth_config(kafka_config))
        self._consumer = Consumer(conf)

        registry: SchemaRegistryClient | None = None
        if kafka_config.schema_registry_url:
            registry = SchemaRegistryClient({"url": kafka_config.schema_registry_url})
        self._key_decoder = _build_decoder(kafka_config.key_format, registry)
        self._value_decoder = _build_decoder(kafka_config.value_format, registry)

    def subscribe(self) -> None:
        self._consumer.subscribe(self._topics)
        logger.info("consumer.subscribed", topics=self._topics)

    def poll_batch(self) -> list[ChangeRecord]:
        """Fetch up to ``poll_batch_size`` messages as change records.

        Messages that cannot be decoded are dropped with a warning but still
        count towards the committed position.
        """
        messages = self._consumer.consume(
            self._kafka_config.poll_batch_size,
            self._kafka_config.poll_timeout_seconds,
        )
        records: list[ChangeRecord] = []
        for msg in messages or []:
            err = msg.error()
            if err and err.code() == KafkaError._PARTITION_EOF:  # type: ignore[attr-defined]
                continue
            if err:
                raise KafkaException(err)

            topic = msg.topic()
            partition = msg.partition()
            offset = msg.offset()
            assert topic is not None
            assert partition is not None
            assert offset is not None
            tp = (topic, partition)
            if offset > self._positions.get(tp, -1):
                self._positions[tp] = offset

            try:
                records.append(self._to_record(msg))
            except (ValueError, SerializationError) as exc:
                logger.warning(
                    "consumer.decode_error",
                    topic=topic,
                    partition=partition,
                    offset=offset,
                    error=str(exc),
                )
        return records

    def _to_record(self, msg: Message) -> ChangeRecord:
        topic = msg.topic()
        assert topic is not None
        key = None
        value = None
        raw_key = msg.key()
        raw_value = msg.value()
        if raw_key is not None:
            ctx = SerializationContext(topic, MessageField.KEY)
            key = canonical_key(self._key_decoder(raw_key, ctx))
        if raw_value is not None:
            ctx = SerializationContext(topic, MessageField.VALUE)
            value = self._value_decoder(raw_value, ctx)
        return ChangeRecord(
            topic=topic,
            key=key,
            value=value,
            partition=msg.partition(),
            offset=msg.offset(),
        )

    def commit(self) -> None:
        """Commit the position after every message returned so far."""
        if not self._positions:
            return
        offsets = [
            TopicPartition(topic, partition, offset + 1)  # committed = next-to-fetch
            for (topic, partition), offset in self._positions.items()
        ]
        self._consumer.commit(offsets=offsets, asynchronous=False)
        logger.debug("consumer.committed", partitions=len(offsets))
        self._positions.clear()

    def close(self) -> None:
        self._consumer.close()
        logger.info("consumer.stopped")
