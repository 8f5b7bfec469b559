"""Pydantic configuration models for the region sink."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

# One "[topic:dest1,dest2]" binding inside a topic-to-regions string.
_BINDING_PATTERN = re.compile(r"\[([^\[\]]*)\]")


class KafkaAuthMechanism(StrEnum):
    """Kafka SASL authentication mechanisms."""

    NONE = "none"
    SASL_PLAIN = "sasl_plain"
    SASL_SCRAM_256 = "sasl_scram_256"
    SASL_SCRAM_512 = "sasl_scram_512"


class RecordFormat(StrEnum):
    """Encodings for Kafka message keys and values."""

    STRING = "string"
    JSON = "json"
    BYTES = "bytes"
    AVRO = "avro"


class StoreType(StrEnum):
    """Supported remote store backends."""

    REST = "rest"
    MEMORY = "memory"


class KafkaConfig(BaseModel):
    """Kafka consumer settings."""

    bootstrap_servers: str = "localhost:9092"
    group_id: str = "region-sink"
    auto_offset_reset: str = "earliest"
    session_timeout_ms: int = Field(default=45000, ge=1000)
    max_poll_interval_ms: int = Field(default=300000, ge=1000)
    poll_batch_size: int = Field(default=500, ge=1)
    poll_timeout_seconds: float = Field(default=1.0, gt=0)
    key_format: RecordFormat = RecordFormat.STRING
    value_format: RecordFormat = RecordFormat.JSON
    schema_registry_url: str | None = None
    # Auth / security
    security_protocol: str = "PLAINTEXT"
    auth_mechanism: KafkaAuthMechanism = KafkaAuthMechanism.NONE
    sasl_username: str | None = None
    sasl_password: SecretStr | None = None
    ssl_ca_location: str | None = None
    ssl_certificate_location: str | None = None
    ssl_key_location: str | None = None

    @model_validator(mode="after")
    def check_auth_requirements(self) -> Self:
        """Validate that auth-specific fields are present."""
        mech = self.auth_mechanism
        missing = not self.sasl_username or not self.sasl_password
        if mech != KafkaAuthMechanism.NONE and missing:
            msg = (
                "sasl_username and sasl_password are required "
                f"when auth_mechanism is '{mech.value}'"
            )
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def check_schema_registry(self) -> Self:
        """Avro decoding needs a schema registry."""
        uses_avro = RecordFormat.AVRO in (self.key_format, self.value_format)
        if uses_avro and not self.schema_registry_url:
            msg = "schema_registry_url is required when key or value format is 'avro'"
            raise ValueError(msg)
        return self


class RetryConfig(BaseModel):
    """Retry / backoff configuration."""

    max_attempts: int = Field(default=5, ge=1)
    initial_wait_seconds: float = Field(default=1.0, gt=0)
    max_wait_seconds: float = Field(default=60.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True


class RestStoreConfig(BaseModel):
    """Geode REST API endpoints and credentials."""

    url: str = "http://localhost:7070"
    # Management API base; defaults to ``url`` when unset.
    management_url: str | None = None
    username: str | None = None
    password: SecretStr | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    verify_ssl: bool = True
    region_type: str = "PARTITION"

    @model_validator(mode="after")
    def check_credentials(self) -> Self:
        if (self.username is None) != (self.password is None):
            msg = "username and password must be set together"
            raise ValueError(msg)
        return self


class StoreConfig(BaseModel):
    """Remote key-value store selection."""

    store_type: StoreType = StoreType.REST
    rest: RestStoreConfig | None = RestStoreConfig()

    @model_validator(mode="after")
    def check_matching_sub_config(self) -> Self:
        if self.store_type == StoreType.REST and self.rest is None:
            msg = "rest config is required when store_type is 'rest'"
            raise ValueError(msg)
        return self


def parse_topic_bindings(value: str) -> dict[str, list[str]]:
    """Parse ``"[topic1:regionA,regionB],[topic2:regionC]"`` into a mapping.

    Repeated topics accumulate their destinations.
    """
    leftover = _BINDING_PATTERN.sub("", value)
    if leftover.replace(",", "").strip():
        msg = f"Malformed topic binding string: {value!r}"
        raise ValueError(msg)

    routes: dict[str, list[str]] = {}
    for binding in _BINDING_PATTERN.findall(value):
        topic, sep, destinations = binding.partition(":")
        if not sep:
            msg = f"Topic binding '[{binding}]' must have the form [topic:destination,...]"
            raise ValueError(msg)
        routes.setdefault(topic.strip(), []).extend(
            name.strip() for name in destinations.split(",")
        )
    return routes


class SinkConfig(BaseModel, extra="forbid"):
    """Per-task configuration — routing, null policy, Kafka and store."""

    name: str = "region-sink"
    task_id: int = Field(default=0, ge=0)
    topic_to_destinations: dict[str, list[str]]
    null_value_means_remove: bool = True
    kafka: KafkaConfig = KafkaConfig()
    store: StoreConfig = StoreConfig()
    retry: RetryConfig = RetryConfig()

    @field_validator("topic_to_destinations", mode="before")
    @classmethod
    def parse_bindings(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_topic_bindings(v)
        return v

    @field_validator("topic_to_destinations")
    @classmethod
    def validate_routes(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        """Every route needs a topic and at least one non-blank destination."""
        if not v:
            msg = "topic_to_destinations must map at least one topic"
            raise ValueError(msg)
        routes: dict[str, list[str]] = {}
        for topic, destinations in v.items():
            topic = topic.strip()
            if not topic:
                msg = "topic names in topic_to_destinations must not be blank"
                raise ValueError(msg)
            names = [d.strip() for d in destinations]
            if not names or any(not n for n in names):
                msg = f"topic '{topic}' must map to one or more non-blank destinations"
                raise ValueError(msg)
            routes[topic] = list(dict.fromkeys(names))
        return routes

    @property
    def topics(self) -> list[str]:
        return list(self.topic_to_destinations)
