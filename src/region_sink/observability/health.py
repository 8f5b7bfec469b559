"""Health checks for sink dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx
import structlog
from confluent_kafka.admin import AdminClient

from region_sink.config.models import KafkaConfig, SinkConfig, StoreConfig, StoreType
from region_sink.store.rest import DATA_API
from region_sink.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()


class Status(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    name: str
    status: Status = Status.UNKNOWN
    detail: str = ""


@dataclass
class SinkHealth:
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == Status.HEALTHY for c in self.components)

    @property
    def summary(self) -> dict[str, str]:
        return {c.name: c.status.value for c in self.components}


def check_kafka(kafka_config: KafkaConfig) -> ComponentHealth:
    """Check Kafka broker connectivity."""
    try:
        admin_conf: dict[str, Any] = {
            "bootstrap.servers": kafka_config.bootstrap_servers
        }
        admin_conf.update(build_kafka_auth_config(kafka_config))
        admin = AdminClient(admin_conf)
        meta = admin.list_topics(timeout=5)
        return ComponentHealth(
            name="kafka",
            status=Status.HEALTHY,
            detail=f"{len(meta.brokers)} broker(s)",
        )
    except Exception as exc:
        return ComponentHealth(name="kafka", status=Status.UNHEALTHY, detail=str(exc))


def check_store(store_config: StoreConfig) -> ComponentHealth:
    """Check the remote store's REST endpoint."""
    if store_config.store_type == StoreType.MEMORY:
        return ComponentHealth(
            name="store", status=Status.HEALTHY, detail="in-process memory store"
        )
    rest = store_config.rest
    if rest is None:
        return ComponentHealth(
            name="store", status=Status.UNHEALTHY, detail="no rest config"
        )
    auth: tuple[str, str] | None = None
    if rest.username is not None and rest.password is not None:
        auth = (rest.username, rest.password.get_secret_value())
    try:
        resp = httpx.get(
            f"{rest.url}{DATA_API}", auth=auth, timeout=5, verify=rest.verify_ssl
        )
        resp.raise_for_status()
        regions = resp.json().get("regions", [])
        return ComponentHealth(
            name="store",
            status=Status.HEALTHY,
            detail=f"{len(regions)} region(s) at {rest.url}",
        )
    except Exception as exc:
        return ComponentHealth(name="store", status=Status.UNHEALTHY, detail=str(exc))


def check_sink_health(config: SinkConfig) -> SinkHealth:
    """Run all health checks and return aggregated result."""
    result = SinkHealth(components=[check_kafka(config.kafka), check_store(config.store)])
    logger.debug("health.checked", summary=result.summary)
    return result
