"""Kafka security settings for the confluent-kafka consumer."""

from __future__ import annotations

from typing import Any

from region_sink.config.models import KafkaAuthMechanism, KafkaConfig

_SASL_MECHANISMS = {
    KafkaAuthMechanism.SASL_PLAIN: "PLAIN",
    KafkaAuthMechanism.SASL_SCRAM_256: "SCRAM-SHA-256",
    KafkaAuthMechanism.SASL_SCRAM_512: "SCRAM-SHA-512",
}


def build_kafka_auth_config(config: KafkaConfig) -> dict[str, Any]:
    """Return security/SASL/SSL entries to merge into a Consumer config dict."""
    auth: dict[str, Any] = {}
    if config.security_protocol != "PLAINTEXT":
        auth["security.protocol"] = config.security_protocol

    for key, location in (
        ("ssl.ca.location", config.ssl_ca_location),
        ("ssl.certificate.location", config.ssl_certificate_location),
        ("ssl.key.location", config.ssl_key_location),
    ):
        if location:
            auth[key] = location

    mechanism = _SASL_MECHANISMS.get(config.auth_mechanism)
    if mechanism is not None:
        auth["security.protocol"] = config.security_protocol
        auth["sasl.mechanism"] = mechanism
        auth["sasl.username"] = config.sasl_username
        auth["sasl.password"] = (
            config.sasl_password.get_secret_value() if config.sasl_password else ""
        )
    return auth
