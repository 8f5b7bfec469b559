"""Unit tests for configuration Pydantic models."""

import pytest
from pydantic import ValidationError

from region_sink.config.models import (
    KafkaAuthMechanism,
    KafkaConfig,
    RecordFormat,
    RestStoreConfig,
    SinkConfig,
    StoreConfig,
    StoreType,
    parse_topic_bindings,
)


class TestParseTopicBindings:
    def test_single_binding(self):
        assert parse_topic_bindings("[orders:Orders]") == {"orders": ["Orders"]}

    def test_multiple_bindings_and_fan_out(self):
        result = parse_topic_bindings("[t1:R1, R2], [t2:R3]")
        assert result == {"t1": ["R1", "R2"], "t2": ["R3"]}

    def test_repeated_topic_accumulates(self):
        assert parse_topic_bindings("[t1:R1],[t1:R2]") == {"t1": ["R1", "R2"]}

    def test_missing_colon_raises(self):
        with pytest.raises(ValueError, match="must have the form"):
            parse_topic_bindings("[t1]")

    def test_text_outside_brackets_raises(self):
        with pytest.raises(ValueError, match="Malformed"):
            parse_topic_bindings("t1:R1")


class TestSinkConfig:
    def test_defaults(self):
        cfg = SinkConfig(topic_to_destinations={"t1": ["R"]})
        assert cfg.null_value_means_remove is True
        assert cfg.task_id == 0
        assert cfg.store.store_type == StoreType.REST
        assert cfg.kafka.value_format == RecordFormat.JSON

    def test_binding_string_accepted(self):
        cfg = SinkConfig(topic_to_destinations="[t1:R1,R2],[t2:R2]")
        assert cfg.topic_to_destinations == {"t1": ["R1", "R2"], "t2": ["R2"]}
        assert cfg.topics == ["t1", "t2"]

    def test_names_are_stripped_and_deduplicated(self):
        cfg = SinkConfig(topic_to_destinations={" t1 ": [" R1", "R1 ", "R2"]})
        assert cfg.topic_to_destinations == {"t1": ["R1", "R2"]}

    def test_empty_mapping_rejected(self):
        with pytest.raises(ValidationError, match="at least one topic"):
            SinkConfig(topic_to_destinations={})

    def test_empty_destination_list_rejected(self):
        with pytest.raises(ValidationError, match="non-blank destinations"):
            SinkConfig(topic_to_destinations={"t1": []})

    def test_blank_destination_rejected(self):
        with pytest.raises(ValidationError, match="non-blank destinations"):
            SinkConfig(topic_to_destinations="[t1:]")

    def test_blank_topic_rejected(self):
        with pytest.raises(ValidationError, match="must not be blank"):
            SinkConfig(topic_to_destinations={" ": ["R"]})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            SinkConfig(topic_to_destinations={"t1": ["R"]}, bogus=True)

    def test_routes_required(self):
        with pytest.raises(ValidationError):
            SinkConfig()  # type: ignore[call-arg]


class TestKafkaConfig:
    def test_defaults(self):
        cfg = KafkaConfig()
        assert cfg.bootstrap_servers == "localhost:9092"
        assert cfg.poll_batch_size == 500
        assert cfg.auth_mechanism == KafkaAuthMechanism.NONE

    def test_sasl_requires_credentials(self):
        with pytest.raises(ValidationError, match="sasl_username and sasl_password"):
            KafkaConfig(auth_mechanism=KafkaAuthMechanism.SASL_PLAIN)

    def test_sasl_with_credentials(self):
        cfg = KafkaConfig(
            auth_mechanism=KafkaAuthMechanism.SASL_SCRAM_512,
            sasl_username="user",
            sasl_password="pw",
        )
        assert cfg.sasl_password is not None
        assert cfg.sasl_password.get_secret_value() == "pw"

    def test_avro_requires_registry(self):
        with pytest.raises(ValidationError, match="schema_registry_url"):
            KafkaConfig(value_format=RecordFormat.AVRO)

    def test_avro_with_registry(self):
        cfg = KafkaConfig(
            key_format=RecordFormat.AVRO, schema_registry_url="http://registry:8081"
        )
        assert cfg.key_format == RecordFormat.AVRO


class TestStoreConfig:
    def test_rest_defaults(self):
        cfg = StoreConfig()
        assert cfg.rest is not None
        assert cfg.rest.url == "http://localhost:7070"
        assert cfg.rest.region_type == "PARTITION"

    def test_rest_requires_sub_config(self):
        with pytest.raises(ValidationError, match="rest config is required"):
            StoreConfig(store_type=StoreType.REST, rest=None)

    def test_memory_needs_no_sub_config(self):
        cfg = StoreConfig(store_type=StoreType.MEMORY, rest=None)
        assert cfg.store_type == StoreType.MEMORY

    def test_credentials_set_together(self):
        with pytest.raises(ValidationError, match="set together"):
            RestStoreConfig(username="admin")

    def test_password_is_secret(self):
        cfg = RestStoreConfig(username="admin", password="s3cret")
        assert "s3cret" not in repr(cfg)
        assert "s3cret" not in cfg.model_dump_json()
