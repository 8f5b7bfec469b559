"""Unit tests for the sink task (route → fold → execute)."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from region_sink.config.models import SinkConfig
from region_sink.core.records import ChangeRecord, Remove, Upsert
from region_sink.errors import ConfigurationError, DestinationCreationError, ExecutionError
from region_sink.sink.task import RegionSinkTask
from region_sink.store.base import StoreError
from region_sink.store.memory import InMemoryStore, InMemoryStoreClient


def _config(
    routes: dict[str, list[str]] | str, null_value_means_remove: bool = True
) -> SinkConfig:
    return SinkConfig(
        topic_to_destinations=routes,
        null_value_means_remove=null_value_means_remove,
    )


def _started_task(
    routes: dict[str, list[str]] | str,
    null_value_means_remove: bool = True,
    store: InMemoryStore | None = None,
) -> tuple[RegionSinkTask, InMemoryStore]:
    store = store or InMemoryStore()
    task = RegionSinkTask(
        _config(routes, null_value_means_remove), client=InMemoryStoreClient(store)
    )
    task.start()
    return task, store


def _rec(topic: str, key: object, value: object, offset: int = 0) -> ChangeRecord:
    return ChangeRecord(topic=topic, key=key, value=value, partition=0, offset=offset)


class TestStart:
    def test_creates_all_routed_destinations(self):
        task, store = _started_task({"t1": ["R1", "R2"], "t2": ["R2"]})
        assert sorted(store.region_names()) == ["R1", "R2"]
        assert task.manager is not None
        assert set(task.manager.handles) == {"R1", "R2"}

    def test_existing_destinations_are_reused(self):
        store = InMemoryStore()
        store.create_region("R1")
        store.put_all("R1", {"old": 1})
        _started_task({"t1": ["R1"]}, store=store)
        assert store.snapshot("R1") == {"old": 1}

    def test_connect_failure_is_fatal(self):
        client = MagicMock()
        client.connect.side_effect = StoreError("unreachable")
        task = RegionSinkTask(_config({"t1": ["R"]}), client=client)
        with pytest.raises(ConfigurationError):
            task.start()
        assert task.manager is None
        client.close.assert_called_once()

    def test_creation_failure_is_fatal(self):
        client = MagicMock()
        client.create_destination.side_effect = StoreError("forbidden")
        task = RegionSinkTask(_config({"t1": ["R"]}), client=client)
        with pytest.raises(DestinationCreationError):
            task.start()
        assert task.manager is None

    def test_put_before_start_raises(self):
        task = RegionSinkTask(_config({"t1": ["R"]}), client=MagicMock())
        with pytest.raises(RuntimeError, match="not started"):
            task.put([_rec("t1", "k1", "v1")])


class TestFoldRecords:
    def test_fan_out_completeness(self):
        task = RegionSinkTask(_config({"t1": ["R1", "R2"]}), client=MagicMock())
        batches = task.fold_records([_rec("t1", "k1", "v1")])
        assert batches["R1"].as_dict() == {"k1": Upsert("k1", "v1")}
        assert batches["R2"].as_dict() == {"k1": Upsert("k1", "v1")}

    def test_unrouted_topic_schedules_nothing(self):
        task = RegionSinkTask(_config({"t1": ["R"]}), client=MagicMock())
        assert task.fold_records([_rec("other", "k1", "v1")]) == {}

    def test_keyless_record_skipped_others_kept(self):
        task = RegionSinkTask(_config({"t1": ["R"]}), client=MagicMock())
        batches = task.fold_records(
            [_rec("t1", None, "v0"), _rec("t1", "k1", "v1", offset=1)]
        )
        assert batches["R"].as_dict() == {"k1": Upsert("k1", "v1")}

    def test_two_topics_same_destination_last_wins(self):
        task = RegionSinkTask(_config({"t1": ["R"], "t2": ["R"]}), client=MagicMock())
        batches = task.fold_records([_rec("t1", "k1", "a"), _rec("t2", "k1", "b")])
        assert batches["R"].as_dict() == {"k1": Upsert("k1", "b")}

    def test_each_invocation_starts_fresh(self):
        task = RegionSinkTask(_config({"t1": ["R"]}), client=MagicMock())
        task.fold_records([_rec("t1", "k1", "a")])
        batches = task.fold_records([_rec("t1", "k2", "b")])
        assert batches["R"].as_dict() == {"k2": Upsert("k2", "b")}


class TestPut:
    def test_round_trip_remove_supersedes_write(self):
        task, store = _started_task({"t1": ["R"]})
        store.put_all("R", {"k1": "existing"})
        handle = task.manager.handles["R"]  # type: ignore[union-attr]
        spy = MagicMock(wraps=handle)
        task.manager._handles["R"] = spy  # type: ignore[union-attr]

        records = [_rec("t1", "k1", "v1"), _rec("t1", "k1", None, offset=1)]
        assert task.fold_records(records)["R"].as_dict() == {"k1": Remove("k1")}
        task.put(records)

        assert store.snapshot("R") == {}
        spy.put_all.assert_not_called()
        spy.remove_all.assert_called_once_with(["k1"])

    def test_multi_destination(self):
        task, store = _started_task({"t1": ["R1", "R2"]})
        task.put([_rec("t1", "k1", "v1")])
        assert store.snapshot("R1") == {"k1": "v1"}
        assert store.snapshot("R2") == {"k1": "v1"}

    def test_null_kept_as_value(self):
        task, store = _started_task({"t1": ["R"]}, null_value_means_remove=False)
        task.put([_rec("t1", "k1", None)])
        assert store.snapshot("R") == {"k1": None}

    def test_unrouted_topic_no_error(self):
        task, store = _started_task({"t1": ["R"]})
        task.put([_rec("elsewhere", "k1", "v1")])
        assert store.snapshot("R") == {}

    def test_binding_string_routes(self):
        task, store = _started_task("[t1:R1,R2],[t2:R3]")
        task.put([_rec("t1", "a", 1), _rec("t2", "b", 2)])
        assert store.snapshot("R1") == {"a": 1}
        assert store.snapshot("R2") == {"a": 1}
        assert store.snapshot("R3") == {"b": 2}

    def test_execution_failure_propagates(self):
        task, _store = _started_task({"t1": ["R"]})
        failing = MagicMock()
        failing.put_all.side_effect = StoreError("rejected")
        task.manager._handles["R"] = failing  # type: ignore[union-attr]

        with pytest.raises(ExecutionError) as exc_info:
            task.put([_rec("t1", "k1", "v1")])
        assert exc_info.value.destination == "R"

    def test_handles_survive_across_invocations(self):
        task, store = _started_task({"t1": ["R"]})
        handle = task.manager.handles["R"]  # type: ignore[union-attr]
        task.put([_rec("t1", "k1", "v1")])
        task.put([_rec("t1", "k2", "v2")])
        assert task.manager.handles["R"] is handle  # type: ignore[union-attr]
        assert store.snapshot("R") == {"k1": "v1", "k2": "v2"}


class TestStop:
    def test_stop_closes_manager(self):
        task, _store = _started_task({"t1": ["R"]})
        task.stop()
        assert task.manager is None
        task.stop()

    def test_version_is_string(self):
        assert isinstance(RegionSinkTask.version(), str)
