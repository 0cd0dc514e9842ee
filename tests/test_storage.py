import json

import pytest
from conftest import NOW, make_config

from sportsguard.storage import (
    JsonHistoryStore,
    SqliteHistoryStore,
    StoreError,
    quality_history_store,
    read_json,
    usage_store,
    write_json,
)


def _snapshot(index=0):
    return {"timestamp": f"2026-02-1{index}T12:00:00+00:00", "editorial": {"score": 80 + index}, "hints_applied": []}


def _run(context="pipeline"):
    return {"timestamp": NOW.isoformat(), "context": context, "duration_ms": 10, "tokens": 5}


def test_read_and_write_json(tmp_path):
    path = tmp_path / "nested" / "doc.json"
    assert read_json(path) is None
    write_json(path, {"b": 1, "a": [1, 2]})
    assert read_json(path) == {"a": [1, 2], "b": 1}
    assert not (tmp_path / "nested" / ".doc.json.tmp").exists()

    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(StoreError):
        read_json(path)


def test_json_store_round_trip_and_cap(tmp_path):
    config = make_config(tmp_path, history={"max_entries": 2})
    store = quality_history_store(config)
    assert isinstance(store, JsonHistoryStore)
    for index in range(3):
        store.append(_snapshot(index))
    records = store.load()
    assert [record["editorial"]["score"] for record in records] == [81, 82]
    assert json.loads((tmp_path / "quality-history.json").read_text(encoding="utf-8")) == records


def test_invalid_records_are_skipped_on_load(tmp_path):
    path = tmp_path / "quality-history.json"
    path.write_text(json.dumps([_snapshot(1), {"editorial": None}, "junk"]), encoding="utf-8")
    store = JsonHistoryStore(path, "quality_history")
    assert store.load() == [_snapshot(1)]


def test_append_rejects_invalid_record(tmp_path):
    store = JsonHistoryStore(tmp_path / "runs.json", "usage_runs")
    with pytest.raises(StoreError):
        store.append({"timestamp": NOW.isoformat(), "context": "manual"})
    assert not (tmp_path / "runs.json").exists()


def test_non_list_file_raises(tmp_path):
    path = tmp_path / "quality-history.json"
    path.write_text(json.dumps({"entries": []}), encoding="utf-8")
    with pytest.raises(StoreError):
        JsonHistoryStore(path, "quality_history").load()


def test_keyed_document_keeps_other_keys(tmp_path):
    path = tmp_path / "usage-tracking.json"
    write_json(path, {"last_updated": "yesterday", "runs": []})
    store = usage_store(make_config(tmp_path))
    store.append(_run())
    document = read_json(path)
    assert document["last_updated"] == "yesterday"
    assert document["runs"] == [_run()]


def test_prune_reports_removed_count(tmp_path):
    store = usage_store(make_config(tmp_path))
    store.append(_run("pipeline"))
    store.append(_run("autopilot"))
    removed = store.prune(lambda records: [r for r in records if r["context"] == "autopilot"])
    assert removed == 1
    assert [r["context"] for r in store.load()] == ["autopilot"]
    assert store.prune(lambda records: records) == 0


def test_sqlite_backend(tmp_path):
    config = make_config(tmp_path, history={"backend": "sqlite", "max_entries": 2})
    quality = quality_history_store(config)
    usage = usage_store(config)
    assert isinstance(quality, SqliteHistoryStore)
    assert (tmp_path / "sportsguard.sqlite3").exists()

    for index in range(3):
        quality.append(_snapshot(index))
    usage.append(_run())
    assert [record["editorial"]["score"] for record in quality.load()] == [81, 82]
    assert usage.load() == [_run()]

    removed = quality.prune(lambda records: records[-1:])
    assert removed == 1
    assert len(quality_history_store(config).load()) == 1


def test_unknown_stream():
    with pytest.raises(StoreError):
        JsonHistoryStore("x.json", "events")
