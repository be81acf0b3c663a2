"""Tests for local durable key-value storage."""

import json

from cleanspace.storage import InMemoryStorage, JsonFileStorage


def test_in_memory_storage_basic_operations():
    storage = InMemoryStorage({"a": "1"})
    assert storage.get("a") == "1"
    storage.set("b", "2")
    storage.remove("a")
    storage.remove("missing")
    assert storage.get("a") is None
    assert storage.values == {"b": "2"}


def test_json_file_storage_survives_restart(tmp_path):
    path = tmp_path / "nested" / "storage.json"
    storage = JsonFileStorage(path)
    storage.set("cleanspace_action_queue", "[]")
    storage.set("other", "value")
    storage.remove("other")

    reopened = JsonFileStorage(path)
    assert reopened.get("cleanspace_action_queue") == "[]"
    assert reopened.get("other") is None
    assert json.loads(path.read_text("utf-8")) == {"cleanspace_action_queue": "[]"}
    # No temporary files left behind
    assert [p.name for p in path.parent.iterdir()] == ["storage.json"]


def test_json_file_storage_discards_corrupted_file(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json", encoding="utf-8")

    storage = JsonFileStorage(path)
    assert storage.get("anything") is None

    storage.set("key", "value")
    assert JsonFileStorage(path).get("key") == "value"


def test_json_file_storage_discards_undecodable_bytes(tmp_path):
    path = tmp_path / "storage.json"
    path.write_bytes(b"\xff\xfe{garbage")

    storage = JsonFileStorage(path)
    assert storage.get("anything") is None

    storage.set("key", "value")
    assert JsonFileStorage(path).get("key") == "value"


def test_json_file_storage_discards_non_object(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text(json.dumps(["a", "b"]), encoding="utf-8")
    assert JsonFileStorage(path).get("0") is None

    path.write_text(json.dumps({"key": 5}), encoding="utf-8")
    assert JsonFileStorage(path).get("key") is None
