"""Tests for the key/value stores."""

import pytest

from promptshelf.storage import JsonFileStore, MemoryStore, StorageError


def test_memory_store_round_trip():
    store = MemoryStore()
    assert store.get("k") is None
    store.set("k", {"a": [1, 2]})
    assert store.get("k") == {"a": [1, 2]}
    store.remove("k")
    assert store.get("k") is None


def test_memory_store_rejects_unserializable():
    with pytest.raises(StorageError):
        MemoryStore().set("k", object())


def test_memory_store_corruption():
    store = MemoryStore()
    store.set_raw("k", "{oops")
    with pytest.raises(StorageError):
        store.get("k")


def test_json_file_store_keeps_keys_side_by_side(tmp_path):
    path = tmp_path / "nested" / "storage.json"
    store = JsonFileStore(path)
    store.set("a", 1)
    store.set("b", [2])

    assert path.exists()
    reopened = JsonFileStore(path)
    assert reopened.get("a") == 1
    assert reopened.get("b") == [2]

    reopened.remove("a")
    assert JsonFileStore(path).get("a") is None
    assert JsonFileStore(path).get("b") == [2]


def test_json_file_store_missing_file(tmp_path):
    store = JsonFileStore(tmp_path / "absent.json")
    assert store.get("x") is None
    store.remove("x")


def test_json_file_store_unreadable_file(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2]", encoding="utf-8")
    store = JsonFileStore(path)

    with pytest.raises(StorageError):
        store.get("x")

    # Writing replaces the unreadable content
    store.set("x", "fresh")
    assert store.get("x") == "fresh"
