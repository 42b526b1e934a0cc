"""Tests for the key/value persistence backends."""
from __future__ import annotations

import sqlite3

import pytest

from harvester.data.backend import MemoryBackend, SqliteBackend, StorageError


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryBackend()
    return SqliteBackend(tmp_path / "nested" / "harvester.db")


@pytest.mark.integration
def test_set_get_overwrite(backend):
    assert backend.get("k") is None
    backend.set("k", {"a": [1, 2]})
    backend.set("k", {"a": [3]})
    assert backend.get("k") == {"a": [3]}


@pytest.mark.integration
def test_get_all_and_clear(backend):
    backend.set("one", 1)
    backend.set("two", ["x"])
    assert backend.get_all() == {"one": 1, "two": ["x"]}

    backend.clear()
    assert backend.get_all() == {}


@pytest.mark.integration
def test_returned_values_are_copies(backend):
    backend.set("k", {"items": [1]})
    value = backend.get("k")
    value["items"].append(2)
    assert backend.get("k") == {"items": [1]}


@pytest.mark.integration
def test_non_json_values_raise_storage_error(backend):
    with pytest.raises(StorageError):
        backend.set("k", {"bad": object()})


@pytest.mark.integration
def test_sqlite_uses_wal_and_reports_corrupt_rows(tmp_path):
    db_path = tmp_path / "harvester.db"
    backend = SqliteBackend(db_path)

    with sqlite3.connect(db_path) as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        conn.execute(
            "INSERT INTO kv_store (key, value, updated_at) VALUES ('broken', '{not json', 'now')"
        )

    with pytest.raises(StorageError):
        backend.get("broken")
