"""Key/value persistence backends for the consolidated namespace."""
from __future__ import annotations

import copy
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the backend cannot read or write the namespace."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueBackend:
    """Whole-namespace get/set/clear. Values are JSON-compatible objects."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def get_all(self) -> Dict[str, Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryBackend(KeyValueBackend):
    """Process-local backend; values are copied in and out like a real store."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.loads(json.dumps(value))
        except (TypeError, ValueError) as exc:
            raise StorageError(f"value for '{key}' is not JSON-serializable: {exc}") from exc

    def clear(self) -> None:
        self._data.clear()


class SqliteBackend(KeyValueBackend):
    """SQLite table of JSON documents keyed by logical name."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[Any]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, ValueError) as exc:
            raise StorageError(f"failed to read '{key}': {exc}") from exc

    def get_all(self) -> Dict[str, Any]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute("SELECT key, value FROM kv_store ORDER BY key").fetchall()
            return {key: json.loads(value) for key, value in rows}
        except (sqlite3.Error, ValueError) as exc:
            raise StorageError(f"failed to read namespace: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise StorageError(f"value for '{key}' is not JSON-serializable: {exc}") from exc
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, encoded, _utc_now_iso()),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to write '{key}': {exc}") from exc

    def clear(self) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                deleted = conn.execute("DELETE FROM kv_store").rowcount
        except sqlite3.Error as exc:
            raise StorageError(f"failed to clear namespace: {exc}") from exc
        logger.info("namespace cleared: %d keys removed", deleted)
