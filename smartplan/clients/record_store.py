"""Key/value record stores addressed by ``(pk, sk)`` pairs.

Both stores expose the same surface so the registry and the connector bridge
can run against an in-memory table in tests and a SQLite file locally.
"""

from __future__ import annotations

import copy
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol


class RecordStore(Protocol):
    def put_item(self, item: Dict[str, Any]) -> None: ...

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]: ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> None: ...

    def list_items(self, *, sort_key: str) -> list[Dict[str, Any]]: ...


def _require_keys(item: Dict[str, Any]) -> tuple[str, str]:
    pk = item.get("pk")
    sk = item.get("sk")
    if not pk or not sk:
        raise ValueError("Item must include 'pk' and 'sk' keys")
    return pk, sk


class InMemoryStore:
    """Process-local store; items are copied in and out so callers cannot alias them."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def put_item(self, item: Dict[str, Any]) -> None:
        key = _require_keys(item)
        with self._lock:
            self._items[key] = copy.deepcopy(item)

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get((partition_key, sort_key))
        return copy.deepcopy(item) if item is not None else None

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        with self._lock:
            self._items.pop((partition_key, sort_key), None)

    def list_items(self, *, sort_key: str) -> list[Dict[str, Any]]:
        with self._lock:
            items = [item for (_, sk), item in self._items.items() if sk == sort_key]
        return copy.deepcopy(items)


class SQLiteStore:
    """Simple key-value store using a normalized table keyed by (pk, sk)."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_records (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )

    def put_item(self, item: Dict[str, Any]) -> None:
        pk, sk = _require_keys(item)
        data_json = json.dumps(item)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_records (pk, sk, data)
                VALUES (?, ?, ?)
                ON CONFLICT(pk, sk) DO UPDATE SET data = excluded.data
                """,
                (pk, sk, data_json),
            )

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM kv_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["data"])

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM kv_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            )

    def list_items(self, *, sort_key: str) -> list[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT data FROM kv_records WHERE sk = ? ORDER BY pk",
                (sort_key,),
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]


__all__ = ["InMemoryStore", "RecordStore", "SQLiteStore"]
