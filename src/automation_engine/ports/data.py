"""Data port: record CRUD over named collections."""

import asyncio
import copy
import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiosqlite


IDENTITY_FIELDS = ("id", "created_at", "updated_at")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_record_id() -> str:
    return uuid.uuid4().hex


class DataPort(ABC):
    """
    Minimal datastore boundary used by record actions.

    `get` and `update` return None when the record does not exist; a missing
    record is an expected outcome, not an exception.
    """

    @abstractmethod
    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def update(
        self,
        table: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def select(self, table: str) -> list[dict[str, Any]]:
        """All records in a collection. Used by the scheduler."""
        raise NotImplementedError


class InMemoryDataPort(DataPort):
    """Dict-backed datastore for tests and embedding."""

    def __init__(self, tables: Optional[dict[str, list[dict[str, Any]]]] = None):
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        for table, records in (tables or {}).items():
            for record in records:
                self._tables.setdefault(table, {})[str(record["id"])] = dict(record)

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        record = self._tables.get(table, {}).get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def insert(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        now = _now_iso()
        record = dict(fields)
        record.setdefault("id", _new_record_id())
        record.setdefault("created_at", now)
        record.setdefault("updated_at", now)
        self._tables.setdefault(table, {})[str(record["id"])] = record
        return copy.deepcopy(record)

    async def update(
        self,
        table: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        record = self._tables.get(table, {}).get(str(record_id))
        if record is None:
            return None
        record.update(fields)
        record["updated_at"] = _now_iso()
        return copy.deepcopy(record)

    async def delete(self, table: str, record_id: str) -> bool:
        return self._tables.get(table, {}).pop(str(record_id), None) is not None

    async def select(self, table: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._tables.get(table, {}).values()]


class SqliteDataPort(DataPort):
    """Datastore on SQLite: one row per record, JSON payload."""

    def __init__(self, db_path: str = "./data/records.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create the records table."""
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS records (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data_json TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            );
        """)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        cursor = await self._db.execute(
            "SELECT data_json FROM records WHERE collection = ? AND id = ?",
            (table, str(record_id)),
        )
        row = await cursor.fetchone()
        return json.loads(row["data_json"]) if row else None

    async def insert(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            now = _now_iso()
            record = dict(fields)
            record.setdefault("id", _new_record_id())
            record.setdefault("created_at", now)
            record.setdefault("updated_at", now)

            await self._db.execute(
                "INSERT INTO records (collection, id, data_json) VALUES (?, ?, ?)",
                (table, str(record["id"]), json.dumps(record, default=str)),
            )
            await self._db.commit()
            return record

    async def update(
        self,
        table: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            record = await self.get(table, record_id)
            if record is None:
                return None

            record.update(fields)
            record["updated_at"] = _now_iso()
            await self._db.execute(
                "UPDATE records SET data_json = ? WHERE collection = ? AND id = ?",
                (json.dumps(record, default=str), table, str(record_id)),
            )
            await self._db.commit()
            return record

    async def delete(self, table: str, record_id: str) -> bool:
        async with self._lock:
            result = await self._db.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (table, str(record_id)),
            )
            await self._db.commit()
            return result.rowcount > 0

    async def select(self, table: str) -> list[dict[str, Any]]:
        cursor = await self._db.execute(
            "SELECT data_json FROM records WHERE collection = ? ORDER BY rowid",
            (table,),
        )
        rows = await cursor.fetchall()
        return [json.loads(row["data_json"]) for row in rows]
