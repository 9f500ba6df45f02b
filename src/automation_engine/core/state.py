"""Automation definitions and run logs, persisted in SQLite."""

import asyncio
import json
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import aiosqlite


class AutomationStore:
    """
    Stores automation definitions and their append-only run logs.

    Definitions are kept as JSON documents. Logs are never updated once
    written and outlive edits or deletion of the automation they refer to.
    """

    def __init__(self, db_path: str = "./data/automations.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database and create tables."""
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        await self._db.executescript("""
            -- Automation definitions
            CREATE TABLE IF NOT EXISTS automations (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                status TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                definition_json TEXT NOT NULL,
                updated_at REAL NOT NULL
            );

            -- Run history, one row per top-level firing
            CREATE TABLE IF NOT EXISTS automation_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                automation_id TEXT NOT NULL,
                timestamp REAL NOT NULL,
                status TEXT NOT NULL,
                duration_ms REAL NOT NULL,
                input_json TEXT,
                output_json TEXT,
                error TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_automations_status ON automations(status);
            CREATE INDEX IF NOT EXISTS idx_logs_automation ON automation_logs(automation_id, timestamp);
        """)
        await self._db.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    # ==================== Definitions ====================

    async def save_automation(self, automation) -> None:
        """Insert or replace an automation definition."""
        async with self._lock:
            await self._db.execute("""
                INSERT OR REPLACE INTO automations
                (id, name, status, trigger_type, definition_json, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                automation.id,
                automation.name,
                automation.status.value,
                automation.trigger.type,
                automation.model_dump_json(),
                time.time(),
            ))
            await self._db.commit()

    async def get_automation(self, automation_id: str):
        """Get automation by ID, or None."""
        from ..rules.models import parse_automation

        cursor = await self._db.execute(
            "SELECT definition_json FROM automations WHERE id = ?",
            (automation_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return parse_automation(json.loads(row["definition_json"]))

    async def list_automations(self, status=None) -> list:
        """List automations, optionally filtered by status."""
        from ..rules.models import parse_automation

        if status is None:
            cursor = await self._db.execute(
                "SELECT definition_json FROM automations ORDER BY rowid"
            )
        else:
            cursor = await self._db.execute(
                "SELECT definition_json FROM automations WHERE status = ? ORDER BY rowid",
                (getattr(status, "value", status),)
            )
        rows = await cursor.fetchall()
        return [parse_automation(json.loads(row["definition_json"])) for row in rows]

    async def delete_automation(self, automation_id: str) -> bool:
        """Delete a definition. Its logs are kept."""
        async with self._lock:
            result = await self._db.execute(
                "DELETE FROM automations WHERE id = ?",
                (automation_id,)
            )
            await self._db.commit()
            return result.rowcount > 0

    # ==================== Run logs ====================

    async def write_log(self, log):
        """Append a run log. Returns the stored log carrying its row id."""
        async with self._lock:
            cursor = await self._db.execute("""
                INSERT INTO automation_logs
                (automation_id, timestamp, status, duration_ms, input_json, output_json, error)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                log.automation_id,
                log.timestamp,
                log.status.value,
                log.duration_ms,
                json.dumps(log.input, default=str),
                json.dumps(log.output, default=str),
                log.error,
            ))
            await self._db.commit()
            return replace(log, id=cursor.lastrowid)

    async def list_logs(self, automation_id: Optional[str] = None, limit: int = 50) -> list:
        """Most recent logs first."""
        from ..rules.models import AutomationLog, LogStatus

        if automation_id is None:
            cursor = await self._db.execute(
                "SELECT * FROM automation_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,)
            )
        else:
            cursor = await self._db.execute("""
                SELECT * FROM automation_logs WHERE automation_id = ?
                ORDER BY timestamp DESC, id DESC LIMIT ?
            """, (automation_id, limit))
        rows = await cursor.fetchall()
        return [
            AutomationLog(
                id=row["id"],
                automation_id=row["automation_id"],
                timestamp=row["timestamp"],
                status=LogStatus(row["status"]),
                duration_ms=row["duration_ms"],
                input=json.loads(row["input_json"] or "{}"),
                output=json.loads(row["output_json"] or "{}"),
                error=row["error"],
            )
            for row in rows
        ]


class InMemoryAutomationStore:
    """Same interface as AutomationStore, kept in process memory."""

    def __init__(self, automations: Optional[list] = None):
        self._automations: dict[str, Any] = {}
        self._logs: list = []
        for automation in automations or []:
            self._automations[automation.id] = automation

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def save_automation(self, automation) -> None:
        self._automations[automation.id] = automation

    async def get_automation(self, automation_id: str):
        return self._automations.get(automation_id)

    async def list_automations(self, status=None) -> list:
        return [
            a for a in self._automations.values()
            if status is None or a.status == status
        ]

    async def delete_automation(self, automation_id: str) -> bool:
        return self._automations.pop(automation_id, None) is not None

    async def write_log(self, log):
        stored = replace(log, id=len(self._logs) + 1)
        self._logs.append(stored)
        return stored

    async def list_logs(self, automation_id: Optional[str] = None, limit: int = 50) -> list:
        logs = [
            log for log in self._logs
            if automation_id is None or log.automation_id == automation_id
        ]
        logs.sort(key=lambda log: (log.timestamp, log.id), reverse=True)
        return logs[:limit]
