"""SQLite implementation of the step repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import StepInstance
from .repository import StepRepository

_COLUMNS = (
    "id, session_id, step_name, step_order, is_active, is_completed, started_at, "
    "completed_at, time_spent, attempts, last_attempt_at, step_data, "
    "validation_errors, navigation_history"
)


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteStepRepository(StepRepository):
    """Persist checkout step state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS checkout_steps (
                id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                step_order INTEGER NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 0,
                is_completed INTEGER NOT NULL DEFAULT 0,
                started_at TEXT,
                completed_at TEXT,
                time_spent INTEGER NOT NULL DEFAULT 0,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_attempt_at TEXT,
                step_data TEXT,
                validation_errors TEXT,
                navigation_history TEXT
            )
            """
        )
        cur.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_checkout_steps_session_step "
            "ON checkout_steps (session_id, step_name)"
        )
        cur.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_checkout_steps_session_order "
            "ON checkout_steps (session_id, step_order)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _to_params(step: StepInstance) -> tuple[Any, ...]:
        return (
            step.session_id,
            step.step_name,
            step.order,
            int(step.is_active),
            int(step.is_completed),
            _dt(step.started_at),
            _dt(step.completed_at),
            step.time_spent,
            step.attempts,
            _dt(step.last_attempt_at),
            json.dumps(step.step_data),
            json.dumps(step.validation_errors),
            json.dumps([e.model_dump(mode="json") for e in step.navigation_history]),
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> StepInstance:
        return StepInstance(
            id=row["id"],
            session_id=row["session_id"],
            step_name=row["step_name"],
            order=row["step_order"],
            is_active=bool(row["is_active"]),
            is_completed=bool(row["is_completed"]),
            started_at=_parse_dt(row["started_at"]),
            completed_at=_parse_dt(row["completed_at"]),
            time_spent=row["time_spent"],
            attempts=row["attempts"],
            last_attempt_at=_parse_dt(row["last_attempt_at"]),
            step_data=json.loads(row["step_data"]) if row["step_data"] else {},
            validation_errors=(
                json.loads(row["validation_errors"]) if row["validation_errors"] else {}
            ),
            navigation_history=(
                json.loads(row["navigation_history"])
                if row["navigation_history"]
                else []
            ),
        )

    def _update_sync(self, instance_id: str, data: dict[str, Any]) -> StepInstance:
        with self._lock:
            return self._merge_and_write(instance_id, data)

    def _merge_and_write(
        self, instance_id: str, data: dict[str, Any]
    ) -> StepInstance:
        row = self._fetchone(
            f"SELECT {_COLUMNS} FROM checkout_steps WHERE id = ?", instance_id
        )
        if row is None:
            raise KeyError(instance_id)
        current = self._from_row(row)
        updated = StepInstance.model_validate({**current.model_dump(), **data})
        self._execute(
            """
            UPDATE checkout_steps
            SET session_id = ?, step_name = ?, step_order = ?, is_active = ?,
                is_completed = ?, started_at = ?, completed_at = ?, time_spent = ?,
                attempts = ?, last_attempt_at = ?, step_data = ?,
                validation_errors = ?, navigation_history = ?
            WHERE id = ?
            """,
            *self._to_params(updated),
            instance_id,
        )
        return updated

    # ------------------------------------------------------------------
    # Repository API
    async def create(self, instance: StepInstance) -> StepInstance:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO checkout_steps ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            instance.id,
            *self._to_params(instance),
        )
        return instance

    async def find_many(self, session_id: str) -> list[StepInstance]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM checkout_steps WHERE session_id = ? ORDER BY step_order",
            session_id,
        )
        return [self._from_row(r) for r in rows]

    async def find_first(
        self, session_id: str, step_name: str
    ) -> StepInstance | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM checkout_steps WHERE session_id = ? AND step_name = ? "
            "ORDER BY step_order LIMIT 1",
            session_id,
            step_name,
        )
        return self._from_row(row) if row else None

    async def find_one(self, instance_id: str) -> StepInstance | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM checkout_steps WHERE id = ?",
            instance_id,
        )
        return self._from_row(row) if row else None

    async def update(self, instance_id: str, data: dict[str, Any]) -> StepInstance:
        return await asyncio.to_thread(self._update_sync, instance_id, data)
