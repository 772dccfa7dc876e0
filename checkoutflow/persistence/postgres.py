"""PostgreSQL implementation of the step repository."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import asyncpg

from ..contracts import StepInstance
from .repository import StepRepository

_COLUMNS = (
    "id, session_id, step_name, step_order, is_active, is_completed, started_at, "
    "completed_at, time_spent, attempts, last_attempt_at, step_data, "
    "validation_errors, navigation_history"
)


def _json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    return json.loads(value) if isinstance(value, str) else value


class PostgresStepRepository(StepRepository):
    """Persist checkout step state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False
        self._schema_lock = asyncio.Lock()

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            async with self._schema_lock:
                if not self._initialized:
                    try:
                        await self._ensure_schema(conn)
                    except BaseException:
                        await conn.close()
                        raise
                    self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS checkout_steps (
                id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                step_order INTEGER NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT FALSE,
                is_completed BOOLEAN NOT NULL DEFAULT FALSE,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                time_spent INTEGER NOT NULL DEFAULT 0,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_attempt_at TIMESTAMPTZ,
                step_data JSONB,
                validation_errors JSONB,
                navigation_history JSONB
            )
            """
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_checkout_steps_session_step "
            "ON checkout_steps (session_id, step_name)"
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_checkout_steps_session_order "
            "ON checkout_steps (session_id, step_order)"
        )

    @staticmethod
    def _to_params(step: StepInstance) -> tuple[Any, ...]:
        return (
            step.session_id,
            step.step_name,
            step.order,
            step.is_active,
            step.is_completed,
            step.started_at,
            step.completed_at,
            step.time_spent,
            step.attempts,
            step.last_attempt_at,
            json.dumps(step.step_data),
            json.dumps(step.validation_errors),
            json.dumps([e.model_dump(mode="json") for e in step.navigation_history]),
        )

    @staticmethod
    def _from_row(row: asyncpg.Record) -> StepInstance:
        return StepInstance(
            id=row["id"],
            session_id=row["session_id"],
            step_name=row["step_name"],
            order=row["step_order"],
            is_active=row["is_active"],
            is_completed=row["is_completed"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            time_spent=row["time_spent"],
            attempts=row["attempts"],
            last_attempt_at=row["last_attempt_at"],
            step_data=_json(row["step_data"], {}),
            validation_errors=_json(row["validation_errors"], {}),
            navigation_history=_json(row["navigation_history"], []),
        )

    # ------------------------------------------------------------------
    async def create(self, instance: StepInstance) -> StepInstance:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO checkout_steps ({_COLUMNS}) VALUES "
                "($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)",
                instance.id,
                *self._to_params(instance),
            )
        finally:
            await conn.close()
        return instance

    async def find_many(self, session_id: str) -> list[StepInstance]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM checkout_steps WHERE session_id = $1 ORDER BY step_order",
                session_id,
            )
        finally:
            await conn.close()
        return [self._from_row(r) for r in rows]

    async def find_first(
        self, session_id: str, step_name: str
    ) -> StepInstance | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM checkout_steps "
                "WHERE session_id = $1 AND step_name = $2 ORDER BY step_order LIMIT 1",
                session_id,
                step_name,
            )
        finally:
            await conn.close()
        return self._from_row(row) if row else None

    async def find_one(self, instance_id: str) -> StepInstance | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM checkout_steps WHERE id = $1", instance_id
            )
        finally:
            await conn.close()
        return self._from_row(row) if row else None

    async def update(self, instance_id: str, data: dict[str, Any]) -> StepInstance:
        conn = await self._connect()
        try:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM checkout_steps WHERE id = $1 FOR UPDATE",
                    instance_id,
                )
                if row is None:
                    raise KeyError(instance_id)
                current = self._from_row(row)
                updated = StepInstance.model_validate({**current.model_dump(), **data})
                await conn.execute(
                    """
                    UPDATE checkout_steps
                    SET session_id = $1, step_name = $2, step_order = $3,
                        is_active = $4, is_completed = $5, started_at = $6,
                        completed_at = $7, time_spent = $8, attempts = $9,
                        last_attempt_at = $10, step_data = $11,
                        validation_errors = $12, navigation_history = $13
                    WHERE id = $14
                    """,
                    *self._to_params(updated),
                    instance_id,
                )
        finally:
            await conn.close()
        return updated
