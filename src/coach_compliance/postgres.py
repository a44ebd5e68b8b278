"""PostgreSQL adapters for the compliance store and plan provider.

The table deliberately has no unique constraint on
``(client_id, plan_id, date)``: it models the hosted entity API, which does not
offer one. ``seq`` records arrival order for reconciliation.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .errors import StorageError
from .models import ComplianceDraft, ComplianceRecord, Plan, RecordPatch, new_record_id

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS compliance_records (
    id UUID PRIMARY KEY,
    seq BIGSERIAL,
    client_id TEXT NOT NULL,
    plan_id TEXT NOT NULL,
    date DATE NOT NULL,
    items_completed TEXT[] NOT NULL DEFAULT '{}',
    notes TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS compliance_records_key_idx
    ON compliance_records (client_id, plan_id, date);
CREATE TABLE IF NOT EXISTS plans (
    id TEXT PRIMARY KEY,
    items JSONB NOT NULL DEFAULT '[]'::jsonb
);
"""

_RECORD_COLUMNS = "id, client_id, plan_id, date, items_completed, notes, created_at, updated_at"


def _row_to_record(row: dict[str, Any]) -> ComplianceRecord:
    return ComplianceRecord(
        id=str(row["id"]),
        client_id=row["client_id"],
        plan_id=row["plan_id"],
        date=row["date"],
        items_completed=row.get("items_completed") or [],
        notes=row.get("notes"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


async def ensure_schema(conn: psycopg.AsyncConnection[Any]) -> None:
    """Create tables and indexes if missing. Safe to call on every startup."""
    async with conn.cursor() as cur:
        await cur.execute(SCHEMA_SQL)
    logger.info("Compliance schema ensured")


class PostgresComplianceStore:
    """Expects an autocommit connection: every call is its own write."""

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self.conn = conn

    @classmethod
    async def connect(cls, database_url: str) -> PostgresComplianceStore:
        try:
            conn = await psycopg.AsyncConnection.connect(database_url, autocommit=True)
        except psycopg.Error as exc:
            raise StorageError(f"connect failed: {exc}", operation="connect") from exc
        return cls(conn)

    async def close(self) -> None:
        await self.conn.close()

    async def _fetch(
        self, operation: str, query: str, params: tuple[Any, ...]
    ) -> list[dict[str, Any]]:
        try:
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, params)
                if cur.description is None:
                    return []
                return await cur.fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"{operation} failed: {exc}", operation=operation) from exc

    async def create(self, draft: ComplianceDraft) -> ComplianceRecord:
        rows = await self._fetch(
            "create",
            f"""
            INSERT INTO compliance_records (id, client_id, plan_id, date, items_completed, notes)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_RECORD_COLUMNS}
            """,
            (
                new_record_id(),
                draft.client_id,
                draft.plan_id,
                draft.date,
                sorted(draft.items_completed),
                draft.notes,
            ),
        )
        return _row_to_record(rows[0])

    async def update(self, record_id: str, patch: RecordPatch) -> ComplianceRecord:
        assignments = ["updated_at = NOW()"]
        params: list[Any] = []
        if "items_completed" in patch:
            assignments.append("items_completed = %s")
            params.append(sorted(patch["items_completed"]))
        if "notes" in patch:
            assignments.append("notes = %s")
            params.append(patch["notes"])
        params.append(record_id)

        rows = await self._fetch(
            "update",
            f"""
            UPDATE compliance_records
            SET {", ".join(assignments)}
            WHERE id = %s
            RETURNING {_RECORD_COLUMNS}
            """,
            tuple(params),
        )
        if not rows:
            raise StorageError(f"compliance record {record_id} not found", operation="update")
        return _row_to_record(rows[0])

    async def delete(self, record_id: str) -> None:
        await self._fetch(
            "delete",
            "DELETE FROM compliance_records WHERE id = %s",
            (record_id,),
        )

    async def filter(
        self,
        *,
        client_id: str | None = None,
        plan_id: str | None = None,
        date: dt.date | None = None,
    ) -> list[ComplianceRecord]:
        conditions: list[str] = []
        params: list[Any] = []
        if client_id is not None:
            conditions.append("client_id = %s")
            params.append(client_id)
        if plan_id is not None:
            conditions.append("plan_id = %s")
            params.append(plan_id)
        if date is not None:
            conditions.append("date = %s")
            params.append(date)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = await self._fetch(
            "filter",
            f"""
            SELECT {_RECORD_COLUMNS}
            FROM compliance_records
            {where}
            ORDER BY created_at ASC, seq ASC
            """,
            tuple(params),
        )
        return [_row_to_record(row) for row in rows]


class PostgresPlanProvider:
    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self.conn = conn

    async def get(self, plan_id: str) -> Plan | None:
        try:
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute("SELECT id, items FROM plans WHERE id = %s", (plan_id,))
                row = await cur.fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"plan_get failed: {exc}", operation="plan_get") from exc
        if row is None:
            return None
        items = row["items"] if isinstance(row.get("items"), list) else []
        return Plan.model_validate({"id": row["id"], "items": items})
