from __future__ import annotations

import datetime as dt
from unittest.mock import AsyncMock, MagicMock

import pytest

from coach_compliance.errors import StorageError
from coach_compliance.metrics import reset_metrics
from coach_compliance.models import ComplianceRecord, Plan, PlanItem
from coach_compliance.store import InMemoryComplianceStore, InMemoryPlanProvider

TODAY = dt.date(2026, 2, 11)


def make_record(
    record_id: str,
    items: set[str] | list[str] = (),
    *,
    day: dt.date = TODAY,
    client_id: str = "client-1",
    plan_id: str = "plan-1",
    notes: str | None = None,
) -> ComplianceRecord:
    return ComplianceRecord(
        id=record_id,
        client_id=client_id,
        plan_id=plan_id,
        date=day,
        items_completed=frozenset(items),
        notes=notes,
    )


def make_plan(*names: str, plan_id: str = "plan-1") -> Plan:
    return Plan(id=plan_id, items=[PlanItem(name=name) for name in names])


class FlakyStore(InMemoryComplianceStore):
    """In-memory store that fails selected calls with ``StorageError``."""

    def __init__(self, records: list[ComplianceRecord] | None = None) -> None:
        super().__init__(records)
        self.failing_deletes: set[str] = set()
        self.fail_next: dict[str, int] = {}
        self.calls: list[str] = []

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        remaining = self.fail_next.get(operation, 0)
        if remaining > 0:
            self.fail_next[operation] = remaining - 1
            raise StorageError(f"{operation} unavailable", operation=operation)

    async def create(self, draft):
        self._maybe_fail("create")
        return await super().create(draft)

    async def update(self, record_id, patch):
        self._maybe_fail("update")
        return await super().update(record_id, patch)

    async def delete(self, record_id):
        self._maybe_fail("delete")
        if record_id in self.failing_deletes:
            raise StorageError(f"delete {record_id} rejected", operation="delete")
        await super().delete(record_id)

    async def filter(self, **kwargs):
        self._maybe_fail("filter")
        return await super().filter(**kwargs)


def make_mock_cursor(rows, description=("col",)):
    cursor = AsyncMock()
    cursor.fetchall = AsyncMock(return_value=rows)
    cursor.fetchone = AsyncMock(return_value=rows[0] if rows else None)
    cursor.execute = AsyncMock()
    cursor.description = description
    return cursor


class MockCursorContext:
    def __init__(self, cursor):
        self.cursor = cursor

    async def __aenter__(self):
        return self.cursor

    async def __aexit__(self, *args):
        pass


def conn_with(cursor):
    conn = AsyncMock()
    conn.cursor = MagicMock(return_value=MockCursorContext(cursor))
    return conn


@pytest.fixture(autouse=True)
def _fresh_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def plan() -> Plan:
    return make_plan("A", "B", "C")


@pytest.fixture
def plans(plan) -> InMemoryPlanProvider:
    return InMemoryPlanProvider([plan])


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()
