"""Storage contracts the compliance core consumes, plus reference adapters.

The store offers no uniqueness guarantee on ``(client_id, plan_id, date)``;
callers rely on reconcile-on-read instead. ``filter`` returns records in
arrival order (oldest first), which is what "first candidate" means during
reconciliation.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from .errors import StorageError, StorageTimeout
from .metrics import record_storage_error, record_storage_retry
from .models import ComplianceDraft, ComplianceRecord, Plan, RecordPatch, new_record_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ComplianceStore(Protocol):
    async def create(self, draft: ComplianceDraft) -> ComplianceRecord: ...

    async def update(self, record_id: str, patch: RecordPatch) -> ComplianceRecord: ...

    async def delete(self, record_id: str) -> None: ...

    async def filter(
        self,
        *,
        client_id: str | None = None,
        plan_id: str | None = None,
        date: dt.date | None = None,
    ) -> list[ComplianceRecord]: ...


class PlanProvider(Protocol):
    async def get(self, plan_id: str) -> Plan | None: ...


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class InMemoryComplianceStore:
    """Dict-backed store; insertion order is arrival order.

    Every call yields to the event loop once before touching state, so two
    concurrent callers interleave the way two devices hitting a remote API do.
    """

    def __init__(self, records: list[ComplianceRecord] | None = None) -> None:
        self._records: dict[str, ComplianceRecord] = {}
        for record in records or []:
            self._records[record.id] = record

    def __len__(self) -> int:
        return len(self._records)

    def all(self) -> list[ComplianceRecord]:
        return list(self._records.values())

    async def create(self, draft: ComplianceDraft) -> ComplianceRecord:
        await asyncio.sleep(0)
        now = _now()
        record = ComplianceRecord(
            **draft.model_dump(),
            id=new_record_id(),
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        return record

    async def update(self, record_id: str, patch: RecordPatch) -> ComplianceRecord:
        await asyncio.sleep(0)
        current = self._records.get(record_id)
        if current is None:
            raise StorageError(f"compliance record {record_id} not found", operation="update")
        changes: dict[str, object] = {"updated_at": _now()}
        if "items_completed" in patch:
            changes["items_completed"] = frozenset(patch["items_completed"])
        if "notes" in patch:
            changes["notes"] = patch["notes"]
        updated = current.model_copy(update=changes)
        self._records[record_id] = updated
        return updated

    async def delete(self, record_id: str) -> None:
        await asyncio.sleep(0)
        self._records.pop(record_id, None)

    async def filter(
        self,
        *,
        client_id: str | None = None,
        plan_id: str | None = None,
        date: dt.date | None = None,
    ) -> list[ComplianceRecord]:
        await asyncio.sleep(0)
        return [
            record
            for record in self._records.values()
            if (client_id is None or record.client_id == client_id)
            and (plan_id is None or record.plan_id == plan_id)
            and (date is None or record.date == date)
        ]


class InMemoryPlanProvider:
    def __init__(self, plans: list[Plan] | None = None) -> None:
        self._plans = {plan.id: plan for plan in plans or []}

    def put(self, plan: Plan) -> None:
        self._plans[plan.id] = plan

    async def get(self, plan_id: str) -> Plan | None:
        await asyncio.sleep(0)
        return self._plans.get(plan_id)


async def call_with_policy(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float,
    max_retries: int = 1,
) -> T:
    """Run one store call under a timeout with at most ``max_retries`` retries.

    Timeouts and ``OSError`` become ``StorageError``; anything that is not a
    storage failure propagates untouched.
    """
    attempts = max(max_retries, 0) + 1
    last_error: StorageError | None = None
    for attempt in range(1, attempts + 1):
        try:
            async with asyncio.timeout(timeout_seconds):
                return await fn()
        except TimeoutError:
            last_error = StorageTimeout(
                f"{operation} timed out after {timeout_seconds:.1f}s", operation=operation
            )
        except StorageError as exc:
            last_error = exc
        except OSError as exc:
            last_error = StorageError(f"{operation} failed: {exc}", operation=operation)

        if attempt < attempts:
            record_storage_retry(operation)
            logger.warning(
                "Store %s failed (attempt %d/%d), retrying: %s",
                operation,
                attempt,
                attempts,
                last_error,
                extra={"compliance_operation": operation},
            )

    assert last_error is not None
    record_storage_error(operation)
    logger.error(
        "Store %s failed after %d attempt(s): %s",
        operation,
        attempts,
        last_error,
        extra={"compliance_operation": operation},
    )
    raise last_error


class GuardedComplianceStore:
    """Applies the request timeout and single-retry policy to any store.

    A retried ``create`` whose first attempt actually landed leaves a duplicate
    behind; the next reconciliation for that day folds it back in.
    """

    def __init__(
        self,
        inner: ComplianceStore,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 1,
    ) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    async def _guard(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        return await call_with_policy(
            operation,
            fn,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
        )

    async def create(self, draft: ComplianceDraft) -> ComplianceRecord:
        return await self._guard("create", lambda: self.inner.create(draft))

    async def update(self, record_id: str, patch: RecordPatch) -> ComplianceRecord:
        return await self._guard("update", lambda: self.inner.update(record_id, patch))

    async def delete(self, record_id: str) -> None:
        await self._guard("delete", lambda: self.inner.delete(record_id))

    async def filter(
        self,
        *,
        client_id: str | None = None,
        plan_id: str | None = None,
        date: dt.date | None = None,
    ) -> list[ComplianceRecord]:
        return await self._guard(
            "filter",
            lambda: self.inner.filter(client_id=client_id, plan_id=plan_id, date=date),
        )


class GuardedPlanProvider:
    def __init__(
        self,
        inner: PlanProvider,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 1,
    ) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    async def get(self, plan_id: str) -> Plan | None:
        return await call_with_policy(
            "plan_get",
            lambda: self.inner.get(plan_id),
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
        )
