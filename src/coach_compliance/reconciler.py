"""Duplicate repair for compliance records.

Two devices toggling the first item of a day at the same time can each create
a record for the same ``(client_id, plan_id, date)``. Reconciliation folds
those candidates back into one canonical record:

- the canonical record keeps the identity of the first candidate in arrival order
- its ``items_completed`` becomes the union of every candidate
- the union is written *before* any duplicate is deleted, so a crash between
  the two steps can leave extra rows but never drop a completion
- failed deletes are logged and retained; the next pass retries them

Running it again over its own output is a no-op.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict

from .errors import ReconciliationPartialFailure, StorageError
from .logging import key_extra
from .metrics import record_reconciliation
from .models import ComplianceKey, ComplianceRecord, RecordPatch
from .store import ComplianceStore

logger = logging.getLogger(__name__)


def merge_candidates(candidates: list[ComplianceRecord]) -> ComplianceRecord | None:
    """Pure merge: the record reconciliation converges to, without store calls."""
    if not candidates:
        return None
    primary = candidates[0]
    if len(candidates) == 1:
        return primary

    union: set[str] = set()
    for record in candidates:
        union.update(record.items_completed)

    notes = primary.notes
    if not notes:
        notes = next((r.notes for r in candidates[1:] if r.notes), primary.notes)

    return primary.model_copy(update={"items_completed": frozenset(union), "notes": notes})


class ComplianceReconciler:
    def __init__(self, store: ComplianceStore) -> None:
        self.store = store
        self.partial_failures: list[ReconciliationPartialFailure] = []

    @property
    def last_partial_failure(self) -> ReconciliationPartialFailure | None:
        return self.partial_failures[-1] if self.partial_failures else None

    async def reconcile(self, candidates: list[ComplianceRecord]) -> ComplianceRecord | None:
        """Return the canonical record for one key's candidates.

        Raises ``StorageError`` only when the merged set cannot be written;
        nothing has been deleted at that point. Deletes that fail are kept in
        ``partial_failures``.
        """
        self.partial_failures = []
        return await self._reconcile(candidates)

    async def _reconcile(self, candidates: list[ComplianceRecord]) -> ComplianceRecord | None:
        merged = merge_candidates(candidates)
        if merged is None or len(candidates) == 1:
            return merged

        primary, duplicates = candidates[0], candidates[1:]
        extra = key_extra(primary.client_id, primary.plan_id, primary.date)
        logger.warning(
            "Found %d duplicate compliance records for %s, consolidating into %s",
            len(candidates),
            primary.key,
            primary.id,
            extra=extra,
        )

        patch: RecordPatch = {}
        if merged.items_completed != primary.items_completed:
            patch["items_completed"] = merged.items_completed
        if merged.notes != primary.notes:
            patch["notes"] = merged.notes
        canonical = await self.store.update(primary.id, patch) if patch else merged

        deleted = 0
        retained: list[str] = []
        errors: list[str] = []
        for duplicate in duplicates:
            if duplicate.id == primary.id:
                continue
            try:
                await self.store.delete(duplicate.id)
            except StorageError as exc:
                retained.append(duplicate.id)
                errors.append(str(exc))
            else:
                deleted += 1

        record_reconciliation(merged=deleted, retained=len(retained))

        if retained:
            failure = ReconciliationPartialFailure(
                canonical_id=primary.id,
                retained_ids=tuple(retained),
                errors=tuple(errors),
            )
            self.partial_failures.append(failure)
            logger.error(
                "Reconciliation partial failure for %s: %s",
                primary.key,
                failure.message,
                extra={**extra, "compliance_retained_ids": list(retained)},
            )
        else:
            logger.info("Deleted %d duplicate record(s) for %s", deleted, primary.key, extra=extra)

        return canonical

    async def reconcile_key(self, key: ComplianceKey) -> ComplianceRecord | None:
        if key.date is None:
            raise ValueError("reconcile_key needs a day key; use reconcile_history for a history")
        candidates = await self.store.filter(
            client_id=key.client_id, plan_id=key.plan_id, date=key.date
        )
        return await self.reconcile(candidates)

    async def reconcile_history(self, client_id: str, plan_id: str) -> list[ComplianceRecord]:
        """Reconcile every day of a client's history for one plan.

        Returns canonical records in ascending date order. Failed deletes from
        every day of the pass are collected in ``partial_failures``.
        """
        self.partial_failures = []
        records = await self.store.filter(client_id=client_id, plan_id=plan_id)
        by_day: dict[dt.date, list[ComplianceRecord]] = defaultdict(list)
        for record in records:
            by_day[record.date].append(record)

        canonical: list[ComplianceRecord] = []
        for day in sorted(by_day):
            record = await self._reconcile(by_day[day])
            if record is not None:
                canonical.append(record)
        return canonical
