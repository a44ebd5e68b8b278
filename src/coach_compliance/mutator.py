"""Toggle-item-taken: reconcile, then idempotent upsert.

Consistency model: eventual, not linearizable. Two near-simultaneous first
toggles for the same day from different devices can both miss each other's
create and leave two records behind. Nothing here locks; the next call that
reads the key reconciles the pair without losing either completion.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from .cache import ComplianceCache
from .errors import ValidationWarning, check_item_name
from .logging import key_extra
from .metrics import record_toggle
from .models import (
    ComplianceDraft,
    ComplianceKey,
    ComplianceRecord,
    RecordPatch,
    normalize_item_name,
    parse_day,
)
from .reconciler import ComplianceReconciler
from .store import ComplianceStore, PlanProvider

logger = logging.getLogger(__name__)


class ComplianceMutator:
    def __init__(
        self,
        store: ComplianceStore,
        *,
        reconciler: ComplianceReconciler | None = None,
        cache: ComplianceCache | None = None,
        plans: PlanProvider | None = None,
    ) -> None:
        self.store = store
        self.reconciler = reconciler or ComplianceReconciler(store)
        self.cache = cache
        self.plans = plans
        self.last_warning: ValidationWarning | None = None

    async def _canonical(self, key: ComplianceKey) -> ComplianceRecord | None:
        return await self.reconciler.reconcile_key(key)

    async def _upsert(
        self,
        key: ComplianceKey,
        canonical: ComplianceRecord | None,
        patch: RecordPatch,
    ) -> ComplianceRecord:
        if canonical is None:
            draft = ComplianceDraft(
                client_id=key.client_id,
                plan_id=key.plan_id,
                date=key.date,
                items_completed=patch.get("items_completed", frozenset()),
                notes=patch.get("notes"),
            )
            return await self.store.create(draft)

        unchanged = all(getattr(canonical, field) == value for field, value in patch.items())
        if unchanged:
            return canonical
        return await self.store.update(canonical.id, patch)

    def _invalidate(self, key: ComplianceKey) -> None:
        if self.cache is None:
            return
        self.cache.invalidate(key)
        self.cache.invalidate(ComplianceKey.history(key.client_id, key.plan_id))

    async def _warn_if_unknown(self, plan_id: str, item_name: str, extra: dict[str, Any]) -> None:
        self.last_warning = None
        if self.plans is None:
            return
        plan = await self.plans.get(plan_id)
        warning = check_item_name(plan_id, item_name, plan.item_names if plan else None)
        if warning is not None:
            self.last_warning = warning
            logger.warning(warning.message, extra={**extra, "compliance_item": item_name})

    async def toggle_item(
        self,
        client_id: str,
        plan_id: str,
        date: dt.date | str,
        item_name: str,
        set_taken: bool,
    ) -> ComplianceRecord:
        """Mark ``item_name`` taken (or not taken) for one day.

        Same arguments, same end state: calling twice equals calling once.
        Raises ``StorageError`` on any store failure; retrying the identical
        call is safe.
        """
        name = normalize_item_name(item_name)
        if name is None:
            raise ValueError("item_name must not be empty")
        key = ComplianceKey(client_id, plan_id, parse_day(date))
        extra = key_extra(client_id, plan_id, key.date)

        await self._warn_if_unknown(plan_id, name, extra)

        canonical = await self._canonical(key)
        current = canonical.items_completed if canonical else frozenset()
        updated = current | {name} if set_taken else current - {name}

        record = await self._upsert(key, canonical, {"items_completed": frozenset(updated)})
        self._invalidate(key)
        record_toggle(created=canonical is None)

        logger.info(
            "%s %r for %s (%d item(s) completed)",
            "Marked" if set_taken else "Unmarked",
            name,
            key,
            len(record.items_completed),
            extra=extra,
        )
        return record

    async def set_notes(
        self,
        client_id: str,
        plan_id: str,
        date: dt.date | str,
        notes: str | None,
    ) -> ComplianceRecord:
        key = ComplianceKey(client_id, plan_id, parse_day(date))
        text = notes.strip() if isinstance(notes, str) else None
        canonical = await self._canonical(key)
        record = await self._upsert(key, canonical, {"notes": text or None})
        self._invalidate(key)
        return record

    async def delete_history(self, client_id: str, plan_id: str) -> int:
        """Delete every compliance record for one client/plan pair.

        Raises ``StorageError`` on the first failed delete; records already
        deleted stay deleted and a retry picks up the rest.
        """
        records = await self.store.filter(client_id=client_id, plan_id=plan_id)
        try:
            for record in records:
                await self.store.delete(record.id)
        finally:
            if self.cache is not None:
                self.cache.invalidate_history(client_id, plan_id)
        logger.info(
            "Deleted %d compliance record(s) for client %s and plan %s",
            len(records),
            client_id,
            plan_id,
            extra=key_extra(client_id, plan_id),
        )
        return len(records)
