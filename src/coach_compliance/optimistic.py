"""Optimistic toggle with explicit rollback.

One ``OptimisticToggle`` per in-flight mutation::

    idle --begin()--> pending(pre_snapshot) --commit()--> committed
                                            \\-- any error --> rolled_back(pre_snapshot)
    rolled_back --retry()--> pending(pre_snapshot)

The local view is updated immediately on ``begin()``; on any failure it is
restored to exactly the snapshot taken before the toggle.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Literal

from .errors import InvalidTransition
from .models import ComplianceRecord, normalize_item_name, parse_day
from .mutator import ComplianceMutator

logger = logging.getLogger(__name__)

ToggleState = Literal["idle", "pending", "committed", "rolled_back"]

_PLACEHOLDER_ID = "pending"


class OptimisticToggle:
    def __init__(
        self,
        mutator: ComplianceMutator,
        *,
        client_id: str,
        plan_id: str,
        date: dt.date | str,
        item_name: str,
        set_taken: bool,
        view: ComplianceRecord | None,
    ) -> None:
        name = normalize_item_name(item_name)
        if name is None:
            raise ValueError("item_name must not be empty")
        self.mutator = mutator
        self.client_id = client_id
        self.plan_id = plan_id
        self.date = parse_day(date)
        self.item_name = name
        self.set_taken = set_taken
        self.view = view
        self.state: ToggleState = "idle"
        self.pre_snapshot: ComplianceRecord | None = None
        self.error: BaseException | None = None

    def _require(self, action: str, *allowed: ToggleState) -> None:
        if self.state not in allowed:
            raise InvalidTransition("optimistic_toggle", self.state, action)

    def _apply_locally(self) -> ComplianceRecord:
        base = self.pre_snapshot
        if base is None:
            base = ComplianceRecord(
                id=_PLACEHOLDER_ID,
                client_id=self.client_id,
                plan_id=self.plan_id,
                date=self.date,
            )
        items = base.items_completed
        items = items | {self.item_name} if self.set_taken else items - {self.item_name}
        return base.model_copy(update={"items_completed": frozenset(items)})

    def begin(self) -> ComplianceRecord:
        """Snapshot the current view and show the toggled state right away."""
        self._require("begin", "idle")
        self.pre_snapshot = self.view
        self.view = self._apply_locally()
        self.state = "pending"
        return self.view

    async def commit(self) -> ComplianceRecord:
        """Send the toggle.

        Any failure, cancellation included, restores the pre-toggle view and is
        re-raised.
        """
        self._require("commit", "pending")
        try:
            record = await self.mutator.toggle_item(
                self.client_id,
                self.plan_id,
                self.date,
                self.item_name,
                self.set_taken,
            )
        except BaseException as exc:
            self.view = self.pre_snapshot
            self.error = exc
            self.state = "rolled_back"
            logger.warning(
                "Rolled back optimistic toggle of %r for %s/%s/%s: %r",
                self.item_name,
                self.client_id,
                self.plan_id,
                self.date,
                exc,
            )
            raise
        self.view = record
        self.error = None
        self.state = "committed"
        return record

    async def run(self) -> ComplianceRecord:
        self.begin()
        return await self.commit()

    async def retry(self) -> ComplianceRecord:
        """Re-issue the identical toggle after a rollback."""
        self._require("retry", "rolled_back")
        self.view = self._apply_locally()
        self.state = "pending"
        return await self.commit()
