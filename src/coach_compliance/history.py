"""Reconcile-on-read history and the adherence overview read model."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from .analytics import (
    classify_bucket,
    compliance_stats,
    daily_ratio,
    month_bounds,
    monthly_average,
    overall_compliance,
    recent_days,
    streak,
    to_percent,
    trend,
    week_bounds,
    weekly_average,
    weekly_history,
)
from .cache import ComplianceCache
from .calendar_view import build_calendar, trailing_window
from .config import Config
from .models import ComplianceKey, ComplianceRecord, parse_day
from .reconciler import ComplianceReconciler
from .store import ComplianceStore, PlanProvider

logger = logging.getLogger(__name__)


class ComplianceHistory:
    def __init__(
        self,
        store: ComplianceStore,
        plans: PlanProvider,
        *,
        reconciler: ComplianceReconciler | None = None,
        cache: ComplianceCache | None = None,
        config: Config | None = None,
    ) -> None:
        self.store = store
        self.plans = plans
        self.reconciler = reconciler or ComplianceReconciler(store)
        self.cache = cache
        self.config = config or Config()

    async def load_history(self, client_id: str, plan_id: str) -> list[ComplianceRecord]:
        """Canonical records for one client/plan, ascending by date."""
        key = ComplianceKey.history(client_id, plan_id)
        if self.cache is not None:
            hit, cached = self.cache.lookup(key)
            if hit:
                return list(cached)
        records = await self.reconciler.reconcile_history(client_id, plan_id)
        if self.cache is not None:
            self.cache.put(key, tuple(records))
        return records

    async def load_day(
        self, client_id: str, plan_id: str, date: dt.date | str
    ) -> ComplianceRecord | None:
        key = ComplianceKey(client_id, plan_id, parse_day(date))
        if self.cache is not None:
            hit, cached = self.cache.lookup(key)
            if hit:
                return cached
        record = await self.reconciler.reconcile_key(key)
        if self.cache is not None:
            self.cache.put(key, record)
        return record

    async def overview(
        self, client_id: str, plan_id: str, today: dt.date | str | None = None
    ) -> dict[str, Any]:
        """Everything the adherence dashboard renders, from one reconciled snapshot."""
        day = parse_day(today) if today is not None else dt.date.today()
        plan = await self.plans.get(plan_id)
        if plan is None:
            logger.warning("Plan %s not found; overview is empty", plan_id)
            item_names: list[str] = []
        else:
            item_names = plan.item_names

        records = await self.load_history(client_id, plan_id)
        today_record = next((r for r in records if r.date == day), None)
        today_ratio = daily_ratio(today_record, item_names) if today_record else None

        week_start, week_end = week_bounds(day, self.config.week_starts_on)
        month_start, month_end = month_bounds(day)
        weeks = weekly_history(
            records,
            item_names,
            day,
            weeks=max(self.config.history_weeks, 2),
            week_starts_on=self.config.week_starts_on,
        )
        this_week_pct = weeks[-1]["average_pct"]
        last_week_pct = weeks[-2]["average_pct"]
        cal_start, cal_end = trailing_window(day, self.config.calendar_days)

        return {
            "client_id": client_id,
            "plan_id": plan_id,
            "date": day.isoformat(),
            "plan_found": plan is not None,
            "total_items": len(item_names),
            "today": {
                "items_completed": sorted(today_record.items_completed) if today_record else [],
                "ratio": today_ratio or 0.0,
                "percent": to_percent(today_ratio or 0.0),
                "bucket": classify_bucket(today_ratio),
            },
            "streak_days": streak(records, item_names, day),
            "weekly_average_pct": to_percent(weekly_average(records, week_start, week_end, item_names)),
            # Month-to-date, the way the client dashboard shows it.
            "monthly_average_pct": to_percent(
                monthly_average(records, month_start, min(day, month_end), item_names)
            ),
            "overall_compliance_pct": to_percent(overall_compliance(records, item_names)),
            "stats": compliance_stats(records, item_names),
            "weekly_history": weeks,
            "trend": {
                "delta_pct": this_week_pct - last_week_pct,
                "label": trend(this_week_pct, last_week_pct),
            },
            "calendar": [
                entry.model_dump()
                for entry in build_calendar(cal_start, cal_end, records, item_names)
            ],
            "recent_days": recent_days(records, item_names),
        }
