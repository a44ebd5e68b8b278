"""Day-bucket calendar for rendering compliance history."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable

from .analytics import classify_bucket, completed_count, daily_ratio, merge_by_day
from .models import CalendarDay, ComplianceRecord, parse_day


def build_calendar(
    start: dt.date | str,
    end: dt.date | str,
    records: Iterable[ComplianceRecord],
    plan_item_names: Iterable[str],
) -> list[CalendarDay]:
    """One entry per day in ``[start, end]``, ascending. A reversed range is empty."""
    plan = frozenset(plan_item_names)
    by_day = merge_by_day(records)
    days: list[CalendarDay] = []
    day, end = parse_day(start), parse_day(end)
    while day <= end:
        record = by_day.get(day)
        ratio = daily_ratio(record, plan) if record is not None else None
        days.append(
            CalendarDay(
                date=day,
                bucket=classify_bucket(ratio),
                completed_count=completed_count(record, plan),
                total_count=len(plan),
            )
        )
        day += dt.timedelta(days=1)
    return days


def trailing_window(today: dt.date | str, days: int = 30) -> tuple[dt.date, dt.date]:
    """``(start, end)`` of the last ``days`` days including ``today``."""
    today = parse_day(today)
    return today - dt.timedelta(days=max(days, 1) - 1), today
