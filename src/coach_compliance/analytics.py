"""Adherence analytics over a snapshot of compliance records.

Everything here is pure and synchronous. Missing or partial data degrades to
0 / empty results, never to an exception.

Two aggregation policies coexist on purpose:

- ``overall_compliance`` averages over every record present
- ``weekly_average`` / ``monthly_average`` average only over days whose ratio
  is above zero, so empty days and zero days drop out of the denominator

The second one reads higher than the first for the same history.
"""

from __future__ import annotations

import datetime as dt
import math
from collections.abc import Iterable
from typing import Any, Literal

from .models import ComplianceRecord, parse_day

Bucket = Literal["perfect", "good", "fair", "poor", "none"]
Trend = Literal[
    "excellent improvement",
    "slight improvement",
    "flat",
    "slight decline",
    "significant decline",
]

_GOOD_THRESHOLD = 0.8
_FAIR_THRESHOLD = 0.5
_TREND_BAND_PCT = 10


def merge_by_day(records: Iterable[ComplianceRecord]) -> dict[dt.date, ComplianceRecord]:
    """Collapse a snapshot to one record per day (union of completions).

    Mirrors what reconciliation would persist, so a stale duplicate still in
    the snapshot never counts twice.
    """
    by_day: dict[dt.date, ComplianceRecord] = {}
    for record in records:
        existing = by_day.get(record.date)
        if existing is None:
            by_day[record.date] = record
        elif not record.items_completed <= existing.items_completed:
            by_day[record.date] = existing.model_copy(
                update={"items_completed": existing.items_completed | record.items_completed}
            )
    return by_day


def _plan_set(plan_item_names: Iterable[str]) -> frozenset[str]:
    return frozenset(plan_item_names)


def completed_count(record: ComplianceRecord | None, plan_item_names: Iterable[str]) -> int:
    if record is None:
        return 0
    return len(record.items_completed & _plan_set(plan_item_names))


def daily_ratio(record: ComplianceRecord | None, plan_item_names: Iterable[str]) -> float:
    """Fraction of the *current* plan completed; names not in the plan are ignored."""
    plan = _plan_set(plan_item_names)
    if not plan or record is None:
        return 0.0
    return len(record.items_completed & plan) / len(plan)


def overall_compliance(records: Iterable[ComplianceRecord], plan_item_names: Iterable[str]) -> float:
    plan = _plan_set(plan_item_names)
    by_day = merge_by_day(records)
    if not by_day:
        return 0.0
    return sum(daily_ratio(r, plan) for r in by_day.values()) / len(by_day)


def _iter_days(start: dt.date, end: dt.date) -> Iterable[dt.date]:
    day = start
    while day <= end:
        yield day
        day += dt.timedelta(days=1)


def _window_ratios(
    records: Iterable[ComplianceRecord],
    start: dt.date,
    end: dt.date,
    plan_item_names: Iterable[str],
) -> list[float]:
    plan = _plan_set(plan_item_names)
    by_day = merge_by_day(records)
    ratios = []
    for day in _iter_days(start, end):
        ratio = daily_ratio(by_day.get(day), plan)
        if ratio > 0:
            ratios.append(ratio)
    return ratios


def window_average(
    records: Iterable[ComplianceRecord],
    start: dt.date | str,
    end: dt.date | str,
    plan_item_names: Iterable[str],
) -> float:
    """Mean ratio over the days in ``[start, end]`` whose ratio is above zero."""
    ratios = _window_ratios(records, parse_day(start), parse_day(end), plan_item_names)
    if not ratios:
        return 0.0
    return sum(ratios) / len(ratios)


def weekly_average(
    records: Iterable[ComplianceRecord],
    week_start: dt.date | str,
    week_end: dt.date | str,
    plan_item_names: Iterable[str],
) -> float:
    return window_average(records, week_start, week_end, plan_item_names)


def monthly_average(
    records: Iterable[ComplianceRecord],
    month_start: dt.date | str,
    month_end: dt.date | str,
    plan_item_names: Iterable[str],
) -> float:
    return window_average(records, month_start, month_end, plan_item_names)


def streak(
    records: Iterable[ComplianceRecord],
    plan_item_names: Iterable[str],
    today: dt.date | str | None = None,
) -> int:
    """Consecutive days ending ``today`` with a ratio above zero.

    The first missing or zero day ends the walk; nothing before a gap counts.
    """
    plan = _plan_set(plan_item_names)
    by_day = merge_by_day(records)
    day = parse_day(today) if today is not None else dt.date.today()
    count = 0
    while daily_ratio(by_day.get(day), plan) > 0:
        count += 1
        day -= dt.timedelta(days=1)
    return count


def classify_bucket(ratio: float | None) -> Bucket:
    """``None`` means the day has no record at all."""
    if ratio is None:
        return "none"
    if ratio >= 1.0:
        return "perfect"
    if ratio >= _GOOD_THRESHOLD:
        return "good"
    if ratio >= _FAIR_THRESHOLD:
        return "fair"
    return "poor"


def trend(this_week_pct: float, last_week_pct: float) -> Trend:
    """Classify the week-over-week change; inputs are percentages (0-100)."""
    delta = this_week_pct - last_week_pct
    if delta > _TREND_BAND_PCT:
        return "excellent improvement"
    if delta > 0:
        return "slight improvement"
    if delta == 0:
        return "flat"
    if delta >= -_TREND_BAND_PCT:
        return "slight decline"
    return "significant decline"


def to_percent(ratio: float) -> int:
    """Round-half-up integer percentage."""
    return int(math.floor(ratio * 100 + 0.5))


def week_bounds(day: dt.date | str, week_starts_on: int = 0) -> tuple[dt.date, dt.date]:
    """The 7-day week containing ``day``; ``week_starts_on`` is 0=Monday .. 6=Sunday."""
    day = parse_day(day)
    offset = (day.weekday() - week_starts_on) % 7
    start = day - dt.timedelta(days=offset)
    return start, start + dt.timedelta(days=6)


def month_bounds(day: dt.date | str) -> tuple[dt.date, dt.date]:
    start = parse_day(day).replace(day=1)
    if start.month == 12:
        next_month = start.replace(year=start.year + 1, month=1)
    else:
        next_month = start.replace(month=start.month + 1)
    return start, next_month - dt.timedelta(days=1)


def compliance_stats(
    records: Iterable[ComplianceRecord], plan_item_names: Iterable[str]
) -> dict[str, Any]:
    """Day counts per quality band plus the overall percentage."""
    plan = _plan_set(plan_item_names)
    by_day = merge_by_day(records)
    stats = {
        "total_days": len(by_day),
        "perfect_days": 0,
        "good_days": 0,
        "poor_days": 0,
        "overall_pct": 0,
    }
    if not plan or not by_day:
        stats["poor_days"] = len(by_day)
        return stats

    total = 0.0
    for record in by_day.values():
        ratio = daily_ratio(record, plan)
        total += ratio
        if ratio >= 1.0:
            stats["perfect_days"] += 1
        if ratio >= _GOOD_THRESHOLD:
            stats["good_days"] += 1
        if ratio < _FAIR_THRESHOLD:
            stats["poor_days"] += 1
    stats["overall_pct"] = to_percent(total / len(by_day))
    return stats


def _week_label(weeks_ago: int) -> str:
    if weeks_ago == 0:
        return "This Week"
    return f"{weeks_ago} Week{'s' if weeks_ago > 1 else ''} Ago"


def weekly_history(
    records: Iterable[ComplianceRecord],
    plan_item_names: Iterable[str],
    today: dt.date | str,
    weeks: int = 4,
    week_starts_on: int = 0,
) -> list[dict[str, Any]]:
    """The last ``weeks`` weeks, oldest first, with average and qualifying-day count."""
    today = parse_day(today)
    plan = _plan_set(plan_item_names)
    snapshot = list(merge_by_day(records).values())
    history: list[dict[str, Any]] = []
    for weeks_ago in range(max(weeks, 0) - 1, -1, -1):
        start, end = week_bounds(today - dt.timedelta(days=7 * weeks_ago), week_starts_on)
        ratios = _window_ratios(snapshot, start, end, plan)
        average = sum(ratios) / len(ratios) if ratios else 0.0
        history.append(
            {
                "label": _week_label(weeks_ago),
                "week_start": start.isoformat(),
                "week_end": end.isoformat(),
                "average_pct": to_percent(average),
                "days": len(ratios),
            }
        )
    return history


def recent_days(
    records: Iterable[ComplianceRecord],
    plan_item_names: Iterable[str],
    limit: int = 14,
) -> list[dict[str, Any]]:
    plan = _plan_set(plan_item_names)
    by_day = merge_by_day(records)
    rows: list[dict[str, Any]] = []
    for day in sorted(by_day, reverse=True)[: max(limit, 0)]:
        record = by_day[day]
        percent = to_percent(daily_ratio(record, plan))
        rows.append(
            {
                "date": day.isoformat(),
                "completed": completed_count(record, plan),
                "total": len(plan),
                "percent": percent,
                "complete": bool(plan) and percent == 100,
                "notes": record.notes,
            }
        )
    return rows
