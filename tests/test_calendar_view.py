from __future__ import annotations

import datetime as dt

from conftest import TODAY, make_record
from coach_compliance.calendar_view import build_calendar, trailing_window

PLAN = ["A", "B", "C"]


def test_one_entry_per_day_ascending():
    start = TODAY - dt.timedelta(days=6)
    calendar = build_calendar(start, TODAY, [], PLAN)
    assert [day.date for day in calendar] == [start + dt.timedelta(days=i) for i in range(7)]
    assert all(day.bucket == "none" for day in calendar)
    assert all(day.total_count == 3 and day.completed_count == 0 for day in calendar)


def test_buckets_and_counts():
    records = [
        make_record("r1", {"A", "B", "C"}, day=TODAY),
        make_record("r2", {"A", "B"}, day=TODAY - dt.timedelta(days=1)),
        make_record("r3", {"A", "Retired"}, day=TODAY - dt.timedelta(days=2)),
        make_record("r4", set(), day=TODAY - dt.timedelta(days=3)),
    ]
    calendar = build_calendar(TODAY - dt.timedelta(days=4), TODAY, records, PLAN)
    assert [(d.bucket, d.completed_count) for d in calendar] == [
        ("none", 0),
        ("poor", 0),
        ("poor", 1),
        ("fair", 2),
        ("perfect", 3),
    ]


def test_duplicates_render_once():
    records = [make_record("r1", {"A"}), make_record("r2", {"B", "C"})]
    calendar = build_calendar(TODAY, TODAY, records, PLAN)
    assert len(calendar) == 1
    assert calendar[0].bucket == "perfect"


def test_reversed_range_is_empty():
    assert build_calendar(TODAY, TODAY - dt.timedelta(days=1), [], PLAN) == []


def test_serializes_with_iso_dates():
    entry = build_calendar(TODAY, TODAY, [make_record("r1", {"A"})], PLAN)[0]
    assert entry.model_dump() == {
        "date": "2026-02-11",
        "bucket": "poor",
        "completed_count": 1,
        "total_count": 3,
    }


def test_trailing_window_covers_thirty_days():
    start, end = trailing_window(TODAY)
    assert end == TODAY
    assert (end - start).days == 29
    assert len(build_calendar(start, end, [], PLAN)) == 30


def test_accepts_iso_string_bounds():
    records = [make_record("r1", {"A", "B"}, day=TODAY - dt.timedelta(days=1))]
    from_strings = build_calendar("2026-02-09", "2026-02-11", records, PLAN)
    assert from_strings == build_calendar(TODAY - dt.timedelta(days=2), TODAY, records, PLAN)
    assert [d.bucket for d in from_strings] == ["none", "fair", "none"]


def test_trailing_window_accepts_iso_string():
    assert trailing_window("2026-02-11", days=7) == (dt.date(2026, 2, 5), TODAY)
