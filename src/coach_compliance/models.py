"""Typed data model for plans and per-day compliance records.

Calendar days are plain ``YYYY-MM-DD`` values with no time-of-day and no
timezone. Audit timestamps (``created_at``/``updated_at``) are carried for
storage only and never feed the analytics.
"""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Any, TypedDict

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator


def parse_day(raw: Any) -> dt.date:
    """Strict calendar-day parsing: ``date`` objects or ``YYYY-MM-DD`` strings only."""
    if isinstance(raw, dt.datetime):
        raise ValueError("expected a calendar day, got a timestamp")
    if isinstance(raw, dt.date):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"expected YYYY-MM-DD, got {type(raw).__name__}")
    text = raw.strip()
    if len(text) != 10:
        raise ValueError(f"expected YYYY-MM-DD, got {raw!r}")
    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        raise ValueError(f"expected YYYY-MM-DD, got {raw!r}") from None


def normalize_item_name(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    return text or None


def _normalize_item_set(raw: Any) -> frozenset[str]:
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raise ValueError("items_completed must be a collection of names, not a string")
    names = set()
    for value in raw:
        name = normalize_item_name(value)
        if name:
            names.add(name)
    return frozenset(names)


def new_record_id() -> str:
    return str(uuid.uuid4())


class PlanItem(BaseModel):
    """One prescribed protocol item (a supplement, or a meal slot).

    ``id`` is optional and carried through untouched; matching against
    completions is by ``name``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    dosage: str | float | None = None
    timing: str | None = None
    id: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    items: tuple[PlanItem, ...] = ()

    @property
    def item_names(self) -> list[str]:
        """Ordered item names with duplicates dropped."""
        seen: set[str] = set()
        names: list[str] = []
        for item in self.items:
            if item.name not in seen:
                seen.add(item.name)
                names.append(item.name)
        return names


class ComplianceDraft(BaseModel):
    """A compliance record that has not been persisted yet."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    plan_id: str
    date: dt.date
    items_completed: frozenset[str] = frozenset()
    notes: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def date_is_calendar_day(cls, v: Any) -> dt.date:
        return parse_day(v)

    @field_validator("items_completed", mode="before")
    @classmethod
    def items_are_names(cls, v: Any) -> frozenset[str]:
        return _normalize_item_set(v)

    @field_serializer("items_completed")
    def _sorted_items(self, v: frozenset[str]) -> list[str]:
        return sorted(v)

    @field_serializer("date")
    def _iso_day(self, v: dt.date) -> str:
        return v.isoformat()

    @property
    def key(self) -> ComplianceKey:
        return ComplianceKey(self.client_id, self.plan_id, self.date)


class ComplianceRecord(ComplianceDraft):
    """What a client completed for one plan on one calendar day."""

    id: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class RecordPatch(TypedDict, total=False):
    items_completed: frozenset[str]
    notes: str | None


@dataclass(frozen=True)
class ComplianceKey:
    """Identity of a canonical record; ``date=None`` addresses a whole history."""

    client_id: str
    plan_id: str
    date: dt.date | None = None

    @classmethod
    def history(cls, client_id: str, plan_id: str) -> ComplianceKey:
        return cls(client_id, plan_id, None)

    @property
    def is_history(self) -> bool:
        return self.date is None

    def __str__(self) -> str:
        day = self.date.isoformat() if self.date else "*"
        return f"{self.client_id}/{self.plan_id}/{day}"


class CalendarDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    bucket: str
    completed_count: int
    total_count: int

    @field_serializer("date")
    def _iso_day(self, v: dt.date) -> str:
        return v.isoformat()
