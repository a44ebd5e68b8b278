"""Caller-owned read cache for compliance lookups.

There is no module-level instance: whoever renders a view owns a cache and
hands it to the mutator, which invalidates the affected keys after every
successful write.
"""

from __future__ import annotations

import logging
from typing import Any

from .models import ComplianceKey

logger = logging.getLogger(__name__)

_MISSING = object()


class ComplianceCache:
    def __init__(self) -> None:
        self._entries: dict[ComplianceKey, Any] = {}

    def __contains__(self, key: ComplianceKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: ComplianceKey, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def put(self, key: ComplianceKey, value: Any) -> None:
        self._entries[key] = value

    def lookup(self, key: ComplianceKey) -> tuple[bool, Any]:
        """``(hit, value)`` so a cached ``None`` is distinguishable from a miss."""
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            return False, None
        return True, value

    def invalidate(self, key: ComplianceKey) -> bool:
        removed = self._entries.pop(key, _MISSING) is not _MISSING
        if removed:
            logger.debug("Invalidated cache key %s", key)
        return removed

    def invalidate_history(self, client_id: str, plan_id: str) -> int:
        """Drop the history entry and every day entry for one client/plan pair."""
        stale = [
            key
            for key in self._entries
            if key.client_id == client_id and key.plan_id == plan_id
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
