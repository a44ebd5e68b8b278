"""In-memory compliance metrics.

Asyncio is single-threaded, so plain dicts need no locking.
"""

import time

_start_time = time.monotonic()


def _empty() -> dict:
    return {
        "toggles": 0,
        "records_created": 0,
        "reconciliations": 0,
        "duplicates_merged": 0,
        "duplicates_retained": 0,
        "cascade_deletes": 0,
        "storage": {},
    }


_metrics: dict = _empty()


def _storage_stats(operation: str) -> dict:
    return _metrics["storage"].setdefault(operation, {"retries": 0, "errors": 0})


def record_toggle(created: bool) -> None:
    _metrics["toggles"] += 1
    if created:
        _metrics["records_created"] += 1


def record_reconciliation(merged: int, retained: int) -> None:
    """Record one multi-candidate merge: duplicates deleted vs. left behind."""
    _metrics["reconciliations"] += 1
    _metrics["duplicates_merged"] += merged
    _metrics["duplicates_retained"] += retained


def record_cascade_delete(count: int) -> None:
    _metrics["cascade_deletes"] += count


def record_storage_retry(operation: str) -> None:
    _storage_stats(operation)["retries"] += 1


def record_storage_error(operation: str) -> None:
    _storage_stats(operation)["errors"] += 1


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "toggles": _metrics["toggles"],
        "records_created": _metrics["records_created"],
        "reconciliations": _metrics["reconciliations"],
        "duplicates_merged": _metrics["duplicates_merged"],
        "duplicates_retained": _metrics["duplicates_retained"],
        "cascade_deletes": _metrics["cascade_deletes"],
        "storage": {
            name: dict(stats)
            for name, stats in _metrics["storage"].items()
        },
    }


def reset_metrics() -> None:
    global _metrics
    _metrics = _empty()
