"""Error taxonomy for compliance tracking.

Store-facing failures propagate to the caller as ``StorageError``. Reconciliation
leftovers and unknown item names are non-fatal: they are logged and carried as
values, never raised out of a mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ComplianceErrorClass = Literal[
    "storage",
    "reconciliation",
    "validation",
    "state",
    "other",
]

ERROR_CLASS_BY_CODE: dict[str, ComplianceErrorClass] = {
    "storage_error": "storage",
    "storage_timeout": "storage",
    "reconciliation_partial_failure": "reconciliation",
    "unknown_item_name": "validation",
    "invalid_transition": "state",
}


class ComplianceError(Exception):
    """Base class for everything raised by this package."""

    code = "other"


class StorageError(ComplianceError):
    """Any failure reaching the compliance store (network, persistence, timeout).

    Safe to retry: every mutation in this package is idempotent per call.
    """

    code = "storage_error"

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class StorageTimeout(StorageError):
    code = "storage_timeout"


class InvalidTransition(ComplianceError, ValueError):
    """A state machine was asked for a transition its current state forbids."""

    code = "invalid_transition"

    def __init__(self, machine: str, current: str, requested: str) -> None:
        super().__init__(f"{machine}: cannot {requested} from state {current!r}")
        self.machine = machine
        self.current = current
        self.requested = requested


@dataclass(frozen=True)
class ReconciliationPartialFailure:
    """Duplicates that survived a merge because their deletion failed.

    The merged canonical record is still valid; the next reconciliation pass
    over the same key retries the deletes.
    """

    canonical_id: str
    retained_ids: tuple[str, ...]
    errors: tuple[str, ...] = field(default_factory=tuple)

    code = "reconciliation_partial_failure"

    @property
    def message(self) -> str:
        return (
            f"kept {len(self.retained_ids)} duplicate(s) of {self.canonical_id} "
            f"after failed delete: {', '.join(self.retained_ids)}"
        )


@dataclass(frozen=True)
class ValidationWarning:
    """An item name that is not part of the current plan.

    Accepted and stored for historical accuracy; ignored by ratio math.
    """

    plan_id: str
    item_name: str

    code = "unknown_item_name"

    @property
    def message(self) -> str:
        return f"item {self.item_name!r} is not in plan {self.plan_id}; stored but not scored"


def check_item_name(
    plan_id: str, item_name: str, plan_item_names: list[str] | None
) -> ValidationWarning | None:
    if plan_item_names is None or item_name in plan_item_names:
        return None
    return ValidationWarning(plan_id=plan_id, item_name=item_name)


def classify_error_code(error_code: str | None) -> ComplianceErrorClass:
    normalized = str(error_code or "").strip().lower()
    if not normalized:
        return "other"
    return ERROR_CLASS_BY_CODE.get(normalized, "other")


def is_fatal_error_code(error_code: str | None) -> bool:
    return classify_error_code(error_code) in {"storage", "state"}


def error_taxonomy() -> dict[str, object]:
    return {
        "schema_version": "compliance_error_taxonomy.v1",
        "classes": ["storage", "reconciliation", "validation", "state", "other"],
        "code_to_class": dict(ERROR_CLASS_BY_CODE),
        "fatal_classes": ["storage", "state"],
    }
