"""Compliance tracking and adherence analytics for coaching plans."""

from .assignments import PlanAssignment, PlanAssignments
from .cache import ComplianceCache
from .config import Config
from .errors import (
    ComplianceError,
    InvalidTransition,
    ReconciliationPartialFailure,
    StorageError,
    StorageTimeout,
    ValidationWarning,
)
from .history import ComplianceHistory
from .models import CalendarDay, ComplianceDraft, ComplianceKey, ComplianceRecord, Plan, PlanItem
from .mutator import ComplianceMutator
from .optimistic import OptimisticToggle
from .reconciler import ComplianceReconciler
from .runtime import ComplianceServices, open_compliance
from .store import (
    ComplianceStore,
    GuardedComplianceStore,
    GuardedPlanProvider,
    InMemoryComplianceStore,
    InMemoryPlanProvider,
    PlanProvider,
)

__all__ = [
    "CalendarDay",
    "ComplianceCache",
    "ComplianceDraft",
    "ComplianceError",
    "ComplianceHistory",
    "ComplianceKey",
    "ComplianceMutator",
    "ComplianceReconciler",
    "ComplianceRecord",
    "ComplianceServices",
    "ComplianceStore",
    "Config",
    "GuardedComplianceStore",
    "GuardedPlanProvider",
    "InMemoryComplianceStore",
    "InMemoryPlanProvider",
    "InvalidTransition",
    "OptimisticToggle",
    "Plan",
    "PlanAssignment",
    "PlanAssignments",
    "PlanItem",
    "PlanProvider",
    "ReconciliationPartialFailure",
    "StorageError",
    "StorageTimeout",
    "ValidationWarning",
    "open_compliance",
]
