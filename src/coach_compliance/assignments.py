"""Plan assignment lifecycle.

``template -> assigned(client) -> unassigned | deleted``

Leaving ``assigned`` deletes the client's whole compliance history for that
plan. A failed cascade raises ``StorageError`` and leaves the assignment in
``assigned``, so reusing the plan id can never inherit orphaned history.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, model_validator

from .errors import InvalidTransition
from .metrics import record_cascade_delete
from .mutator import ComplianceMutator

logger = logging.getLogger(__name__)

AssignmentState = Literal["template", "assigned", "unassigned", "deleted"]


class PlanAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_id: str
    state: AssignmentState = "template"
    client_id: str | None = None

    @model_validator(mode="after")
    def client_matches_state(self) -> "PlanAssignment":
        if self.state == "assigned" and not self.client_id:
            raise ValueError("an assigned plan needs a client_id")
        if self.state == "template" and self.client_id:
            raise ValueError("a template plan has no client_id")
        return self


class PlanAssignments:
    def __init__(self, mutator: ComplianceMutator) -> None:
        self.mutator = mutator

    def assign(self, assignment: PlanAssignment, client_id: str) -> PlanAssignment:
        if assignment.state != "template":
            raise InvalidTransition("plan_assignment", assignment.state, "assign")
        logger.info("Assigned plan %s to client %s", assignment.plan_id, client_id)
        return assignment.model_copy(update={"state": "assigned", "client_id": client_id})

    async def _leave_assigned(
        self, assignment: PlanAssignment, target: AssignmentState
    ) -> PlanAssignment:
        deleted = await self.mutator.delete_history(assignment.client_id, assignment.plan_id)
        record_cascade_delete(deleted)
        logger.info(
            "Plan %s %s for client %s; cascaded %d compliance record(s)",
            assignment.plan_id,
            target,
            assignment.client_id,
            deleted,
        )
        return assignment.model_copy(update={"state": target})

    async def unassign(self, assignment: PlanAssignment) -> PlanAssignment:
        if assignment.state != "assigned":
            raise InvalidTransition("plan_assignment", assignment.state, "unassign")
        return await self._leave_assigned(assignment, "unassigned")

    async def delete(self, assignment: PlanAssignment) -> PlanAssignment:
        if assignment.state == "template":
            return assignment.model_copy(update={"state": "deleted"})
        if assignment.state != "assigned":
            raise InvalidTransition("plan_assignment", assignment.state, "delete")
        return await self._leave_assigned(assignment, "deleted")
