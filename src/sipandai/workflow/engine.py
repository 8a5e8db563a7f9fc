"""Approval workflow engine: computes next statuses, certificate
authority and the legality of workflow actions.

Pure computation: no side effects. The service layer handles
persistence, retries, optimistic updates and audit events.

Workflow invariants:
- Central admin is the ultimate approver for every unit.
- Requests of central-approval units need two stages: unit admin
  (→ approved_by_unit), then central admin (→ approved_final).
- Requests of unit-only units are finalised by their unit admin.
- A unit admin only acts on requests of their own unit.
- Nothing leaves a terminal status.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Union

from sipandai.errors import UnknownRoleError
from sipandai.models.request import (
    CENTRAL_STAGE_STATUSES,
    UNIT_STAGE_STATUSES,
    RequestStatus,
    ServiceRequest,
)
from sipandai.models.role import Role, Session
from sipandai.workflow.units import UnitPartition

RoleLike = Union[Role, str, None]


class WorkflowAction(str, enum.Enum):
    """Actions an actor can take on a request."""
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    RETURN = "return"
    REJECT = "reject"
    RESUBMIT = "resubmit"


@dataclass(frozen=True)
class TransitionDecision:
    """Result of evaluating a workflow action against a request.

    status_conflict distinguishes "not legal from this status" from
    "this actor lacks the authority".
    """
    allowed: bool
    action: WorkflowAction
    from_status: RequestStatus
    to_status: Optional[RequestStatus] = None
    errors: list[str] = field(default_factory=list)
    status_conflict: bool = False


class ApprovalWorkflowEngine:
    """Decides which status a request moves to, and who may move it.

    With strict_roles=False (default) an unrecognised role is treated as
    the least-privileged role. With strict_roles=True it raises
    UnknownRoleError.
    """

    def __init__(self, partition: UnitPartition, strict_roles: bool = False) -> None:
        self._partition = partition
        self._strict_roles = strict_roles

    @property
    def partition(self) -> UnitPartition:
        return self._partition

    # ------------------------------------------------------------------
    # Unit category predicates
    # ------------------------------------------------------------------

    def requires_central_approval(self, unit_id: Optional[int]) -> bool:
        """True iff the unit is in the central-approval set."""
        if not unit_id:
            return False
        return unit_id in self._partition.central_units

    def can_unit_admin_final_approve(self, unit_id: Optional[int]) -> bool:
        """True iff the unit admin is the terminal approver for this unit."""
        if not unit_id:
            return True
        return unit_id not in self._partition.central_units

    # ------------------------------------------------------------------
    # Next status
    # ------------------------------------------------------------------

    def compute_next_status(
        self,
        unit_id: Optional[int],
        acting_role: RoleLike,
    ) -> RequestStatus:
        """Status a request moves to when the acting role approves it."""
        role = self._resolve_role(acting_role)

        if role == Role.CENTRAL_ADMIN:
            return RequestStatus.APPROVED_FINAL

        if role == Role.UNIT_ADMIN:
            if self.requires_central_approval(unit_id):
                return RequestStatus.APPROVED_BY_UNIT
            return RequestStatus.APPROVED_FINAL

        return RequestStatus.SUBMITTED

    # ------------------------------------------------------------------
    # Certificate authority
    # ------------------------------------------------------------------

    def can_generate_certificate(
        self,
        unit_id: Optional[int],
        status: Union[RequestStatus, str],
        role: RoleLike,
        acting_unit_id: Optional[int] = None,
    ) -> bool:
        """Whether the actor may issue the certificate/letter for a request.

        Only finally-approved requests qualify. Central admin certifies
        central-approval units; a unit admin certifies unit-only requests
        of their own unit. Any server-side mirror must apply this same
        check.
        """
        if _coerce_status(status) != RequestStatus.APPROVED_FINAL:
            return False

        resolved = self._resolve_role(role)
        if resolved == Role.CENTRAL_ADMIN:
            return self.requires_central_approval(unit_id)
        if resolved == Role.UNIT_ADMIN:
            return (
                self.can_unit_admin_final_approve(unit_id)
                and unit_id == acting_unit_id
            )
        return False

    # ------------------------------------------------------------------
    # Action evaluation
    # ------------------------------------------------------------------

    def evaluate_action(
        self,
        request: ServiceRequest,
        action: WorkflowAction,
        session: Optional[Session],
    ) -> TransitionDecision:
        """Check whether `session` may perform `action` on `request`.

        Returns a decision carrying the target status when allowed, or
        the reasons for denial.
        """
        current = request.status

        def deny(reason: str, status_conflict: bool = False) -> TransitionDecision:
            return TransitionDecision(
                allowed=False,
                action=action,
                from_status=current,
                errors=[reason],
                status_conflict=status_conflict,
            )

        def conflict(reason: str) -> TransitionDecision:
            return deny(reason, status_conflict=True)

        def allow(target: RequestStatus) -> TransitionDecision:
            return TransitionDecision(
                allowed=True, action=action, from_status=current, to_status=target,
            )

        if session is None:
            return deny("No authenticated session")
        if current.is_terminal:
            return conflict(f"Request is in terminal status {current.value}")

        role = self._resolve_role(session.role)
        own_unit = session.unit_id is not None and session.unit_id == request.unit_id

        if action == WorkflowAction.SUBMIT:
            if current != RequestStatus.DRAFT:
                return conflict(f"Cannot submit from {current.value}")
            if not own_unit:
                return deny("Only members of the owning unit can submit a draft")
            if request.requester_id and session.user_id != request.requester_id:
                return deny("Only the requester can submit a draft")
            return allow(RequestStatus.SUBMITTED)

        if action == WorkflowAction.START_REVIEW:
            if current == RequestStatus.SUBMITTED:
                if role == Role.UNIT_ADMIN and own_unit:
                    return allow(RequestStatus.UNDER_REVIEW_UNIT)
                return deny("Only the unit admin of the owning unit can start unit review")
            if current == RequestStatus.APPROVED_BY_UNIT:
                if role == Role.CENTRAL_ADMIN:
                    return allow(RequestStatus.UNDER_REVIEW_CENTRAL)
                return deny("Only the central admin can start central review")
            return conflict(f"Cannot start review from {current.value}")

        if action == WorkflowAction.APPROVE:
            if role == Role.CENTRAL_ADMIN:
                if current in UNIT_STAGE_STATUSES or current in CENTRAL_STAGE_STATUSES:
                    return allow(self.compute_next_status(request.unit_id, role))
                return conflict(f"Cannot approve from {current.value}")
            if role == Role.UNIT_ADMIN:
                if not own_unit:
                    return deny("Unit admin can only approve requests of their own unit")
                if current in UNIT_STAGE_STATUSES:
                    return allow(self.compute_next_status(request.unit_id, role))
                return conflict(f"Unit admin cannot approve from {current.value}")
            return deny(f"Role {role.value} has no approval authority")

        if action == WorkflowAction.RETURN:
            if role == Role.CENTRAL_ADMIN:
                if current in CENTRAL_STAGE_STATUSES:
                    return allow(RequestStatus.RETURNED_TO_UNIT)
                if current in UNIT_STAGE_STATUSES:
                    return allow(RequestStatus.RETURNED_TO_USER)
                return conflict(f"Cannot return from {current.value}")
            if role == Role.UNIT_ADMIN:
                if not own_unit:
                    return deny("Unit admin can only return requests of their own unit")
                if current in UNIT_STAGE_STATUSES:
                    return allow(RequestStatus.RETURNED_TO_USER)
                return conflict(f"Unit admin cannot return from {current.value}")
            return deny(f"Role {role.value} cannot return requests")

        if action == WorkflowAction.REJECT:
            if current == RequestStatus.DRAFT:
                return conflict("Cannot reject a draft")
            if role == Role.CENTRAL_ADMIN:
                return allow(RequestStatus.REJECTED)
            if role == Role.UNIT_ADMIN and own_unit:
                return allow(RequestStatus.REJECTED)
            return deny(f"Role {role.value} cannot reject this request")

        if action == WorkflowAction.RESUBMIT:
            if current == RequestStatus.RETURNED_TO_USER:
                if not own_unit:
                    return deny("Only members of the owning unit can resubmit")
                return allow(RequestStatus.SUBMITTED)
            if current == RequestStatus.RETURNED_TO_UNIT:
                if role == Role.UNIT_ADMIN and own_unit:
                    return allow(RequestStatus.SUBMITTED)
                return deny("Only the unit admin can resubmit a request returned to the unit")
            return conflict(f"Cannot resubmit from {current.value}")

        return conflict(f"Unknown action: {action}")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _resolve_role(self, role: RoleLike) -> Role:
        parsed = Role.parse(role)
        if parsed is not None:
            return parsed
        if self._strict_roles:
            raise UnknownRoleError(role)
        return Role.UNIT_MEMBER


def _coerce_status(status: Union[RequestStatus, str]) -> Optional[RequestStatus]:
    if isinstance(status, RequestStatus):
        return status
    try:
        return RequestStatus(status)
    except ValueError:
        return None
