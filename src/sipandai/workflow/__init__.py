"""Workflow module: approval engine, unit partition and role gate."""

from sipandai.workflow.engine import (
    ApprovalWorkflowEngine,
    TransitionDecision,
    WorkflowAction,
)
from sipandai.workflow.gate import GuardResult, Navigator, RoleGuard, has_required_role
from sipandai.workflow.units import UnitPartition

__all__ = [
    "ApprovalWorkflowEngine",
    "TransitionDecision",
    "WorkflowAction",
    "GuardResult",
    "Navigator",
    "RoleGuard",
    "has_required_role",
    "UnitPartition",
]
