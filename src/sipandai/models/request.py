"""Service request models: the cases that move through approval.

A request belongs to exactly one organisational unit. Its status is
only ever changed by the workflow engine (via the service layer); no
other code writes `status` directly.

Lifecycle:
    DRAFT → SUBMITTED → UNDER_REVIEW_UNIT (optional)
    SUBMITTED → APPROVED_BY_UNIT → UNDER_REVIEW_CENTRAL (optional)
              → APPROVED_FINAL
    any reviewable state → RETURNED_TO_USER / RETURNED_TO_UNIT / REJECTED
    RETURNED_* → SUBMITTED (resubmission)

Terminal: APPROVED_FINAL, REJECTED.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


class RequestCategory(str, enum.Enum):
    """Kinds of administrative service handled by the portal."""
    LEAVE = "leave"
    PROMOTION = "promotion"
    TRANSFER = "transfer"
    PENSION = "pension"
    OTHER = "other"


class RequestStatus(str, enum.Enum):
    """Lifecycle states of a service request."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW_UNIT = "under_review_unit"
    RETURNED_TO_USER = "returned_to_user"
    APPROVED_BY_UNIT = "approved_by_unit"
    UNDER_REVIEW_CENTRAL = "under_review_central"
    RETURNED_TO_UNIT = "returned_to_unit"
    APPROVED_FINAL = "approved_final"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_returned(self) -> bool:
        return self in RETURNED_STATUSES


TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED_FINAL,
    RequestStatus.REJECTED,
})

RETURNED_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.RETURNED_TO_USER,
    RequestStatus.RETURNED_TO_UNIT,
})

# Waiting on the unit admin of the owning unit.
UNIT_STAGE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.SUBMITTED,
    RequestStatus.UNDER_REVIEW_UNIT,
})

# Approved at unit level, waiting on the central admin.
CENTRAL_STAGE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED_BY_UNIT,
    RequestStatus.UNDER_REVIEW_CENTRAL,
})


@dataclass
class ServiceRequest:
    """A single service case.

    `payload` is free-form form data (leave dates, target unit for a
    transfer, and so on) and is never interpreted by the workflow core.
    """
    request_id: str
    category: RequestCategory
    unit_id: Optional[int]
    status: RequestStatus = RequestStatus.DRAFT
    requester_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None

    def with_status(
        self,
        status: RequestStatus,
        now: Optional[datetime] = None,
    ) -> ServiceRequest:
        """Return a deep copy carrying the new status and a fresh timestamp."""
        clone = copy.deepcopy(self)
        clone.status = status
        clone.updated_utc = now or datetime.now(timezone.utc)
        return clone

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "category": self.category.value,
            "unit_id": self.unit_id,
            "status": self.status.value,
            "requester_id": self.requester_id,
            "payload": copy.deepcopy(self.payload),
            "created_utc": _format_ts(self.created_utc),
            "updated_utc": _format_ts(self.updated_utc),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceRequest:
        return cls(
            request_id=data["request_id"],
            category=RequestCategory(data["category"]),
            unit_id=data.get("unit_id"),
            status=RequestStatus(data.get("status", RequestStatus.DRAFT.value)),
            requester_id=data.get("requester_id", ""),
            payload=copy.deepcopy(data.get("payload", {})),
            created_utc=_parse_ts(data.get("created_utc")),
            updated_utc=_parse_ts(data.get("updated_utc")),
        )


def _format_ts(ts: Optional[datetime]) -> Optional[str]:
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ") if ts else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(
        tzinfo=timezone.utc,
    )
