"""Error taxonomy for the workflow core.

Authorisation denials are normally reported as booleans or decisions;
AuthorizationDenied is only raised by the service facade when a caller
explicitly asks it to perform a denied action.
"""

from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow-core errors."""


class AuthorizationDenied(WorkflowError):
    """The acting role/unit may not perform the requested action."""


class InvalidTransition(WorkflowError):
    """The action is not defined from the request's current status."""


class UnknownRoleError(WorkflowError, ValueError):
    """A role value could not be recognised (strict mode only)."""

    def __init__(self, role: object) -> None:
        super().__init__(f"Unknown role: {role!r}")
        self.role = role


class TransientRemoteFailure(WorkflowError):
    """A remote call failed; may succeed if retried."""

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


class PersistenceFailure(WorkflowError):
    """A durable key-value read or write failed."""


class StorageQuotaExceeded(PersistenceFailure):
    """The key-value store is full."""
