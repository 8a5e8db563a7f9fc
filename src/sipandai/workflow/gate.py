"""Role gate: "does this actor hold the required role?"

One predicate, two modes:
- check(): non-blocking, returns a boolean (conditional rendering).
- require(): blocking, redirects through the Navigator collaborator
  and logs a warning when access is denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Optional, Protocol, Union

from sipandai.logging_config import get_logger
from sipandai.models.role import Role, Session

logger = get_logger(__name__)

RequiredRole = Union[Role, str, Collection[Union[Role, str]]]


class Navigator(Protocol):
    """Routing collaborator used by the blocking guard."""

    def navigate(self, path: str, replace: bool = False) -> None:
        ...


def has_required_role(
    user_role: Union[Role, str, None],
    required_role: RequiredRole,
) -> bool:
    """Check a role against a requirement.

    A single required role uses hierarchical "at least" semantics.
    A collection of roles is an exact allow-set, independent of rank.
    """
    role = Role.parse(user_role)
    if role is None:
        return False

    if isinstance(required_role, (Role, str)):
        required = Role.parse(required_role)
        if required is None:
            return False
        return role.at_least(required)

    allowed = {Role.parse(r) for r in required_role}
    return role in allowed


def describe_requirement(required_role: RequiredRole) -> str:
    if isinstance(required_role, (Role, str)):
        return str(getattr(required_role, "value", required_role))
    return " or ".join(str(getattr(r, "value", r)) for r in required_role)


@dataclass(frozen=True)
class GuardResult:
    """Outcome of a role guard check."""
    has_access: bool
    role: Optional[Role] = None
    redirected_to: Optional[str] = None


class RoleGuard:
    """Blocking role guard.

    Usage:
        guard = RoleGuard(navigator, fallback_path="/dashboard", auth_path="/auth")
        result = guard.require(session, Role.UNIT_ADMIN)
        if not result.has_access:
            return  # navigator has already been told where to go
    """

    def __init__(
        self,
        navigator: Navigator,
        fallback_path: str = "/dashboard",
        auth_path: str = "/auth",
    ) -> None:
        self._navigator = navigator
        self._fallback_path = fallback_path
        self._auth_path = auth_path

    def check(self, session: Optional[Session], required_role: RequiredRole) -> bool:
        if session is None:
            return False
        return has_required_role(session.role, required_role)

    def require(
        self,
        session: Optional[Session],
        required_role: RequiredRole,
        redirect_to: Optional[str] = None,
        show_error: bool = True,
    ) -> GuardResult:
        """Check access and redirect (replacing history) on failure."""
        if session is None:
            self._navigator.navigate(self._auth_path, replace=True)
            return GuardResult(has_access=False, redirected_to=self._auth_path)

        role = Role.parse(session.role)
        if has_required_role(role, required_role):
            return GuardResult(has_access=True, role=role)

        target = redirect_to or self._fallback_path
        if show_error:
            logger.warning(
                "access_denied",
                required_role=describe_requirement(required_role),
                user_role=role.value if role else str(session.role),
                redirect_to=target,
            )
        self._navigator.navigate(target, replace=True)
        return GuardResult(has_access=False, role=role, redirected_to=target)
