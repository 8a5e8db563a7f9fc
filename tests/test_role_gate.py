"""Tests for role parsing, the role gate predicate and the blocking guard."""

import pytest
from structlog.testing import capture_logs

from sipandai.models.role import Role, Session
from sipandai.workflow.gate import RoleGuard, has_required_role


class RecordingNavigator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []

    def navigate(self, path: str, replace: bool = False) -> None:
        self.calls.append((path, replace))


# ===================================================================
# Role model
# ===================================================================

class TestRole:
    def test_total_order(self) -> None:
        assert Role.UNIT_MEMBER.rank < Role.UNIT_ADMIN.rank < Role.CENTRAL_ADMIN.rank

    def test_parse_canonical_and_legacy(self) -> None:
        assert Role.parse("unit_admin") == Role.UNIT_ADMIN
        assert Role.parse(" Central_Admin ") == Role.CENTRAL_ADMIN
        assert Role.parse("user_unit") == Role.UNIT_MEMBER
        assert Role.parse("admin_unit") == Role.UNIT_ADMIN
        assert Role.parse("admin_pusat") == Role.CENTRAL_ADMIN

    def test_parse_rejects_unknown(self) -> None:
        assert Role.parse("root") is None
        assert Role.parse(None) is None
        assert Role.parse(3) is None


# ===================================================================
# has_required_role
# ===================================================================

class TestHasRequiredRole:
    @pytest.mark.parametrize("user, required, expected", [
        (Role.CENTRAL_ADMIN, Role.UNIT_ADMIN, True),
        (Role.UNIT_ADMIN, Role.UNIT_ADMIN, True),
        (Role.UNIT_MEMBER, Role.UNIT_ADMIN, False),
        (Role.UNIT_ADMIN, Role.CENTRAL_ADMIN, False),
        (Role.UNIT_MEMBER, Role.UNIT_MEMBER, True),
    ])
    def test_hierarchical_single_role(self, user: Role, required: Role, expected: bool) -> None:
        assert has_required_role(user, required) is expected

    def test_allow_set_is_exact_membership(self) -> None:
        # central_admin outranks unit_admin but is not in the set.
        assert has_required_role(Role.CENTRAL_ADMIN, [Role.UNIT_ADMIN]) is False
        assert has_required_role(Role.UNIT_ADMIN, [Role.UNIT_ADMIN, Role.UNIT_MEMBER]) is True
        assert has_required_role("admin_pusat", {"central_admin"}) is True

    def test_missing_user_role(self) -> None:
        assert has_required_role(None, Role.UNIT_MEMBER) is False
        assert has_required_role(None, [Role.UNIT_MEMBER]) is False

    def test_unknown_roles(self) -> None:
        assert has_required_role("root", Role.UNIT_MEMBER) is False
        assert has_required_role(Role.CENTRAL_ADMIN, "root") is False


# ===================================================================
# RoleGuard
# ===================================================================

class TestRoleGuard:
    def test_access_granted_without_navigation(self) -> None:
        nav = RecordingNavigator()
        guard = RoleGuard(nav)
        result = guard.require(Session(Role.CENTRAL_ADMIN), Role.UNIT_ADMIN)
        assert result.has_access is True
        assert result.role == Role.CENTRAL_ADMIN
        assert nav.calls == []

    def test_unauthenticated_goes_to_auth(self) -> None:
        nav = RecordingNavigator()
        guard = RoleGuard(nav, fallback_path="/dashboard", auth_path="/auth")
        result = guard.require(None, Role.UNIT_MEMBER)
        assert result.has_access is False
        assert nav.calls == [("/auth", True)]

    def test_denied_redirects_to_fallback_with_warning(self) -> None:
        nav = RecordingNavigator()
        guard = RoleGuard(nav, fallback_path="/dashboard")
        with capture_logs() as logs:
            result = guard.require(Session(Role.UNIT_MEMBER, 4), [Role.UNIT_ADMIN, Role.CENTRAL_ADMIN])
        assert result.has_access is False
        assert result.redirected_to == "/dashboard"
        assert nav.calls == [("/dashboard", True)]
        assert logs[0]["event"] == "access_denied"
        assert logs[0]["log_level"] == "warning"
        assert logs[0]["required_role"] == "unit_admin or central_admin"

    def test_denied_custom_redirect_silent(self) -> None:
        nav = RecordingNavigator()
        guard = RoleGuard(nav)
        with capture_logs() as logs:
            guard.require(Session(Role.UNIT_MEMBER), Role.CENTRAL_ADMIN, redirect_to="/home", show_error=False)
        assert nav.calls == [("/home", True)]
        assert logs == []

    def test_check_never_navigates(self) -> None:
        nav = RecordingNavigator()
        guard = RoleGuard(nav)
        assert guard.check(Session(Role.UNIT_MEMBER), Role.UNIT_ADMIN) is False
        assert guard.check(None, Role.UNIT_MEMBER) is False
        assert nav.calls == []
