"""Role and session models: who is acting, and from which unit.

Roles form a strict total order:

    unit_member < unit_admin < central_admin

"At least role R" checks compare ranks. Roles are never compared as
free-form strings; unrecognised input parses to None.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class Role(str, enum.Enum):
    """Authority levels, lowest to highest."""
    UNIT_MEMBER = "unit_member"
    UNIT_ADMIN = "unit_admin"
    CENTRAL_ADMIN = "central_admin"

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]

    def at_least(self, other: Role) -> bool:
        """True if this role's rank is >= the other role's rank."""
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: object) -> Optional[Role]:
        """Parse a role from an enum member, canonical name or legacy alias.

        Returns None for anything unrecognised.
        """
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        try:
            return cls(key)
        except ValueError:
            return LEGACY_ROLE_ALIASES.get(key)


ROLE_RANK: dict[Role, int] = {
    Role.UNIT_MEMBER: 1,
    Role.UNIT_ADMIN: 2,
    Role.CENTRAL_ADMIN: 3,
}

# Identifiers used by the existing portal database.
LEGACY_ROLE_ALIASES: dict[str, Role] = {
    "user_unit": Role.UNIT_MEMBER,
    "admin_unit": Role.UNIT_ADMIN,
    "admin_pusat": Role.CENTRAL_ADMIN,
}


@dataclass(frozen=True)
class Session:
    """The authenticated actor: role, home unit and (optionally) user id.

    An absent session (None) means unauthenticated.
    """
    role: Role
    unit_id: Optional[int] = None
    user_id: str = ""
