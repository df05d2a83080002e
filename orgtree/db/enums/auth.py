"""Auth and organization role enums."""

from enum import Enum


class SystemRole(str, Enum):
    """
    Platform-wide role carried on the user record.

    - USER: regular account
    - ADMIN: platform administrator (no organization bypass)
    - SUPERUSER: operational access to every organization; never true ownership
    """

    USER = "user"
    ADMIN = "admin"
    SUPERUSER = "superuser"


class OrgRole(str, Enum):
    """Organization-scoped roles with increasing privilege levels."""

    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ORG_ROLE_RANK[self]

    def at_least(self, other: "OrgRole") -> bool:
        return self.rank >= other.rank

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid organization role."""
        return value in cls._value2member_map_


_ORG_ROLE_RANK = {
    OrgRole.VIEWER: 0,
    OrgRole.EDITOR: 1,
    OrgRole.ADMIN: 2,
    OrgRole.OWNER: 3,
}

# Owner is recorded on Organization.owner_user_id, never as a membership row
MEMBERSHIP_ROLES = frozenset({OrgRole.VIEWER, OrgRole.EDITOR, OrgRole.ADMIN})
