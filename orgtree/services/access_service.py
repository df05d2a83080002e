"""Organization access resolution.

Answers "what role does this user hold in this organization" without mutating
anything. Resolution order (first match wins):

1. Global superuser: operational bypass, role=owner but is_owner=False
2. Organization.owner_user_id: true owner, role=owner and is_owner=True
3. Membership row: the membership role
4. Otherwise: no access

The superuser bypass and true ownership are kept as two separate predicates
(``has_admin_access`` vs ``is_true_owner``). Ownership transfer checks must only
ever use ``is_true_owner``.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from orgtree.core.errors import ForbiddenError
from orgtree.core.structured_logging import build_log_context
from orgtree.db.enums import OrgRole, SystemRole
from orgtree.services import membership_service, org_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrgAccess:
    has_access: bool
    role: OrgRole | None
    is_owner: bool

    @property
    def has_admin_access(self) -> bool:
        """Admin-level access, including the superuser bypass."""
        return self.has_access and self.role is not None and self.role.at_least(OrgRole.ADMIN)

    @property
    def is_true_owner(self) -> bool:
        """The user is Organization.owner_user_id (never true for the bypass)."""
        return self.has_access and self.role == OrgRole.OWNER and self.is_owner

    def satisfies(self, min_role: OrgRole) -> bool:
        return self.has_access and self.role is not None and self.role.at_least(min_role)


NO_ACCESS = OrgAccess(has_access=False, role=None, is_owner=False)


def resolve_org_access(db: Session, org_id: UUID, user_id: UUID) -> OrgAccess:
    """Compute the user's effective role in the organization."""
    user = org_service.get_user_by_id(db, user_id)
    if user and user.system_role == SystemRole.SUPERUSER.value:
        return OrgAccess(has_access=True, role=OrgRole.OWNER, is_owner=False)

    org = org_service.get_org_by_id(db, org_id)
    if not org:
        return NO_ACCESS

    if org.owner_user_id == user_id:
        return OrgAccess(has_access=True, role=OrgRole.OWNER, is_owner=True)

    membership = membership_service.get_membership_for_org(db, org_id, user_id)
    if not membership:
        return NO_ACCESS

    if not OrgRole.has_value(membership.role):
        logger.warning(
            "Unknown membership role %r",
            membership.role,
            extra=build_log_context(user_id=str(user_id), org_id=str(org_id)),
        )
        return NO_ACCESS

    return OrgAccess(has_access=True, role=OrgRole(membership.role), is_owner=False)


def require_org_permission(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    min_role: OrgRole = OrgRole.VIEWER,
) -> OrgAccess:
    """
    Resolve access and require at least ``min_role``.

    Permission hierarchy: owner > admin > editor > viewer

    Raises:
        ForbiddenError: No access, or a role below ``min_role``
    """
    access = resolve_org_access(db, org_id, user_id)
    if not access.satisfies(min_role):
        logger.warning(
            "Organization permission denied (required=%s, resolved=%s)",
            min_role.value,
            access.role.value if access.role else None,
            extra=build_log_context(user_id=str(user_id), org_id=str(org_id)),
        )
        raise ForbiddenError(
            f"Insufficient permissions. {min_role.value.capitalize()} role or higher required."
        )
    return access


def is_true_owner(db: Session, org_id: UUID, user_id: UUID) -> bool:
    """True only for the recorded owner of the organization."""
    return resolve_org_access(db, org_id, user_id).is_true_owner


def has_admin_access(db: Session, org_id: UUID, user_id: UUID) -> bool:
    """Admin or owner role, including the superuser bypass."""
    return resolve_org_access(db, org_id, user_id).has_admin_access
