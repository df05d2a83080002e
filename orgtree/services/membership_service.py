"""Membership service - organization membership lookups and role changes."""

import logging
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session

from orgtree.db.enums import MEMBERSHIP_ROLES, OrgRole
from orgtree.db.models import Membership


logger = logging.getLogger(__name__)


def get_membership_for_org(db: Session, org_id: UUID, user_id: UUID) -> Membership | None:
    """Get membership scoped to an organization."""
    return (
        db.query(Membership)
        .filter(
            Membership.organization_id == org_id,
            Membership.user_id == user_id,
        )
        .first()
    )


def remove_membership(db: Session, org_id: UUID, user_id: UUID) -> int:
    """
    Delete the (org, user) membership row if present.

    Flush only; the caller owns the transaction. Returns the number of rows deleted.
    """
    result = db.execute(
        delete(Membership).where(
            Membership.organization_id == org_id,
            Membership.user_id == user_id,
        )
    )
    return result.rowcount or 0


def set_membership_role(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    role: OrgRole,
    added_by_user_id: UUID | None = None,
) -> Membership:
    """
    Create the membership with the given role, or change the role of an existing row.

    Flush only; the caller owns the transaction.
    """
    if role not in MEMBERSHIP_ROLES:
        raise ValueError(f"Role '{role.value}' cannot be held as a membership")

    membership = get_membership_for_org(db, org_id, user_id)
    if membership:
        if membership.role != role.value:
            logger.info(
                "Changing membership role org=%s user=%s from=%s to=%s",
                org_id,
                user_id,
                membership.role,
                role.value,
            )
        membership.role = role.value
    else:
        membership = Membership(
            organization_id=org_id,
            user_id=user_id,
            role=role.value,
            added_by_user_id=added_by_user_id,
        )
        db.add(membership)
    db.flush()
    return membership
