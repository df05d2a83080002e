"""Organization service - organization and user lookups."""

from uuid import UUID

from sqlalchemy.orm import Session

from orgtree.db.models import Membership, Organization, User


def get_org_by_id(db: Session, org_id: UUID) -> Organization | None:
    """Get organization by ID."""
    return db.query(Organization).filter(Organization.id == org_id).first()


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    """Get user by ID (active or not)."""
    return db.query(User).filter(User.id == user_id).first()


def get_active_user(db: Session, user_id: UUID) -> User | None:
    """Get user by ID only if the account is active."""
    return (
        db.query(User)
        .filter(
            User.id == user_id,
            User.is_active.is_(True),
        )
        .first()
    )


def get_system_role(db: Session, user_id: UUID | None) -> str | None:
    """Return the user's global role, or None when the user does not exist."""
    if user_id is None:
        return None
    return db.query(User.system_role).filter(User.id == user_id).scalar()


def list_org_ids_for_user(db: Session, user_id: UUID) -> set[UUID]:
    """Organizations the user owns or belongs to."""
    owned = db.query(Organization.id).filter(Organization.owner_user_id == user_id)
    member = db.query(Membership.organization_id).filter(Membership.user_id == user_id)
    return {row[0] for row in owned.union(member).all()}
