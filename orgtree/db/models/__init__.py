"""SQLAlchemy ORM models."""

from orgtree.db.models.auth import Membership, Organization, User
from orgtree.db.models.audit import AuditLog
from orgtree.db.models.transfers import OwnershipTransfer, OwnershipTransferAuditLog

__all__ = [
    "AuditLog",
    "Membership",
    "Organization",
    "OwnershipTransfer",
    "OwnershipTransferAuditLog",
    "User",
]
