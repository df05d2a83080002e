"""SQLAlchemy ORM models for ownership transfers and their audit trail."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgtree.db.base import Base
from orgtree.db.models.auth import Organization, User


class OwnershipTransfer(Base):
    """
    A time-bounded request to hand an organization to another user.

    Rows are never deleted. Timestamps are epoch seconds.

    Constraint: at most one pending transfer per organization, enforced by the
    partial unique index below (the application check is only a fast path).
    """

    __tablename__ = "ownership_transfers"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'cancelled', 'expired')",
            name="ck_ownership_transfers_status",
        ),
        CheckConstraint("from_user_id <> to_user_id", name="ck_ownership_transfers_parties"),
        CheckConstraint("expires_at > initiated_at", name="ck_ownership_transfers_window"),
        Index(
            "uq_ownership_transfers_one_pending",
            "organization_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("idx_ownership_transfers_org", "organization_id"),
        Index("idx_ownership_transfers_status_expires", "status", "expires_at"),
        Index("idx_ownership_transfers_to_user", "to_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    from_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    to_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    initiated_at: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    organization: Mapped["Organization"] = relationship()
    from_user: Mapped["User"] = relationship(foreign_keys=[from_user_id])
    to_user: Mapped["User"] = relationship(foreign_keys=[to_user_id])


class OwnershipTransferAuditLog(Base):
    """
    Append-only audit trail for one transfer.

    One row per transition plus the initiating row. actor_id is NULL for
    system-driven transitions (expiry).
    """

    __tablename__ = "ownership_transfer_audit_log"
    __table_args__ = (
        CheckConstraint(
            "action IN ('initiated', 'accepted', 'rejected', 'cancelled', 'expired')",
            name="ck_transfer_audit_action",
        ),
        Index("idx_transfer_audit_transfer", "transfer_id"),
        Index("idx_transfer_audit_timestamp", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("ownership_transfers.id"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)

    transfer: Mapped["OwnershipTransfer"] = relationship()
