"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgtree.db.base import Base
from orgtree.db.models.auth import Organization


class AuditLog(Base):
    """
    Organization-wide compliance audit log.

    Receives a human-readable entry for every ownership transfer lifecycle
    event, in parallel with the transfer-scoped trail.

    Security:
    - Never stores secrets/tokens
    - Hash chain makes tampering detectable
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_org_created", "organization_id", "created_at"),
        Index("idx_audit_org_event_created", "organization_id", "event_type", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # System events have no actor
    )
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False, default="System")

    # Event classification
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # AuditEventType

    # Target entity
    target_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Tamper-evident hash chain
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)  # SHA256 hex
    entry_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)  # SHA256 hex

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Relationships
    organization: Mapped["Organization"] = relationship()
