"""Ownership transfer Pydantic schemas."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from orgtree.db.enums import TransferStatus


def _epoch_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, timezone.utc)


class TransferCreate(BaseModel):
    """
    Request schema for initiating a transfer.

    The minimum reason length is enforced by the service (after stripping).
    """
    to_user_id: UUID
    reason: str = Field(..., max_length=2000)


class TransferReject(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class TransferCancel(BaseModel):
    reason: str = Field(..., max_length=2000)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        return v.strip()


class TransferRead(BaseModel):
    """Response schema for a transfer with party and organization details."""
    id: UUID
    organization_id: UUID
    organization_name: str | None = None
    from_user_id: UUID
    from_user_name: str | None = None
    from_user_email: str | None = None
    to_user_id: UUID
    to_user_name: str | None = None
    to_user_email: str | None = None
    status: TransferStatus
    reason: str
    cancellation_reason: str | None
    initiated_at: datetime
    expires_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_transfer(cls, transfer) -> "TransferRead":
        return cls(
            id=transfer.id,
            organization_id=transfer.organization_id,
            organization_name=transfer.organization.name if transfer.organization else None,
            from_user_id=transfer.from_user_id,
            from_user_name=transfer.from_user.display_name if transfer.from_user else None,
            from_user_email=transfer.from_user.email if transfer.from_user else None,
            to_user_id=transfer.to_user_id,
            to_user_name=transfer.to_user.display_name if transfer.to_user else None,
            to_user_email=transfer.to_user.email if transfer.to_user else None,
            status=TransferStatus(transfer.status),
            reason=transfer.reason,
            cancellation_reason=transfer.cancellation_reason,
            initiated_at=_epoch_to_datetime(transfer.initiated_at),
            expires_at=_epoch_to_datetime(transfer.expires_at),
            completed_at=_epoch_to_datetime(transfer.completed_at),
        )


class TransferListResponse(BaseModel):
    items: list[TransferRead]
    limit: int
    offset: int


class AuditEntryRead(BaseModel):
    """One transfer-scoped audit entry."""
    id: int
    transfer_id: UUID
    action: str
    actor_id: UUID | None
    actor_role: str
    metadata: dict[str, Any] | None = None
    ip_address: str | None
    user_agent: str | None
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry) -> "AuditEntryRead":
        return cls(
            id=entry.id,
            transfer_id=entry.transfer_id,
            action=entry.action,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            metadata=entry.metadata_,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            timestamp=_epoch_to_datetime(entry.timestamp),
        )


class ExpiryResponse(BaseModel):
    expired: int
