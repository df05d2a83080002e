"""Audit and compliance enums."""

from enum import Enum


class AuditEventType(str, Enum):
    """Organization-level compliance events for ownership transfers."""

    OWNERSHIP_TRANSFER_INITIATED = "ownership_transfer_initiated"
    OWNERSHIP_TRANSFER_COMPLETED = "ownership_transfer_completed"
    OWNERSHIP_TRANSFER_REJECTED = "ownership_transfer_rejected"
    OWNERSHIP_TRANSFER_CANCELLED = "ownership_transfer_cancelled"
    OWNERSHIP_TRANSFER_EXPIRED = "ownership_transfer_expired"
