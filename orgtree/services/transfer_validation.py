"""Preconditions for creating an ownership transfer."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from orgtree.core.config import settings
from orgtree.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OrgTreeError,
    ValidationError,
)
from orgtree.db.enums import TransferStatus
from orgtree.db.models import OwnershipTransfer
from orgtree.services import access_service, org_service


@dataclass(frozen=True)
class EligibilityResult:
    valid: bool
    error: str | None = None
    error_class: type[OrgTreeError] | None = None

    def raise_for_error(self) -> None:
        if not self.valid:
            raise (self.error_class or ValidationError)(self.error or "Transfer not allowed")


ELIGIBLE = EligibilityResult(valid=True)


def get_pending_transfer_for_org(db: Session, org_id: UUID) -> OwnershipTransfer | None:
    """Return the organization's pending transfer, if any."""
    return (
        db.query(OwnershipTransfer)
        .filter(
            OwnershipTransfer.organization_id == org_id,
            OwnershipTransfer.status == TransferStatus.PENDING.value,
        )
        .first()
    )


def validate_transfer_eligibility(
    db: Session,
    org_id: UUID,
    from_user_id: UUID,
    to_user_id: UUID,
) -> EligibilityResult:
    """
    Check whether ``from_user_id`` may start a transfer to ``to_user_id``.

    The initiator must be the true owner. A superuser resolves to role=owner
    through the bypass but is rejected here (is_owner is False for them).
    """
    if not access_service.is_true_owner(db, org_id, from_user_id):
        return EligibilityResult(
            valid=False,
            error="Only the organization owner can initiate ownership transfers",
            error_class=ForbiddenError,
        )

    if from_user_id == to_user_id:
        return EligibilityResult(
            valid=False,
            error="Cannot transfer ownership to yourself",
            error_class=ValidationError,
        )

    if not org_service.get_active_user(db, to_user_id):
        return EligibilityResult(
            valid=False,
            error="Target user not found",
            error_class=NotFoundError,
        )

    if get_pending_transfer_for_org(db, org_id):
        return EligibilityResult(
            valid=False,
            error="A pending transfer already exists for this organization",
            error_class=ConflictError,
        )

    return ELIGIBLE


def validate_transfer_reason(reason: str | None, min_length: int | None = None) -> str:
    """Return the stripped reason or raise ValidationError."""
    min_length = settings.TRANSFER_REASON_MIN_LENGTH if min_length is None else min_length
    cleaned = (reason or "").strip()
    if len(cleaned) < min_length:
        raise ValidationError(f"Transfer reason must be at least {min_length} characters")
    return cleaned


def validate_cancellation_reason(reason: str | None) -> str:
    """Return the stripped cancellation reason or raise ValidationError."""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError("Cancellation reason is required")
    return cleaned
