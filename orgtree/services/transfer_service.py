"""Ownership transfer service - lifecycle of organization ownership transfers.

States: pending -> accepted | rejected | cancelled | expired (all terminal).

Every terminal transition is a compare-and-set UPDATE guarded by
``status = 'pending'`` inside the session transaction, so two callers racing
on the same transfer cannot both succeed: the loser sees rowcount 0, rolls
back and gets a ConflictError naming the status the winner committed.

Per transition:
1. State change + transfer-scoped audit entry (one transaction)
2. Organization-level audit entry (best-effort, after commit)
3. Email + real-time notification (fire-and-forget, after commit)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from orgtree.core.config import settings
from orgtree.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from orgtree.core.structured_logging import build_log_context
from orgtree.db.enums import (
    SYSTEM_ACTOR_ROLE,
    TRANSFER_TRANSITIONS,
    TRANSITION_VERBS,
    AuditEventType,
    OrgRole,
    TransferAction,
    TransferStatus,
)
from orgtree.db.models import Organization, OwnershipTransfer, User
from orgtree.services import (
    access_service,
    audit_service,
    membership_service,
    notification_service,
    org_service,
    transfer_audit_service,
    transfer_validation,
)
from orgtree.services.transfer_audit_service import epoch_now

logger = logging.getLogger(__name__)

PENDING_EXISTS_MESSAGE = "A pending transfer already exists for this organization"
EXPIRED_MESSAGE = "This transfer has expired"
DEFAULT_LIST_LIMIT = 20


# =============================================================================
# Helpers
# =============================================================================


def ensure_transition(current: str, target: TransferStatus) -> None:
    """Raise ConflictError unless ``current -> target`` is an allowed move."""
    status = TransferStatus(current)
    if status.is_terminal or target not in TRANSFER_TRANSITIONS[status]:
        raise ConflictError(
            f"Transfer cannot be {TRANSITION_VERBS[target]}. Current status: {status.value}"
        )


def _get_transfer_or_404(db: Session, transfer_id: UUID) -> OwnershipTransfer:
    transfer = db.query(OwnershipTransfer).filter(OwnershipTransfer.id == transfer_id).first()
    if not transfer:
        raise NotFoundError("Transfer not found")
    return transfer


def _actor_role(db: Session, user_id: UUID) -> str:
    return org_service.get_system_role(db, user_id) or "unknown"


def claim_transition(
    db: Session,
    transfer_id: UUID,
    target: TransferStatus,
    now: int,
    **values: Any,
) -> bool:
    """
    Compare-and-set ``pending -> target`` inside the current transaction.

    Returns False when the row is no longer pending (another caller won).
    Does not commit.
    """
    result = db.execute(
        update(OwnershipTransfer)
        .where(
            OwnershipTransfer.id == transfer_id,
            OwnershipTransfer.status == TransferStatus.PENDING.value,
        )
        .values(status=target.value, completed_at=now, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _raise_lost_race(db: Session, transfer_id: UUID, target: TransferStatus) -> None:
    db.rollback()
    current = (
        db.query(OwnershipTransfer.status).filter(OwnershipTransfer.id == transfer_id).scalar()
    )
    raise ConflictError(
        f"Transfer cannot be {TRANSITION_VERBS[target]}. Current status: {current}"
    )


def _log_transition(
    action: TransferAction, org_id: UUID | None, transfer_id: UUID, actor_id: UUID | None
) -> None:
    logger.info(
        "Ownership transfer %s",
        action.value,
        extra=build_log_context(
            user_id=str(actor_id) if actor_id else None,
            org_id=str(org_id) if org_id else None,
            transfer_id=str(transfer_id),
            action=action.value,
        ),
    )


def _publish_org_event(
    db: Session,
    transfer_id: UUID,
    event_type: AuditEventType,
    build: Callable[[OwnershipTransfer], tuple[User | None, dict[str, Any]]],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Write the organization audit entry for a committed transition.

    ``build`` maps the reloaded transfer to ``(actor, details)``. Reloading
    happens inside the guard: a storage failure here is logged, never raised.
    """
    try:
        transfer = _get_transfer_or_404(db, transfer_id)
        actor, details = build(transfer)
        audit_service.log_transfer_event(
            db,
            org_id=transfer.organization_id,
            transfer_id=transfer.id,
            event_type=event_type,
            actor=actor,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not publish %s for a committed transfer", event_type.value)


def _build_notice(db: Session, transfer_id: UUID):
    try:
        return notification_service.build_notice(_get_transfer_or_404(db, transfer_id))
    except Exception:
        db.rollback()
        logger.warning("Could not snapshot transfer %s for notifications", transfer_id, exc_info=True)
        return None


# =============================================================================
# Expiry (shared with the sweeper)
# =============================================================================


def expire_pending_transfer(
    db: Session,
    transfer_id: UUID,
    now: int,
    metadata: dict[str, Any],
) -> bool:
    """
    Transition one pending transfer to expired with a system audit entry.

    Commits. Returns False when the transfer was no longer pending. The
    organization-level entry is written afterwards, best-effort.
    """
    try:
        claimed = claim_transition(db, transfer_id, TransferStatus.EXPIRED, now)
        if claimed:
            transfer_audit_service.record(
                db,
                transfer_id,
                TransferAction.EXPIRED,
                actor_id=None,
                actor_role=SYSTEM_ACTOR_ROLE,
                metadata=metadata,
                timestamp=now,
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    if not claimed:
        db.rollback()
        return False

    _log_transition(TransferAction.EXPIRED, None, transfer_id, None)
    _publish_org_event(
        db,
        transfer_id,
        AuditEventType.OWNERSHIP_TRANSFER_EXPIRED,
        lambda transfer: (
            None,
            {
                "from_user_id": str(transfer.from_user_id),
                "to_user_id": str(transfer.to_user_id),
                **metadata,
            },
        ),
    )
    return True


def expire_old_transfers(db: Session, now: int | None = None) -> int:
    """Sweep stale pending transfers (see transfer_expiry)."""
    from orgtree.services import transfer_expiry

    return transfer_expiry.expire_old_transfers(db, now=now)


# =============================================================================
# Transitions
# =============================================================================


def initiate_transfer(
    db: Session,
    org_id: UUID,
    from_user_id: UUID,
    to_user_id: UUID,
    reason: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> OwnershipTransfer:
    """
    Start a transfer of ``org_id`` from its owner to ``to_user_id``.

    Raises:
        ForbiddenError: Initiator is not the true owner (superusers included)
        ValidationError: Self transfer, or reason shorter than the minimum
        NotFoundError: Target user does not exist
        ConflictError: A pending transfer already exists
    """
    transfer_validation.validate_transfer_eligibility(
        db, org_id, from_user_id, to_user_id
    ).raise_for_error()
    cleaned_reason = transfer_validation.validate_transfer_reason(reason)

    now = epoch_now()
    transfer = OwnershipTransfer(
        organization_id=org_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        status=TransferStatus.PENDING.value,
        initiated_at=now,
        expires_at=now + settings.transfer_expiry_seconds,
        reason=cleaned_reason,
        created_at=now,
        updated_at=now,
    )

    try:
        db.add(transfer)
        db.flush()
        transfer_id = transfer.id
        transfer_audit_service.record(
            db,
            transfer_id,
            TransferAction.INITIATED,
            actor_id=from_user_id,
            actor_role=_actor_role(db, from_user_id),
            metadata={
                "organization_id": str(org_id),
                "to_user_id": str(to_user_id),
                "reason": cleaned_reason,
            },
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=now,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        # Concurrent initiation won the one-pending-per-org index
        if transfer_validation.get_pending_transfer_for_org(db, org_id):
            raise ConflictError(PENDING_EXISTS_MESSAGE)
        raise

    _log_transition(TransferAction.INITIATED, org_id, transfer_id, from_user_id)

    _publish_org_event(
        db,
        transfer_id,
        AuditEventType.OWNERSHIP_TRANSFER_INITIATED,
        lambda transfer: (
            transfer.from_user,
            {
                "to_user_id": str(to_user_id),
                "to_user_name": transfer.to_user.display_name,
                "reason": cleaned_reason,
                "expires_at": datetime.fromtimestamp(
                    transfer.expires_at, timezone.utc
                ).isoformat(),
            },
        ),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    notice = _build_notice(db, transfer_id)
    if notice:
        notification_service.notify_transfer_initiated(notice)
    return transfer


def accept_transfer(
    db: Session,
    transfer_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> OwnershipTransfer:
    """
    Accept a pending transfer and swap ownership atomically.

    In one transaction:
    1. organization.owner_user_id = to_user_id
    2. delete the recipient's membership row (an owner holds no membership)
    3. previous owner becomes an admin member
    4. transfer status = accepted, completed_at = now (+ audit entry)

    An expired transfer is moved to ``expired`` as a side effect and a
    ConflictError is raised instead.
    """
    transfer = _get_transfer_or_404(db, transfer_id)

    if transfer.to_user_id != user_id:
        raise ForbiddenError("Only the designated recipient can accept this transfer")

    ensure_transition(transfer.status, TransferStatus.ACCEPTED)

    now = epoch_now()
    if now > transfer.expires_at:
        if not expire_pending_transfer(
            db,
            transfer_id,
            now,
            metadata={"reason": "Expired before acceptance", "attempted_by": str(user_id)},
        ):
            _raise_lost_race(db, transfer_id, TransferStatus.ACCEPTED)
        raise ConflictError(EXPIRED_MESSAGE)

    org_id = transfer.organization_id
    from_user_id = transfer.from_user_id
    to_user_id = transfer.to_user_id
    actor_role = _actor_role(db, user_id)

    try:
        claimed = claim_transition(db, transfer_id, TransferStatus.ACCEPTED, now)
        if claimed:
            db.execute(
                update(Organization)
                .where(Organization.id == org_id)
                .values(owner_user_id=to_user_id, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            membership_service.remove_membership(db, org_id, to_user_id)
            membership_service.set_membership_role(
                db, org_id, from_user_id, OrgRole.ADMIN, added_by_user_id=to_user_id
            )
            transfer_audit_service.record(
                db,
                transfer_id,
                TransferAction.ACCEPTED,
                actor_id=user_id,
                actor_role=actor_role,
                metadata={
                    "previous_owner_id": str(from_user_id),
                    "new_owner_id": str(to_user_id),
                },
                ip_address=ip_address,
                user_agent=user_agent,
                timestamp=now,
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    if not claimed:
        _raise_lost_race(db, transfer_id, TransferStatus.ACCEPTED)

    _log_transition(TransferAction.ACCEPTED, org_id, transfer_id, user_id)

    _publish_org_event(
        db,
        transfer_id,
        AuditEventType.OWNERSHIP_TRANSFER_COMPLETED,
        lambda transfer: (
            transfer.to_user,
            {
                "previous_owner_id": str(from_user_id),
                "previous_owner_name": transfer.from_user.display_name,
                "new_owner_id": str(to_user_id),
                "new_owner_name": transfer.to_user.display_name,
                "reason": transfer.reason,
            },
        ),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    notice = _build_notice(db, transfer_id)
    if notice:
        notification_service.notify_transfer_accepted(notice)
    return transfer


def reject_transfer(
    db: Session,
    transfer_id: UUID,
    user_id: UUID,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> OwnershipTransfer:
    """Recipient declines a pending transfer. Ownership does not change."""
    transfer = _get_transfer_or_404(db, transfer_id)

    if transfer.to_user_id != user_id:
        raise ForbiddenError("Only the designated recipient can reject this transfer")

    ensure_transition(transfer.status, TransferStatus.REJECTED)

    cleaned_reason = reason.strip() if reason and reason.strip() else None
    org_id = transfer.organization_id
    now = epoch_now()
    actor_role = _actor_role(db, user_id)

    try:
        claimed = claim_transition(db, transfer_id, TransferStatus.REJECTED, now)
        if claimed:
            transfer_audit_service.record(
                db,
                transfer_id,
                TransferAction.REJECTED,
                actor_id=user_id,
                actor_role=actor_role,
                metadata={"reason": cleaned_reason} if cleaned_reason else None,
                ip_address=ip_address,
                user_agent=user_agent,
                timestamp=now,
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    if not claimed:
        _raise_lost_race(db, transfer_id, TransferStatus.REJECTED)

    _log_transition(TransferAction.REJECTED, org_id, transfer_id, user_id)

    _publish_org_event(
        db,
        transfer_id,
        AuditEventType.OWNERSHIP_TRANSFER_REJECTED,
        lambda transfer: (
            transfer.to_user,
            {
                "from_user_id": str(transfer.from_user_id),
                "rejection_reason": cleaned_reason,
            },
        ),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    notice = _build_notice(db, transfer_id)
    if notice:
        notification_service.notify_transfer_rejected(notice, reason=cleaned_reason)
    return transfer


def cancel_transfer(
    db: Session,
    transfer_id: UUID,
    user_id: UUID,
    reason: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> OwnershipTransfer:
    """
    Withdraw a pending transfer.

    Allowed for the initiator or the organization's true owner. The superuser
    bypass alone is not enough.
    """
    transfer = _get_transfer_or_404(db, transfer_id)

    is_initiator = transfer.from_user_id == user_id
    if not is_initiator and not access_service.is_true_owner(
        db, transfer.organization_id, user_id
    ):
        raise ForbiddenError("Only the initiator or the organization owner can cancel this transfer")

    ensure_transition(transfer.status, TransferStatus.CANCELLED)
    cleaned_reason = transfer_validation.validate_cancellation_reason(reason)

    org_id = transfer.organization_id
    now = epoch_now()
    actor_role = _actor_role(db, user_id)
    actor = org_service.get_user_by_id(db, user_id)
    cancelled_by = notification_service.Party.from_user(actor) if actor else None

    try:
        claimed = claim_transition(
            db,
            transfer_id,
            TransferStatus.CANCELLED,
            now,
            cancellation_reason=cleaned_reason,
        )
        if claimed:
            transfer_audit_service.record(
                db,
                transfer_id,
                TransferAction.CANCELLED,
                actor_id=user_id,
                actor_role=actor_role,
                metadata={"reason": cleaned_reason},
                ip_address=ip_address,
                user_agent=user_agent,
                timestamp=now,
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    if not claimed:
        _raise_lost_race(db, transfer_id, TransferStatus.CANCELLED)

    _log_transition(TransferAction.CANCELLED, org_id, transfer_id, user_id)

    _publish_org_event(
        db,
        transfer_id,
        AuditEventType.OWNERSHIP_TRANSFER_CANCELLED,
        lambda transfer: (
            actor,
            {
                "cancellation_reason": cleaned_reason,
                "cancelled_by": str(user_id),
            },
        ),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    notice = _build_notice(db, transfer_id)
    if notice and cancelled_by:
        notification_service.notify_transfer_cancelled(notice, cancelled_by=cancelled_by)
    return transfer


# =============================================================================
# Queries
# =============================================================================


def _with_details(query):
    return query.options(
        joinedload(OwnershipTransfer.organization),
        joinedload(OwnershipTransfer.from_user),
        joinedload(OwnershipTransfer.to_user),
    )


def _is_party(transfer: OwnershipTransfer, user_id: UUID) -> bool:
    return user_id in (transfer.from_user_id, transfer.to_user_id)


def get_transfer_by_id(db: Session, transfer_id: UUID, user_id: UUID) -> OwnershipTransfer:
    """
    Get a transfer with organization and party details.

    Visible to the two parties and to admins/owners of the organization.
    """
    transfer = _with_details(db.query(OwnershipTransfer)).filter(
        OwnershipTransfer.id == transfer_id
    ).first()
    if not transfer:
        raise NotFoundError("Transfer not found")

    if not _is_party(transfer, user_id) and not access_service.has_admin_access(
        db, transfer.organization_id, user_id
    ):
        raise ForbiddenError("Insufficient permissions to view this transfer")

    return transfer


def list_transfers(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    status: TransferStatus | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
) -> list[OwnershipTransfer]:
    """
    List an organization's transfers, newest first.

    Admins and owners see every transfer. Other callers see only the transfers
    they are a party to, and are refused when there are none.
    """
    if limit < 1 or limit > settings.TRANSFER_LIST_MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {settings.TRANSFER_LIST_MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    query = _with_details(db.query(OwnershipTransfer)).filter(
        OwnershipTransfer.organization_id == org_id
    )

    if not access_service.has_admin_access(db, org_id, user_id):
        party_filter = or_(
            OwnershipTransfer.from_user_id == user_id,
            OwnershipTransfer.to_user_id == user_id,
        )
        involved = (
            db.query(OwnershipTransfer.id)
            .filter(OwnershipTransfer.organization_id == org_id, party_filter)
            .first()
        )
        if not involved:
            raise ForbiddenError("Insufficient permissions. Admin or Owner role required.")
        query = query.filter(party_filter)

    if status is not None:
        query = query.filter(OwnershipTransfer.status == status.value)

    return (
        query.order_by(OwnershipTransfer.initiated_at.desc(), OwnershipTransfer.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def get_pending_transfers_for_user(
    db: Session,
    user_id: UUID,
    now: int | None = None,
) -> list[OwnershipTransfer]:
    """Pending transfers addressed to ``user_id`` that can still be accepted."""
    now = epoch_now() if now is None else now
    return (
        _with_details(db.query(OwnershipTransfer))
        .filter(
            OwnershipTransfer.to_user_id == user_id,
            OwnershipTransfer.status == TransferStatus.PENDING.value,
            OwnershipTransfer.expires_at >= now,
        )
        .order_by(OwnershipTransfer.initiated_at.desc())
        .all()
    )


def get_audit_log(db: Session, transfer_id: UUID, user_id: UUID):
    """Transfer-scoped audit entries, oldest first (same visibility as the transfer)."""
    transfer = get_transfer_by_id(db, transfer_id, user_id)
    return transfer_audit_service.list_entries(db, transfer.id)
