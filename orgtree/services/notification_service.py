"""Ownership transfer notifications.

Runs after the transition has committed. Builds a detached snapshot of the
transfer (no ORM objects cross threads) and dispatches the email and the
real-time event. Dispatch uses the configured thread pool, or runs inline
when none is configured (CLI, tests). Failures are logged and dropped; they
never reach the caller and never undo the committed state change.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID

from orgtree.db.models import OwnershipTransfer, User
from orgtree.services import email_service, transfer_events

logger = logging.getLogger(__name__)

_executor: Executor | None = None


@dataclass(frozen=True)
class Party:
    id: UUID
    name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "Party":
        return cls(id=user.id, name=user.display_name, email=user.email)

    def as_actor(self) -> dict[str, Any]:
        return {"id": str(self.id), "name": self.name}


@dataclass(frozen=True)
class TransferNotice:
    transfer_id: UUID
    org_id: UUID
    org_name: str
    status: str
    from_party: Party
    to_party: Party
    reason: str
    expires_at: int
    cancellation_reason: str | None = None

    def event_data(self) -> dict[str, Any]:
        return {
            "transfer_id": str(self.transfer_id),
            "status": self.status,
            "from_user_id": str(self.from_party.id),
            "to_user_id": str(self.to_party.id),
            "organization_name": self.org_name,
            "expires_at": self.expires_at,
        }


def build_notice(transfer: OwnershipTransfer) -> TransferNotice:
    """Snapshot a committed transfer for background delivery."""
    return TransferNotice(
        transfer_id=transfer.id,
        org_id=transfer.organization_id,
        org_name=transfer.organization.name,
        status=transfer.status,
        from_party=Party.from_user(transfer.from_user),
        to_party=Party.from_user(transfer.to_user),
        reason=transfer.reason,
        expires_at=transfer.expires_at,
        cancellation_reason=transfer.cancellation_reason,
    )


# =============================================================================
# Dispatch
# =============================================================================


def configure_dispatch(executor: Executor | None) -> None:
    """Install (or clear, with None) the executor used for notifications."""
    global _executor
    _executor = executor


def _run_safely(job_name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.warning("Transfer notification %s failed", job_name, exc_info=True)
        return None


def dispatch(job_name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Fire-and-forget ``fn``; never raises."""
    executor = _executor
    if executor is None:
        _run_safely(job_name, fn, args, kwargs)
        return
    try:
        executor.submit(_run_safely, job_name, fn, args, kwargs)
    except RuntimeError:
        # Executor shut down during app teardown
        logger.warning("Notification executor unavailable; running %s inline", job_name)
        _run_safely(job_name, fn, args, kwargs)


# =============================================================================
# Transfer lifecycle notifications
# =============================================================================


def notify_transfer_initiated(notice: TransferNotice) -> None:
    """Email and push to the recipient."""
    dispatch(
        "initiated_email",
        email_service.send_transfer_initiated_email,
        to=notice.to_party.email,
        recipient_name=notice.to_party.name,
        initiator_name=notice.from_party.name,
        org_name=notice.org_name,
    )
    dispatch(
        "initiated_event",
        transfer_events.emit_transfer_event,
        notice.org_id,
        notice.to_party.id,
        "initiated",
        {**notice.event_data(), "reason": notice.reason},
        notice.from_party.as_actor(),
    )


def notify_transfer_accepted(notice: TransferNotice) -> None:
    """Email and push to the previous owner."""
    dispatch(
        "accepted_email",
        email_service.send_transfer_accepted_email,
        to=notice.from_party.email,
        recipient_name=notice.from_party.name,
        new_owner_name=notice.to_party.name,
        org_name=notice.org_name,
    )
    dispatch(
        "accepted_event",
        transfer_events.emit_transfer_event,
        notice.org_id,
        notice.from_party.id,
        "accepted",
        {
            **notice.event_data(),
            "previous_owner_id": str(notice.from_party.id),
            "new_owner_id": str(notice.to_party.id),
        },
        notice.to_party.as_actor(),
    )


def notify_transfer_rejected(notice: TransferNotice, reason: str | None = None) -> None:
    """Email and push to the initiator."""
    dispatch(
        "rejected_email",
        email_service.send_transfer_rejected_email,
        to=notice.from_party.email,
        recipient_name=notice.from_party.name,
        rejected_by_name=notice.to_party.name,
        org_name=notice.org_name,
        reason=reason,
    )
    dispatch(
        "rejected_event",
        transfer_events.emit_transfer_event,
        notice.org_id,
        notice.from_party.id,
        "rejected",
        {**notice.event_data(), "rejection_reason": reason},
        notice.to_party.as_actor(),
    )


def notify_transfer_cancelled(notice: TransferNotice, cancelled_by: Party) -> None:
    """Email and push to the recipient."""
    dispatch(
        "cancelled_email",
        email_service.send_transfer_cancelled_email,
        to=notice.to_party.email,
        recipient_name=notice.to_party.name,
        cancelled_by_name=cancelled_by.name,
        org_name=notice.org_name,
        reason=notice.cancellation_reason,
    )
    dispatch(
        "cancelled_event",
        transfer_events.emit_transfer_event,
        notice.org_id,
        notice.to_party.id,
        "cancelled",
        {**notice.event_data(), "cancellation_reason": notice.cancellation_reason},
        cancelled_by.as_actor(),
    )

