"""Periodic expiry of stale ownership transfers.

Invoked by the internal cron endpoint and the ``expire-transfers`` CLI
command. Each transfer is expired in its own transaction so one failure does
not hold back the rest of the batch. Running the sweep twice is harmless: a
transfer already moved out of ``pending`` is skipped.
"""

import logging

from sqlalchemy.orm import Session

from orgtree.core.config import settings
from orgtree.db.enums import TransferStatus
from orgtree.db.models import OwnershipTransfer
from orgtree.services import transfer_service
from orgtree.services.transfer_audit_service import epoch_now

logger = logging.getLogger(__name__)


def find_expired_pending(db: Session, now: int) -> list[OwnershipTransfer]:
    """Pending transfers whose expiry is strictly in the past."""
    return (
        db.query(OwnershipTransfer)
        .filter(
            OwnershipTransfer.status == TransferStatus.PENDING.value,
            OwnershipTransfer.expires_at < now,
        )
        .order_by(OwnershipTransfer.expires_at)
        .all()
    )


def expire_old_transfers(db: Session, now: int | None = None) -> int:
    """
    Move every stale pending transfer to ``expired``.

    Returns the number of transfers this run expired.
    """
    now = epoch_now() if now is None else now
    stale_ids = [transfer.id for transfer in find_expired_pending(db, now)]
    if not stale_ids:
        return 0

    metadata = {"reason": f"Auto-expired after {settings.TRANSFER_EXPIRY_DAYS} days"}
    expired = 0
    for transfer_id in stale_ids:
        if transfer_service.expire_pending_transfer(db, transfer_id, now, metadata=dict(metadata)):
            expired += 1

    logger.info("Expired %s stale ownership transfers", expired)
    return expired
