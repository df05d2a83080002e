"""Transfer-scoped audit trail.

Append-only: rows are inserted by the state machine in the same transaction
as the transition they describe. There is no update or delete path.
"""

import time
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from orgtree.db.enums import TransferAction
from orgtree.db.models import OwnershipTransferAuditLog

USER_AGENT_MAX_LENGTH = 500


def epoch_now() -> int:
    """Current time as epoch seconds."""
    return int(time.time())


def record(
    db: Session,
    transfer_id: UUID,
    action: TransferAction,
    actor_id: UUID | None,
    actor_role: str,
    metadata: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    timestamp: int | None = None,
) -> OwnershipTransferAuditLog:
    """Append one audit entry. Flush only; the caller owns the transaction."""
    entry = OwnershipTransferAuditLog(
        transfer_id=transfer_id,
        action=action.value,
        actor_id=actor_id,
        actor_role=actor_role,
        metadata_=metadata,
        ip_address=ip_address,
        user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
        timestamp=timestamp if timestamp is not None else epoch_now(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_entries(db: Session, transfer_id: UUID) -> list[OwnershipTransferAuditLog]:
    """All entries for a transfer, oldest first."""
    return (
        db.query(OwnershipTransferAuditLog)
        .filter(OwnershipTransferAuditLog.transfer_id == transfer_id)
        .order_by(OwnershipTransferAuditLog.timestamp.asc(), OwnershipTransferAuditLog.id.asc())
        .all()
    )
