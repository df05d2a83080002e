"""Audit logging service - organization-level compliance event tracking.

Every ownership transfer transition writes a human-readable entry here, in
addition to the transfer-scoped trail in transfer_audit_service.

Security guidelines:
- NEVER log secrets (API keys, tokens, passwords)
- Use IDs instead of raw data where possible
- IP: Trust X-Forwarded-For only in production behind LB
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgtree.core.config import settings
from orgtree.db.enums import AuditEventType
from orgtree.db.models import AuditLog, User

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    In development/direct connections, uses request.client.host.
    """
    if not request:
        return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request | None) -> str | None:
    """Extract user agent from request."""
    if not request:
        return None
    ua = request.headers.get("user-agent", "")
    # Truncate to 500 chars (DB limit)
    return ua[:500] if ua else None


def canonical_json(obj: dict | None) -> str:
    """
    Serialize object to canonical JSON for consistent hashing.

    Uses sorted keys, compact separators, and str() for non-JSON types.
    """
    return json.dumps(obj or {}, sort_keys=True, separators=(",", ":"), default=str)


def _hash_timestamp(value: datetime) -> str:
    # SQLite drops tzinfo on the way back; hash the naive UTC form
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")


def compute_audit_hash(entry: AuditLog, prev_hash: str) -> str:
    """Hash = SHA256(all immutable fields joined with |)."""
    data = "|".join(
        [
            prev_hash,
            str(entry.id),
            str(entry.organization_id),
            entry.event_type,
            _hash_timestamp(entry.created_at),
            canonical_json(entry.details),
            str(entry.actor_user_id) if entry.actor_user_id else "",
            entry.actor_name or "",
            entry.target_type or "",
            str(entry.target_id) if entry.target_id else "",
            entry.ip_address or "",
            entry.user_agent or "",
        ]
    )
    return hashlib.sha256(data.encode()).hexdigest()


def get_last_audit_hash(db: Session, org_id: UUID) -> str:
    """Get the hash of the most recent audit log entry for an org."""
    result = db.execute(
        select(AuditLog.entry_hash)
        .where(AuditLog.organization_id == org_id)
        .where(AuditLog.entry_hash.isnot(None))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(1)
    ).scalar()
    return result or GENESIS_HASH


def log_event(
    db: Session,
    org_id: UUID,
    event_type: AuditEventType,
    actor: User | None = None,
    target_type: str | None = None,
    target_id: UUID | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """
    Log an audit event with hash chain.

    Flush only; the caller decides when to commit.
    """
    prev_hash = get_last_audit_hash(db, org_id)

    entry = AuditLog(
        organization_id=org_id,
        actor_user_id=actor.id if actor else None,
        actor_name=actor.display_name if actor else "System",
        event_type=event_type.value,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
        prev_hash=prev_hash,
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()  # Get ID

    entry.entry_hash = compute_audit_hash(entry, prev_hash)
    db.flush()
    return entry


def log_transfer_event(
    db: Session,
    org_id: UUID,
    transfer_id: UUID,
    event_type: AuditEventType,
    actor: User | None,
    details: dict[str, Any],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog | None:
    """
    Best-effort organization audit entry for a committed transfer transition.

    Commits on its own. A storage failure is rolled back and logged; it never
    reaches the caller and never touches the already-committed transition.
    """
    try:
        entry = log_event(
            db,
            org_id=org_id,
            event_type=event_type,
            actor=actor,
            target_type="ownership_transfer",
            target_id=transfer_id,
            details={"transfer_id": str(transfer_id), **details},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.commit()
        return entry
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to write organization audit log event=%s transfer=%s",
            event_type.value,
            transfer_id,
        )
        return None


def list_events(
    db: Session,
    org_id: UUID,
    event_type: AuditEventType | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Most recent audit events for an organization, newest first."""
    query = select(AuditLog).where(AuditLog.organization_id == org_id)
    if event_type:
        query = query.where(AuditLog.event_type == event_type.value)
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    return list(db.execute(query).scalars().all())


def verify_chain(db: Session, org_id: UUID) -> bool:
    """Recompute the hash chain for an organization. False on any mismatch."""
    entries = db.execute(
        select(AuditLog)
        .where(AuditLog.organization_id == org_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
    ).scalars()

    expected_prev = GENESIS_HASH
    for entry in entries:
        if entry.prev_hash != expected_prev:
            return False
        if entry.entry_hash != compute_audit_hash(entry, expected_prev):
            return False
        expected_prev = entry.entry_hash
    return True
