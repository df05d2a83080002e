"""Ownership transfer endpoints.

Organization-scoped routes create and list transfers; transfer-scoped routes
let the parties act on a single transfer. Service errors (OrgTreeError) are
mapped to HTTP responses by the application exception handler.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from orgtree.core.deps import get_current_user, get_db, resolve_user_id
from orgtree.core.websocket import manager
from orgtree.db.enums import TransferStatus
from orgtree.db.models import User
from orgtree.schemas.transfers import (
    AuditEntryRead,
    TransferCancel,
    TransferCreate,
    TransferListResponse,
    TransferRead,
    TransferReject,
)
from orgtree.services import audit_service, org_service, transfer_service

router = APIRouter(tags=["ownership-transfers"])


def _request_context(request: Request) -> dict:
    return {
        "ip_address": audit_service.get_client_ip(request),
        "user_agent": audit_service.get_user_agent(request),
    }


# =============================================================================
# Organization-scoped
# =============================================================================


@router.post(
    "/organizations/{org_id}/ownership/transfers",
    response_model=TransferRead,
    status_code=201,
)
def initiate_transfer(
    org_id: UUID,
    body: TransferCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start an ownership transfer (organization owner only)."""
    transfer = transfer_service.initiate_transfer(
        db,
        org_id=org_id,
        from_user_id=user.id,
        to_user_id=body.to_user_id,
        reason=body.reason,
        **_request_context(request),
    )
    return TransferRead.from_transfer(transfer)


@router.get(
    "/organizations/{org_id}/ownership/transfers",
    response_model=TransferListResponse,
)
def list_transfers(
    org_id: UUID,
    status: TransferStatus | None = Query(None),
    limit: int = Query(transfer_service.DEFAULT_LIST_LIMIT),
    offset: int = Query(0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the organization's transfers, newest first."""
    transfers = transfer_service.list_transfers(
        db, org_id, user.id, status=status, limit=limit, offset=offset
    )
    return TransferListResponse(
        items=[TransferRead.from_transfer(t) for t in transfers],
        limit=limit,
        offset=offset,
    )


# =============================================================================
# Transfer-scoped
# =============================================================================


@router.get("/ownership/transfers/pending", response_model=list[TransferRead])
def list_my_pending_transfers(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Pending transfers awaiting the current user's decision."""
    transfers = transfer_service.get_pending_transfers_for_user(db, user.id)
    return [TransferRead.from_transfer(t) for t in transfers]


@router.get("/ownership/transfers/{transfer_id}", response_model=TransferRead)
def get_transfer(
    transfer_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transfer = transfer_service.get_transfer_by_id(db, transfer_id, user.id)
    return TransferRead.from_transfer(transfer)


@router.get(
    "/ownership/transfers/{transfer_id}/audit-log",
    response_model=list[AuditEntryRead],
)
def get_transfer_audit_log(
    transfer_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Transfer audit trail, oldest first."""
    entries = transfer_service.get_audit_log(db, transfer_id, user.id)
    return [AuditEntryRead.from_entry(e) for e in entries]


@router.post("/ownership/transfers/{transfer_id}/accept", response_model=TransferRead)
def accept_transfer(
    transfer_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Accept a transfer addressed to the current user."""
    transfer_service.accept_transfer(db, transfer_id, user.id, **_request_context(request))
    transfer = transfer_service.get_transfer_by_id(db, transfer_id, user.id)
    return TransferRead.from_transfer(transfer)


@router.post("/ownership/transfers/{transfer_id}/reject", response_model=TransferRead)
def reject_transfer(
    transfer_id: UUID,
    request: Request,
    body: TransferReject | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Decline a transfer addressed to the current user."""
    transfer_service.reject_transfer(
        db,
        transfer_id,
        user.id,
        reason=body.reason if body else None,
        **_request_context(request),
    )
    transfer = transfer_service.get_transfer_by_id(db, transfer_id, user.id)
    return TransferRead.from_transfer(transfer)


@router.post("/ownership/transfers/{transfer_id}/cancel", response_model=TransferRead)
def cancel_transfer(
    transfer_id: UUID,
    body: TransferCancel,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Withdraw a pending transfer (initiator or owner)."""
    transfer_service.cancel_transfer(
        db, transfer_id, user.id, reason=body.reason, **_request_context(request)
    )
    transfer = transfer_service.get_transfer_by_id(db, transfer_id, user.id)
    return TransferRead.from_transfer(transfer)


# =============================================================================
# Real-time events
# =============================================================================


@router.websocket("/ws/transfers")
async def transfer_events_socket(websocket: WebSocket, db: Session = Depends(get_db)):
    """
    Push ownership transfer events to the connected user.

    The user is subscribed to every organization they own or belong to.
    Clients may send "ping" and receive "pong".
    """
    try:
        user_id = resolve_user_id(websocket)
    except HTTPException:
        user_id = None
    if not user_id or not org_service.get_active_user(db, user_id):
        await websocket.close(code=4001, reason="Authentication required")
        return

    org_ids = org_service.list_org_ids_for_user(db, user_id)
    db.close()

    await manager.connect(websocket, user_id, org_ids)
    try:
        while True:
            try:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
            except WebSocketDisconnect:
                break
    finally:
        await manager.disconnect(websocket, user_id)
