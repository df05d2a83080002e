"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from an external scheduler (cron, GH Actions, k8s CronJob).
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from orgtree.core.config import settings
from orgtree.core.deps import get_db
from orgtree.schemas.transfers import ExpiryResponse
from orgtree.services import transfer_expiry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


@router.post(
    "/transfer-expiry",
    response_model=ExpiryResponse,
    dependencies=[Depends(verify_internal_secret)],
)
def expire_transfers(db: Session = Depends(get_db)):
    """
    Sweep for stale ownership transfers.

    Moves every pending transfer past its expiry to ``expired``. Safe to run
    as often as needed.
    """
    expired = transfer_expiry.expire_old_transfers(db)
    if expired:
        logger.info("Scheduled transfer expiry run expired %s transfers", expired)
    return ExpiryResponse(expired=expired)
