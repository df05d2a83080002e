"""FastAPI dependencies for identity and database access."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from orgtree.core.config import settings
from orgtree.db import session as db_session


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def resolve_user_id(conn: HTTPConnection) -> UUID | None:
    """
    Identity is established by the host application.

    Either an upstream middleware sets ``request.state.user_id``, or an
    authenticating proxy forwards it in ``settings.TRUSTED_USER_HEADER``.
    """
    raw = getattr(conn.state, "user_id", None)
    if raw is None and settings.TRUSTED_USER_HEADER:
        raw = conn.headers.get(settings.TRUSTED_USER_HEADER)
    if raw is None:
        return None
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user identity")


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    Get the authenticated user.

    Raises:
        HTTPException 401: No identity, unknown user, or disabled account
    """
    # Import here to avoid circular imports
    from orgtree.db.models import User

    user_id = resolve_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    return user
