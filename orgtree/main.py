"""FastAPI application entry point."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from orgtree.core.config import settings
from orgtree.core.errors import OrgTreeError
from orgtree.core.structured_logging import configure_logging
from orgtree.core.websocket import manager
from orgtree.db import session as db_session
from orgtree.services import notification_service

logger = logging.getLogger(__name__)


# ============================================================================
# Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    db_session.init_db()
    manager.bind_loop(asyncio.get_running_loop())

    executor = None
    if settings.NOTIFICATION_WORKERS > 0:
        executor = ThreadPoolExecutor(
            max_workers=settings.NOTIFICATION_WORKERS,
            thread_name_prefix="transfer-notify",
        )
    notification_service.configure_dispatch(executor)
    logger.info("OrgTree API started (env=%s, version=%s)", settings.ENV, settings.VERSION)

    try:
        yield
    finally:
        notification_service.configure_dispatch(None)
        if executor is not None:
            executor.shutdown(wait=True)
        manager.bind_loop(None)


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="OrgTree API",
    description="Organization access control and ownership transfers",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)


async def _orgtree_error_handler(request: Request, exc: OrgTreeError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_exception_handler(OrgTreeError, _orgtree_error_handler)

# ============================================================================
# Routers
# ============================================================================

from orgtree.routers import ownership_transfers  # noqa: E402

app.include_router(ownership_transfers.router)

# Internal endpoints (scheduled/cron jobs - protected by INTERNAL_SECRET)
from orgtree.routers import internal  # noqa: E402

app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with db_session.engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
