"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity.
  • On shutdown: dispose the engine cleanly.

Routers (all behind the service token):
  • /usage     — record path + per-user reads
  • /analytics — system, top-user and model dashboards
  • /requests  — per-request log and error breakdown
  • /alerts    — threshold alerts and quotas
  • /admin     — rebuilds, catalog toggles, audit log
  • /health    — shallow liveness probe (unauthenticated)

Errors:
  ValidationError → 422, NotFoundError → 404,
  PermissionDeniedError → 403, StoreError → 503.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ledger.auth.dependencies import require_service_token
from ledger.core.config import settings
from ledger.core.database import engine
from ledger.core.errors import (
    LedgerError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from ledger.routers.admin import router as admin_router
from ledger.routers.alerts import router as alerts_router
from ledger.routers.analytics import router as analytics_router
from ledger.routers.requests import router as requests_router
from ledger.routers.usage import router as usage_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except (SQLAlchemyError, OSError):
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    yield  # ← application runs here

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    description=(
        "Usage ledger for the chat application — per-call usage records, "
        "daily/weekly/monthly aggregates, cost attribution and threshold alerts."
    ),
    lifespan=lifespan,
)


# ── Error mapping ───────────────────────────────────────────
_STATUS_BY_ERROR: dict[type[LedgerError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    StoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(LedgerError)
async def ledger_error_handler(_request: Request, exc: LedgerError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if isinstance(exc, StoreError):
        # Internals stay in the logs
        detail = "The usage store is unavailable. Please try again."
    else:
        detail = str(exc)
    return JSONResponse(status_code=status_code, content={"detail": detail})


# Mount routers
_authenticated = [Depends(require_service_token)]
app.include_router(usage_router, prefix="/usage", dependencies=_authenticated)
app.include_router(analytics_router, prefix="/analytics", dependencies=_authenticated)
app.include_router(requests_router, prefix="/requests", dependencies=_authenticated)
app.include_router(alerts_router, prefix="/alerts", dependencies=_authenticated)
app.include_router(admin_router, prefix="/admin", dependencies=_authenticated)


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy"}
