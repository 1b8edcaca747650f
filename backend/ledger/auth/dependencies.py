"""
FastAPI dependency for service-token authentication.

The ledger is called by the chat backend and the admin dashboard, never
by browsers directly; end users are authenticated upstream. Every route
(except /health) requires:

    Authorization: Bearer <service token>

Security:
  • Generic 401 for ALL failure modes (missing, malformed, wrong token)
  • Raw tokens are NEVER logged
  • Only the SHA-256 of the token is configured
"""

from __future__ import annotations

import logging

from fastapi import Header, HTTPException, status

from ledger.auth.hashing import verify_token
from ledger.core.config import settings

logger = logging.getLogger(__name__)

# Generic 401 — same message for all auth failures to avoid leaking info
_AUTH_FAILED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or missing service token.",
    headers={"WWW-Authenticate": "Bearer"},
)


async def require_service_token(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """
    FastAPI dependency — rejects requests without the configured token.

    Usage in routers:
        APIRouter(dependencies=[Depends(require_service_token)])
    """
    if not authorization:
        raise _AUTH_FAILED

    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _AUTH_FAILED

    if not settings.SERVICE_TOKEN_HASH:
        logger.error("SERVICE_TOKEN_HASH is not configured; rejecting request")
        raise _AUTH_FAILED

    if not verify_token(parts[1], settings.SERVICE_TOKEN_HASH):
        raise _AUTH_FAILED
