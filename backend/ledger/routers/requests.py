"""
Requests router — per-request logging for the chat backend.

POST  /requests        — log a request as it starts (201)
PATCH /requests/{id}   — record its outcome
GET   /requests        — newest requests, optionally by user or status
GET   /requests/stats  — counts by status and type, error breakdown
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import get_db_session
from ledger.models.request_log import RequestLog
from ledger.schemas.request_log import (
    RequestLogCreate,
    RequestLogCreated,
    RequestLogOut,
    RequestLogUpdate,
    RequestStats,
    RequestStatus,
)
from ledger.services import request_logs
from ledger.services.periods import Period

router = APIRouter(tags=["Requests"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post(
    "",
    response_model=RequestLogCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Log a request",
)
async def log_request(payload: RequestLogCreate, session: DbSession) -> RequestLogCreated:
    entry = await request_logs.log_request(session, **payload.model_dump())
    return RequestLogCreated(id=entry.id)


@router.patch(
    "/{request_id}",
    response_model=RequestLogOut,
    summary="Record a request's outcome",
)
async def update_request(
    request_id: uuid.UUID, payload: RequestLogUpdate, session: DbSession,
) -> RequestLog:
    return await request_logs.update_request(session, request_id, **payload.model_dump())


@router.get(
    "",
    response_model=list[RequestLogOut],
    summary="Recent requests (newest first)",
)
async def get_recent_requests(
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    user_id: uuid.UUID | None = None,
    request_status: Annotated[RequestStatus | None, Query(alias="status")] = None,
) -> list[RequestLogOut]:
    return await request_logs.get_recent_requests(session, limit, user_id, request_status)


@router.get(
    "/stats",
    response_model=RequestStats,
    summary="Request counts and error breakdown",
    description="Window: daily = last 24h, weekly = 7 days, monthly = 30 days; omitted = all time.",
)
async def get_request_stats(
    session: DbSession,
    period: Period | None = None,
    user_id: uuid.UUID | None = None,
) -> RequestStats:
    return await request_logs.get_request_stats(session, period, user_id)
