"""
Usage router — the record path and per-user reads.

POST /usage/records
  1. Validates the payload (Pydantic → 422).
  2. Persists the usage record and fans out to the six aggregates.
  3. Runs threshold checks best-effort (a failure is logged, never raised).
  4. Returns the record id with 201 Created.

POST /usage/failures | /usage/conversations | /usage/files
  Bump the matching aggregate counter; 204 No Content.

Domain errors (ValidationError, NotFoundError, StoreError) propagate to
the exception handlers in main.py.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.config import settings
from ledger.core.database import get_db_session
from ledger.core.errors import LedgerError
from ledger.schemas.analytics import UserUsageBreakdown
from ledger.schemas.usage import (
    ActivityEventCreate,
    PeriodTotals,
    RecentUsage,
    UsageRecordCreate,
    UsageRecordCreated,
    UserUsageStats,
)
from ledger.services import ledger
from ledger.services.alerts import check_usage_thresholds
from ledger.services.periods import PERIODS, Period

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Usage"])

# Type aliases for cleaner signatures
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def _check_thresholds(session: AsyncSession, user_id: uuid.UUID) -> None:
    for period in PERIODS:
        try:
            await check_usage_thresholds(session, user_id, period)
        except (LedgerError, SQLAlchemyError):
            logger.exception("Threshold check failed for user %s (%s)", user_id, period)


# ── Record path ─────────────────────────────────────────────
@router.post(
    "/records",
    response_model=UsageRecordCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Record one completed LLM call",
    description=(
        "Persists the usage record exactly as reported by the gateway and "
        "updates daily, weekly and monthly aggregates for the user and the "
        "whole system. Replaying a generation_id returns the existing id."
    ),
)
async def record_usage(payload: UsageRecordCreate, session: DbSession) -> UsageRecordCreated:
    record_id = await ledger.record_usage(session, payload.to_event())
    await _check_thresholds(session, payload.user_id)
    return UsageRecordCreated(id=record_id)


@router.post(
    "/failures",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Count one failed completion",
)
async def record_failure(payload: ActivityEventCreate, session: DbSession) -> Response:
    await ledger.record_failure(session, payload.user_id, payload.timestamp)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/conversations",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Count one started conversation",
)
async def record_conversation_started(payload: ActivityEventCreate, session: DbSession) -> Response:
    await ledger.record_conversation_started(session, payload.user_id, payload.timestamp)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/files",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Count one uploaded file",
)
async def record_file_uploaded(payload: ActivityEventCreate, session: DbSession) -> Response:
    await ledger.record_file_uploaded(session, payload.user_id, payload.timestamp)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Reads ───────────────────────────────────────────────────
@router.get(
    "/users/{user_id}",
    response_model=UserUsageStats,
    summary="Usage of one user, aggregated from raw records",
    description="start_date and end_date are epoch milliseconds, both inclusive.",
)
async def get_user_usage(
    user_id: uuid.UUID,
    session: DbSession,
    period: Period | None = None,
    start_date: Annotated[int | None, Query(ge=0)] = None,
    end_date: Annotated[int | None, Query(ge=0)] = None,
) -> UserUsageStats:
    return await ledger.get_user_usage(session, user_id, period, start_date, end_date)


@router.get(
    "/users/{user_id}/breakdown",
    response_model=UserUsageBreakdown,
    summary="BYOK vs system-funded usage of one user",
)
async def get_user_usage_breakdown(
    user_id: uuid.UUID,
    session: DbSession,
    days: Annotated[int | None, Query(ge=1, le=366)] = None,
) -> UserUsageBreakdown:
    return await ledger.get_user_usage_breakdown(
        session, user_id, days or settings.DEFAULT_BREAKDOWN_DAYS,
    )


@router.get(
    "/users/{user_id}/totals",
    response_model=PeriodTotals,
    summary="Totals of the user's current daily/weekly/monthly bucket",
)
async def get_user_period_totals(
    user_id: uuid.UUID,
    period: Period,
    session: DbSession,
) -> PeriodTotals:
    return await ledger.get_user_period_totals(session, user_id, period)


@router.get(
    "/recent",
    response_model=list[RecentUsage],
    summary="Most recent usage records",
)
async def get_recent_usage_activity(
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    user_id: uuid.UUID | None = None,
) -> list[RecentUsage]:
    return await ledger.get_recent_usage_activity(session, limit, user_id)
