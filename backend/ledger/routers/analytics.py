"""
Analytics router — dashboard views over aggregates and records.

Decimal precision is preserved end-to-end (DB NUMERIC → Python Decimal → JSON string).

Endpoints:
  GET /analytics/system      — newest-first system-wide buckets of a period
  GET /analytics/top-users   — heaviest users of the current bucket
  GET /analytics/models      — per-model totals over a trailing window
  POST /analytics/metrics/daily   — store one date's app-wide snapshot
  GET  /analytics/metrics/history — stored snapshots, oldest first
  GET  /analytics/activity        — active users and messages per day
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import get_db_session
from ledger.models.metrics import DailyMetrics
from ledger.schemas.analytics import (
    DailyMetricsOut,
    ModelUsageStatsOut,
    StoreMetricsRequest,
    SystemUsageOut,
    TopUserOut,
    UserActivityDay,
)
from ledger.services import ledger, metrics
from ledger.services.periods import Period

router = APIRouter(tags=["Analytics"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


# ── 1. System usage ─────────────────────────────────────────
@router.get(
    "/system",
    response_model=list[SystemUsageOut],
    summary="System-wide usage per bucket",
    description=(
        "Reads the system aggregates of one period, newest bucket first. "
        "success_rate is successful / total requests (0 for an empty bucket)."
    ),
)
async def get_system_usage(
    period: Period,
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=366)] = 30,
) -> list[SystemUsageOut]:
    return await ledger.get_system_usage(session, period, limit)


# ── 2. Top users ────────────────────────────────────────────
@router.get(
    "/top-users",
    response_model=list[TopUserOut],
    summary="Top users of the current bucket by tokens",
)
async def get_top_users(
    period: Period,
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> list[TopUserOut]:
    return await ledger.get_top_users_by_usage(session, period, limit)


# ── 3. Model usage ──────────────────────────────────────────
@router.get(
    "/models",
    response_model=list[ModelUsageStatsOut],
    summary="Most used models",
    description="Window: daily = last 24h, weekly = 7 days, monthly = 30 days; omitted = all time.",
)
async def get_model_usage(
    session: DbSession,
    period: Period | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> list[ModelUsageStatsOut]:
    return await ledger.get_model_usage_stats(session, period, limit)


# ── 4. Daily metrics ────────────────────────────────────────
@router.post(
    "/metrics/daily",
    response_model=DailyMetricsOut,
    summary="Store the app-wide snapshot of one date",
    description="Defaults to today (UTC). Storing a date again overwrites its snapshot.",
)
async def store_daily_metrics(payload: StoreMetricsRequest, session: DbSession) -> DailyMetrics:
    return await metrics.store_daily_metrics(session, payload.date)


@router.get(
    "/metrics/history",
    response_model=list[DailyMetricsOut],
    summary="Stored daily snapshots, oldest first",
)
async def get_historical_metrics(
    session: DbSession,
    days: Annotated[int, Query(ge=1, le=366)] = 30,
) -> list[DailyMetrics]:
    return await metrics.get_historical_metrics(session, days)


@router.get(
    "/activity",
    response_model=list[UserActivityDay],
    summary="Active users, completions and messages per day",
)
async def get_user_activity(
    session: DbSession,
    days: Annotated[int, Query(ge=1, le=366)] = 30,
) -> list[UserActivityDay]:
    return await metrics.get_user_activity_stats(session, days)
