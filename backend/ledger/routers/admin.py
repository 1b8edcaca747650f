"""
Admin router — maintenance actions and the audit trail.

POST  /admin/aggregates/rebuild — replay one bucket from usage_records
PATCH /admin/models/{slug}      — enable / disable a catalog model
GET   /admin/logs               — audit entries, newest first
GET   /admin/logs/target        — audit history of one resource
GET   /admin/activity           — action counts over the last N hours

Every endpoint requires an admin user; reads take the admin's id as a
query parameter. Every change is written to admin_logs.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import commit_or_raise, get_db_session
from ledger.core.errors import StoreError
from ledger.models.admin_log import AdminLog
from ledger.schemas.admin_log import (
    AdminActivitySummary,
    AdminLogOut,
    AggregatesRebuilt,
    ModelToggle,
    ModelToggled,
    RebuildRequest,
    RebuildResult,
)
from ledger.services.admin_logs import (
    get_admin_logs,
    get_logs_for_target,
    get_recent_admin_activity,
    log_admin_action,
    require_admin,
)
from ledger.services.aggregates import rebuild_aggregates
from ledger.services.catalog import set_model_enabled

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post(
    "/aggregates/rebuild",
    response_model=RebuildResult,
    summary="Recompute one bucket's aggregates from usage records",
    description=(
        "Idempotent: replays every usage record of the bucket. Failed-request, "
        "conversation and file counters are carried over."
    ),
)
async def rebuild_bucket(payload: RebuildRequest, session: DbSession) -> RebuildResult:
    await require_admin(session, payload.admin_id)
    try:
        written = await rebuild_aggregates(session, payload.period, payload.period_key)
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Rebuild of %s %s failed", payload.period, payload.period_key)
        raise StoreError("Failed while rebuilding aggregates") from exc

    log_admin_action(
        session,
        payload.admin_id,
        AggregatesRebuilt(
            period=payload.period,
            period_key=payload.period_key,
            rows_written=written,
        ),
    )
    await commit_or_raise(session, "logging aggregate rebuild")
    return RebuildResult(period=payload.period, period_key=payload.period_key, rows_written=written)


@router.patch(
    "/models/{slug:path}",
    response_model=ModelToggled,
    summary="Enable or disable a catalog model",
)
async def toggle_model(slug: str, payload: ModelToggle, session: DbSession) -> ModelToggled:
    await require_admin(session, payload.admin_id)
    model = await set_model_enabled(session, slug, payload.is_enabled)
    details = ModelToggled(slug=model.slug, is_enabled=model.is_enabled)
    log_admin_action(session, payload.admin_id, details)
    await commit_or_raise(session, "toggling model")
    return details


@router.get(
    "/logs",
    response_model=list[AdminLogOut],
    summary="Admin audit log",
)
async def list_admin_logs(
    admin_id: uuid.UUID,
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    action: str | None = None,
) -> list[AdminLog]:
    await require_admin(session, admin_id)
    return await get_admin_logs(session, limit, action)


@router.get(
    "/logs/target",
    response_model=list[AdminLogOut],
    summary="Audit history of one resource",
    description="target_type is the table an action touched, e.g. `models` or `user_quotas`.",
)
async def list_logs_for_target(
    admin_id: uuid.UUID,
    target_type: Annotated[str, Query(min_length=1, max_length=30)],
    target_id: Annotated[str, Query(min_length=1, max_length=255)],
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[AdminLog]:
    await require_admin(session, admin_id)
    return await get_logs_for_target(session, target_type, target_id, limit)


@router.get(
    "/activity",
    response_model=AdminActivitySummary,
    summary="Recent admin activity by action and by admin",
)
async def recent_admin_activity(
    admin_id: uuid.UUID,
    session: DbSession,
    hours: Annotated[int, Query(ge=1, le=24 * 90)] = 24,
) -> AdminActivitySummary:
    await require_admin(session, admin_id)
    return await get_recent_admin_activity(session, hours)
