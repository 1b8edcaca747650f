"""
Alerts router — threshold alerts and per-user quotas.

State changes (read, resolve, quota updates) are admin actions: the acting
admin's id travels in the body and resolves / quota updates are written to
the audit log.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import commit_or_raise, get_db_session
from ledger.models.alerts import SystemAlert, UserQuota
from ledger.schemas.admin_log import AlertResolved, QuotaUpdated
from ledger.schemas.alerts import AlertAction, AlertOut, AlertStats, QuotaOut, QuotaUpdate, Severity
from ledger.services import alerts
from ledger.services.admin_logs import log_admin_action, require_admin
from ledger.services.periods import Period

router = APIRouter(tags=["Alerts"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get(
    "",
    response_model=list[AlertOut],
    summary="Unread, unresolved alerts (newest first)",
)
async def get_active_alerts(
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    severity: Severity | None = None,
    user_id: uuid.UUID | None = None,
) -> list[SystemAlert]:
    return await alerts.get_active_alerts(session, limit, severity, user_id)


@router.get(
    "/all",
    response_model=list[AlertOut],
    summary="Alert history, read and resolved included (newest first)",
)
async def get_all_alerts(
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
    severity: Severity | None = None,
    alert_type: Annotated[str | None, Query(max_length=50)] = None,
) -> list[SystemAlert]:
    return await alerts.get_all_alerts(session, limit, offset, severity, alert_type)


@router.get(
    "/stats",
    response_model=AlertStats,
    summary="Alert counts by state, severity and type",
)
async def get_alert_stats(session: DbSession, period: Period | None = None) -> AlertStats:
    return await alerts.get_alert_stats(session, period)


@router.post(
    "/{alert_id}/read",
    response_model=AlertOut,
    summary="Mark an alert as read",
)
async def mark_as_read(alert_id: uuid.UUID, payload: AlertAction, session: DbSession) -> SystemAlert:
    await require_admin(session, payload.admin_id)
    return await alerts.mark_as_read(session, alert_id)


@router.post(
    "/{alert_id}/resolve",
    response_model=AlertOut,
    summary="Resolve an alert",
)
async def mark_as_resolved(
    alert_id: uuid.UUID, payload: AlertAction, session: DbSession,
) -> SystemAlert:
    await require_admin(session, payload.admin_id)
    alert = await alerts.mark_as_resolved(session, alert_id)
    log_admin_action(
        session,
        payload.admin_id,
        AlertResolved(alert_id=alert.id, alert_type=alert.alert_type),
    )
    await commit_or_raise(session, "logging alert resolution")
    return alert


@router.put(
    "/quotas",
    response_model=QuotaOut,
    summary="Create or update a user quota",
)
async def set_user_quota(payload: QuotaUpdate, session: DbSession) -> UserQuota:
    await require_admin(session, payload.admin_id)
    quota, previous = await alerts.set_user_quota(
        session, payload.user_id, payload.quota_type, payload.limit,
    )
    log_admin_action(
        session,
        payload.admin_id,
        QuotaUpdated(
            user_id=payload.user_id,
            quota_type=payload.quota_type,
            limit=payload.limit,
            previous_limit=previous,
        ),
    )
    await commit_or_raise(session, "logging quota update")
    return quota
