"""
Quotas and usage threshold alerts.

check_usage_thresholds() compares a user's current bucket against their
quotas and raises an alert at two levels:
  • high     — usage >= ALERT_WARNING_FRACTION × limit
  • critical — usage >= limit

A user without a cost quota is checked against DEFAULT_COST_THRESHOLD_USD.
While an unresolved alert of the same type, severity, user and bucket
exists, no new one is created — so repeated ingests don't flood the
dashboard.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections import Counter
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.config import settings
from ledger.core.database import commit_or_raise
from ledger.core.errors import NotFoundError, ValidationError
from ledger.core.time import now_ms
from ledger.models.alerts import SEVERITIES, SystemAlert, UserQuota
from ledger.schemas.alerts import AlertStats
from ledger.services.ledger import get_user_period_totals, require_user
from ledger.services.periods import trailing_window_start, validate_period

logger = logging.getLogger(__name__)

TOKEN_THRESHOLD = "token_threshold"
COST_THRESHOLD = "cost_threshold"

QUOTA_UNITS = ("tokens", "cost")


def quota_type_for(period: str, unit: str) -> str:
    return f"{validate_period(period)}_{unit}"


def _validate_quota_type(value: str) -> None:
    period, _, unit = value.partition("_")
    validate_period(period)
    if unit not in QUOTA_UNITS:
        raise ValidationError(f"Unknown quota type '{value}'")


# ── Quotas ──────────────────────────────────────────────────
async def set_user_quota(
    session: AsyncSession,
    user_id: uuid.UUID,
    quota_type: str,
    limit: Decimal,
) -> tuple[UserQuota, Decimal | None]:
    """
    Create or update the user's active quota of one type.

    Returns the quota row and the previous limit (None when newly created).
    """
    _validate_quota_type(quota_type)
    if limit <= 0:
        raise ValidationError("Quota limit must be positive")
    await require_user(session, user_id)

    result = await session.execute(
        select(UserQuota).where(
            UserQuota.user_id == user_id, UserQuota.quota_type == quota_type,
        )
    )
    quota = result.scalar_one_or_none()
    stamp = now_ms()
    previous: Decimal | None = None

    if quota is None:
        quota = UserQuota(
            user_id=user_id,
            quota_type=quota_type,
            limit_value=limit,
            is_active=True,
            created_at=stamp,
            updated_at=stamp,
        )
        session.add(quota)
    else:
        previous = Decimal(quota.limit_value)
        quota.limit_value = limit
        quota.is_active = True
        quota.updated_at = stamp

    await commit_or_raise(session, "saving user quota")
    logger.info("Quota %s for user %s set to %s (was %s)", quota_type, user_id, limit, previous)
    return quota, previous


async def _active_quotas(session: AsyncSession, user_id: uuid.UUID) -> dict[str, Decimal]:
    result = await session.execute(
        select(UserQuota.quota_type, UserQuota.limit_value).where(
            UserQuota.user_id == user_id, UserQuota.is_active.is_(True),
        )
    )
    return {qtype: Decimal(limit) for qtype, limit in result.all()}


# ── Alerts ──────────────────────────────────────────────────
async def create_alert(
    session: AsyncSession,
    alert_type: str,
    severity: str,
    title: str,
    message: str,
    user_id: uuid.UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> SystemAlert:
    if severity not in SEVERITIES:
        raise ValidationError(f"Unknown severity '{severity}'")
    alert = SystemAlert(
        alert_type=alert_type,
        severity=severity,
        title=title,
        message=message,
        user_id=user_id,
        metadata_=metadata,
        is_read=False,
        is_resolved=False,
        created_at=now_ms(),
    )
    session.add(alert)
    await commit_or_raise(session, "creating alert")
    logger.warning("Alert %s [%s]: %s", alert_type, severity, message)
    return alert


async def get_alert(session: AsyncSession, alert_id: uuid.UUID) -> SystemAlert:
    alert = await session.get(SystemAlert, alert_id)
    if alert is None:
        raise NotFoundError(f"Alert {alert_id} does not exist")
    return alert


async def mark_as_read(session: AsyncSession, alert_id: uuid.UUID) -> SystemAlert:
    alert = await get_alert(session, alert_id)
    alert.is_read = True
    await commit_or_raise(session, "marking alert read")
    return alert


async def mark_as_resolved(session: AsyncSession, alert_id: uuid.UUID) -> SystemAlert:
    alert = await get_alert(session, alert_id)
    if not alert.is_resolved:
        alert.is_resolved = True
        alert.resolved_at = now_ms()
        await commit_or_raise(session, "resolving alert")
        logger.info("Alert %s resolved", alert_id)
    return alert


async def get_active_alerts(
    session: AsyncSession,
    limit: int = 50,
    severity: str | None = None,
    user_id: uuid.UUID | None = None,
) -> list[SystemAlert]:
    """
    Unread, unresolved alerts, newest first.

    With `user_id`, the user's own alerts plus system-wide ones are returned.
    """
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = select(SystemAlert).where(
        SystemAlert.is_read.is_(False), SystemAlert.is_resolved.is_(False),
    )
    if severity is not None:
        if severity not in SEVERITIES:
            raise ValidationError(f"Unknown severity '{severity}'")
        stmt = stmt.where(SystemAlert.severity == severity)
    if user_id is not None:
        stmt = stmt.where(
            (SystemAlert.user_id == user_id) | SystemAlert.user_id.is_(None)
        )
    stmt = stmt.order_by(SystemAlert.created_at.desc(), SystemAlert.id).limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def get_all_alerts(
    session: AsyncSession,
    limit: int = 100,
    offset: int = 0,
    severity: str | None = None,
    alert_type: str | None = None,
) -> list[SystemAlert]:
    """Every alert, read and resolved included, newest first."""
    if limit < 1:
        raise ValidationError("limit must be positive")
    if offset < 0:
        raise ValidationError("offset must be non-negative")
    stmt = select(SystemAlert)
    if severity is not None:
        if severity not in SEVERITIES:
            raise ValidationError(f"Unknown severity '{severity}'")
        stmt = stmt.where(SystemAlert.severity == severity)
    if alert_type is not None:
        stmt = stmt.where(SystemAlert.alert_type == alert_type)
    stmt = (
        stmt.order_by(SystemAlert.created_at.desc(), SystemAlert.id)
        .offset(offset)
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_alert_stats(
    session: AsyncSession,
    period: str | None = None,
    now: datetime.datetime | None = None,
) -> AlertStats:
    """Counts of alerts created in the trailing window (all time when no period)."""
    stmt = select(SystemAlert)
    if period is not None:
        stmt = stmt.where(SystemAlert.created_at >= trailing_window_start(period, now))
    alerts = (await session.execute(stmt)).scalars().all()

    severities = Counter(a.severity for a in alerts)
    return AlertStats(
        total_alerts=len(alerts),
        unread_alerts=sum(1 for a in alerts if not a.is_read),
        unresolved_alerts=sum(1 for a in alerts if not a.is_resolved),
        severity_breakdown={s: severities.get(s, 0) for s in reversed(SEVERITIES)},
        type_breakdown=dict(Counter(a.alert_type for a in alerts)),
    )


# ── Threshold checks ────────────────────────────────────────
def threshold_severity(used: Decimal, limit: Decimal) -> str | None:
    """'critical' at or over the limit, 'high' at the warning fraction, else None."""
    if used >= limit:
        return "critical"
    if used >= limit * Decimal(str(settings.ALERT_WARNING_FRACTION)):
        return "high"
    return None


async def _has_open_alert(
    session: AsyncSession,
    alert_type: str,
    severity: str,
    user_id: uuid.UUID,
    period: str,
    period_key: str,
) -> bool:
    result = await session.execute(
        select(SystemAlert).where(
            SystemAlert.alert_type == alert_type,
            SystemAlert.severity == severity,
            SystemAlert.user_id == user_id,
            SystemAlert.is_resolved.is_(False),
        )
    )
    for alert in result.scalars():
        meta = alert.metadata_ or {}
        if meta.get("period") == period and meta.get("period_key") == period_key:
            return True
    return False


async def check_usage_thresholds(
    session: AsyncSession,
    user_id: uuid.UUID,
    period: str,
    now: datetime.datetime | None = None,
) -> list[SystemAlert]:
    """
    Compare the user's current `period` bucket against their quotas.

    Returns the alerts created by this call (possibly none).
    """
    totals = await get_user_period_totals(session, user_id, period, now)
    quotas = await _active_quotas(session, user_id)
    created: list[SystemAlert] = []

    token_limit = quotas.get(quota_type_for(period, "tokens"))
    cost_limit = quotas.get(
        quota_type_for(period, "cost"), settings.DEFAULT_COST_THRESHOLD_USD,
    )

    checks = []
    if token_limit is not None:
        checks.append((TOKEN_THRESHOLD, Decimal(totals.total_tokens), token_limit))
    checks.append((COST_THRESHOLD, totals.total_cost, Decimal(cost_limit)))

    for alert_type, used, limit in checks:
        severity = threshold_severity(used, limit)
        if severity is None:
            continue
        if await _has_open_alert(session, alert_type, severity, user_id, period, totals.period_key):
            continue

        if alert_type == TOKEN_THRESHOLD:
            title = f"Token Usage {'Exceeded' if severity == 'critical' else 'Warning'}"
            message = f"User has used {totals.total_tokens} tokens (limit: {limit})"
        else:
            title = f"Cost {'Exceeded' if severity == 'critical' else 'Warning'}"
            message = f"User cost: ${used:.2f} (threshold: ${limit})"

        created.append(
            await create_alert(
                session,
                alert_type=alert_type,
                severity=severity,
                title=title,
                message=message,
                user_id=user_id,
                metadata={
                    "used": str(used),
                    "limit": str(limit),
                    "period": period,
                    "period_key": totals.period_key,
                },
            )
        )
    return created
