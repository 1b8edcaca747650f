"""
Admin audit log.

Every admin action is written with a typed `details` payload (see
ledger.schemas.admin_log). Rows are read back through the same union, so a
row whose details don't match its action fails loudly instead of being
rendered half-empty.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections import Counter

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.errors import PermissionDeniedError, ValidationError
from ledger.core.time import MS_PER_HOUR, now_ms, now_utc, to_epoch_ms
from ledger.models.admin_log import AdminLog
from ledger.models.user import User
from ledger.schemas.admin_log import AdminActionDetails, AdminActivitySummary, details_adapter

logger = logging.getLogger(__name__)


async def require_admin(session: AsyncSession, admin_id: uuid.UUID) -> User:
    """Return the acting user, or raise PermissionDeniedError unless they are an admin."""
    user = await session.get(User, admin_id)
    if user is None or not user.is_admin:
        logger.warning("Admin action refused for user %s", admin_id)
        raise PermissionDeniedError(f"User {admin_id} is not an admin")
    return user


def _target_of(details: AdminActionDetails) -> tuple[str | None, str | None]:
    match details.action:
        case "aggregates_rebuilt":
            return "usage_aggregates", f"{details.period}:{details.period_key}"
        case "quota_updated":
            return "user_quotas", str(details.user_id)
        case "alert_resolved":
            return "system_alerts", str(details.alert_id)
        case "model_toggled":
            return "models", details.slug
    return None, None


def log_admin_action(
    session: AsyncSession,
    admin_id: uuid.UUID,
    details: AdminActionDetails,
) -> AdminLog:
    """Stage an audit row on the session. The caller commits."""
    target_type, target_id = _target_of(details)
    entry = AdminLog(
        admin_id=admin_id,
        action=details.action,
        target_type=target_type,
        target_id=target_id,
        details=details_adapter.dump_python(details, mode="json"),
        timestamp=now_ms(),
    )
    session.add(entry)
    logger.info("Admin %s: %s on %s %s", admin_id, details.action, target_type, target_id)
    return entry


async def get_admin_logs(
    session: AsyncSession,
    limit: int = 100,
    action: str | None = None,
) -> list[AdminLog]:
    """Newest audit entries first, optionally filtered by action."""
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = select(AdminLog)
    if action is not None:
        stmt = stmt.where(AdminLog.action == action)
    stmt = stmt.order_by(AdminLog.timestamp.desc(), AdminLog.id).limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def get_logs_for_target(
    session: AsyncSession,
    target_type: str,
    target_id: str,
    limit: int = 100,
) -> list[AdminLog]:
    """Audit history of one resource (a user's quotas, a model, a bucket), newest first."""
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = (
        select(AdminLog)
        .where(AdminLog.target_type == target_type, AdminLog.target_id == target_id)
        .order_by(AdminLog.timestamp.desc(), AdminLog.id)
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_recent_admin_activity(
    session: AsyncSession,
    hours: int = 24,
    now: datetime.datetime | None = None,
) -> AdminActivitySummary:
    """
    Admin actions of the last `hours` hours, counted per action and per admin.

    Admins are keyed by name; entries whose admin no longer exists count
    under "Unknown".
    """
    if hours < 1:
        raise ValidationError("hours must be positive")
    cutoff = to_epoch_ms(now if now is not None else now_utc()) - hours * MS_PER_HOUR

    result = await session.execute(
        select(AdminLog.action, User.name)
        .outerjoin(User, User.id == AdminLog.admin_id)
        .where(AdminLog.timestamp >= cutoff)
    )
    rows = result.all()
    return AdminActivitySummary(
        total_actions=len(rows),
        action_counts=dict(Counter(action for action, _ in rows)),
        admin_activity=dict(Counter(name or "Unknown" for _, name in rows)),
        time_range=f"{hours} hours",
    )
