"""
Daily metrics: app-wide snapshots per UTC date and a user-activity series.

store_daily_metrics() derives one date's totals from the ledger itself:
  • active users, tokens, cost and per-model counts from usage_records
  • conversations started from the system daily aggregate
  • messages from the conversation store's message rows
Storing a date again overwrites its snapshot, so a cron can re-run safely.
"""

from __future__ import annotations

import datetime
import logging
from collections import Counter, defaultdict
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import commit_or_raise
from ledger.core.errors import ValidationError
from ledger.core.time import ensure_utc, from_epoch_ms, now_ms, now_utc
from ledger.models.conversation import Message
from ledger.models.metrics import DailyMetrics
from ledger.models.usage import UsageRecord
from ledger.models.user import User
from ledger.schemas.analytics import UserActivityDay
from ledger.services.aggregates import get_aggregate
from ledger.services.periods import DAILY, daily_key, period_bounds

logger = logging.getLogger(__name__)


def _today(now: datetime.datetime | None) -> datetime.date:
    return ensure_utc(now if now is not None else now_utc()).date()


async def store_daily_metrics(
    session: AsyncSession,
    date: str | None = None,
    now: datetime.datetime | None = None,
) -> DailyMetrics:
    """Compute and upsert the snapshot of `date` (YYYY-MM-DD, default today)."""
    key = date if date is not None else daily_key(_today(now))
    start_ms, end_ms = period_bounds(DAILY, key)

    result = await session.execute(
        select(
            UsageRecord.user_id,
            UsageRecord.model_slug,
            UsageRecord.total_tokens,
            UsageRecord.cost_in_usd,
        )
        .where(UsageRecord.timestamp >= start_ms, UsageRecord.timestamp < end_ms)
    )
    records = result.all()

    total_users = (await session.execute(select(func.count()).select_from(User))).scalar_one()
    total_messages = (
        await session.execute(
            select(func.count())
            .select_from(Message)
            .where(
                Message.created_at >= from_epoch_ms(start_ms),
                Message.created_at < from_epoch_ms(end_ms),
            )
        )
    ).scalar_one()
    system_day = await get_aggregate(session, DAILY, key, None)

    values = dict(
        total_users=total_users,
        active_users=len({user_id for user_id, _, _, _ in records}),
        total_conversations=system_day.conversations_started if system_day is not None else 0,
        total_messages=total_messages,
        total_tokens_used=sum(tokens for _, _, tokens, _ in records),
        total_cost=sum((Decimal(cost) for _, _, _, cost in records), Decimal("0")),
        model_usage=dict(Counter(slug for _, slug, _, _ in records)),
        created_at=now_ms(),
    )

    existing = (
        await session.execute(select(DailyMetrics).where(DailyMetrics.date == key))
    ).scalar_one_or_none()
    if existing is None:
        snapshot = DailyMetrics(date=key, **values)
        session.add(snapshot)
    else:
        snapshot = existing
        for name, value in values.items():
            setattr(snapshot, name, value)

    await commit_or_raise(session, "storing daily metrics")
    logger.info(
        "Stored metrics for %s: %d active users, %d tokens, $%s",
        key, snapshot.active_users, snapshot.total_tokens_used, snapshot.total_cost,
    )
    return snapshot


async def get_historical_metrics(
    session: AsyncSession,
    days: int = 30,
    now: datetime.datetime | None = None,
) -> list[DailyMetrics]:
    """Stored snapshots of the last `days` dates, oldest first."""
    if days < 1:
        raise ValidationError("days must be positive")
    first = daily_key(_today(now) - datetime.timedelta(days=days - 1))
    stmt = (
        select(DailyMetrics)
        .where(DailyMetrics.date >= first)
        .order_by(DailyMetrics.date)
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_user_activity_stats(
    session: AsyncSession,
    days: int = 30,
    now: datetime.datetime | None = None,
) -> list[UserActivityDay]:
    """
    Active users, completions and messages for each of the last `days`
    UTC dates ending today, oldest first and zero-filled.
    """
    if days < 1:
        raise ValidationError("days must be positive")
    today = _today(now)
    first_day = today - datetime.timedelta(days=days - 1)
    start_ms, _ = period_bounds(DAILY, daily_key(first_day))
    _, end_ms = period_bounds(DAILY, daily_key(today))

    usage = await session.execute(
        select(UsageRecord.user_id, UsageRecord.timestamp)
        .where(UsageRecord.timestamp >= start_ms, UsageRecord.timestamp < end_ms)
    )
    active: defaultdict[str, set] = defaultdict(set)
    completions: Counter[str] = Counter()
    for user_id, timestamp in usage.all():
        key = daily_key(from_epoch_ms(timestamp).date())
        active[key].add(user_id)
        completions[key] += 1

    created = await session.execute(
        select(Message.created_at).where(
            Message.created_at >= from_epoch_ms(start_ms),
            Message.created_at < from_epoch_ms(end_ms),
        )
    )
    messages = Counter(daily_key(ensure_utc(stamp).date()) for stamp in created.scalars())

    series = []
    for offset in range(days - 1, -1, -1):
        key = daily_key(today - datetime.timedelta(days=offset))
        series.append(
            UserActivityDay(
                date=key,
                active_users=len(active[key]),
                requests=completions[key],
                messages=messages[key],
            )
        )
    return series
