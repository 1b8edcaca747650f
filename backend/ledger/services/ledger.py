"""
Usage ledger — the record path and the read-time query surface.

WRITE PATH (record_usage):
  1. Validate the event (nothing is written for a malformed event).
  2. Check that user, conversation and message exist.
  3. Insert the immutable usage record and COMMIT it — the record is the
     source of truth.
  4. Fan out to the six aggregate buckets and commit them together.
     A failure here is surfaced as StoreError; the record is not rolled
     back (aggregates are rebuildable from records).

READ PATH:
  Pure reads. get_user_usage aggregates raw records on the fly; system and
  top-user dashboards read the pre-computed aggregate rows.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from decimal import Decimal
from typing import TypeVar

from sqlalchemy import Row, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.errors import NotFoundError, StoreError, ValidationError
from ledger.core.time import from_epoch_ms, now_utc, to_epoch_ms
from ledger.models.aggregates import UsageAggregate
from ledger.models.catalog import CatalogModel
from ledger.models.conversation import Conversation, Message
from ledger.models.usage import UsageRecord
from ledger.models.user import User
from ledger.schemas.analytics import (
    BreakdownDay,
    FundingModelUsage,
    FundingUsage,
    ModelUsageStatsOut,
    SystemUsageOut,
    TopUserOut,
    TopUserStats,
    UsageTotals,
    UserSummary,
    UserUsageBreakdown,
)
from ledger.schemas.usage import (
    DailyUsage,
    ModelUsage,
    PeriodTotals,
    RecentUsage,
    RecentUsageUser,
    UserUsageStats,
)
from ledger.services.aggregates import (
    AggregateTotals,
    Reducer,
    apply_conversation_started,
    apply_failure,
    apply_file_uploaded,
    apply_success,
    apply_to_buckets,
    get_aggregate,
)
from ledger.services.events import UsageEvent, validate_usage_event
from ledger.services.periods import (
    current_period_key,
    daily_key,
    period_keys,
    trailing_window_start,
    validate_period,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ZERO = Decimal("0")


async def _guarded(session: AsyncSession, what: str, op: Callable[[], Awaitable[T]]) -> T:
    """Run `op`; on a database error roll back, log, and raise StoreError."""
    try:
        return await op()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Store failure while %s", what)
        raise StoreError(f"Failed while {what}") from exc


# ── Existence checks ────────────────────────────────────────
async def _require(session: AsyncSession, model: type, entity_id: uuid.UUID, label: str) -> None:
    row = await session.get(model, entity_id)
    if row is None:
        raise NotFoundError(f"{label} {entity_id} does not exist")


async def require_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} does not exist")
    return user


# ══════════════════════════════════════════════════════════
#  WRITE PATH
# ══════════════════════════════════════════════════════════
async def record_usage(session: AsyncSession, event: UsageEvent) -> uuid.UUID:
    """
    Persist one successful completion and update its six aggregates.

    Returns:
        The id of the usage record. If a record with the same
        generation_id already exists, its id is returned and nothing
        is written.

    Raises:
        ValidationError: malformed event (before any write).
        NotFoundError:   unknown user, conversation or message.
        StoreError:      the record insert or the aggregate update failed.
    """
    validate_usage_event(event)

    async def _load_existing() -> uuid.UUID | None:
        await _require(session, User, event.user_id, "User")
        await _require(session, Conversation, event.conversation_id, "Conversation")
        await _require(session, Message, event.message_id, "Message")
        stmt = select(UsageRecord.id).where(UsageRecord.generation_id == event.generation_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    existing_id = await _guarded(session, "checking usage references", _load_existing)
    if existing_id is not None:
        logger.info(
            "Generation %s already recorded as %s — skipping", event.generation_id, existing_id,
        )
        return existing_id

    # ── 1. Insert the record (source of truth) ──────────────
    record = event.to_record()

    async def _insert() -> uuid.UUID:
        session.add(record)
        await session.commit()
        return record.id

    record_id = await _guarded(session, "inserting usage record", _insert)

    # ── 2. Fan out to aggregates ────────────────────────────
    def reducer(prior: AggregateTotals | None) -> AggregateTotals:
        return apply_success(prior, event)

    await _apply_and_commit(session, event.user_id, event.timestamp, reducer, "updating usage aggregates")

    logger.info(
        "Recorded usage %s: user=%s model=%s tokens=%d cost=$%s",
        record_id, event.user_id, event.model_slug, event.total_tokens, event.cost_in_usd,
    )
    return record_id


async def _apply_and_commit(
    session: AsyncSession,
    user_id: uuid.UUID,
    timestamp_ms: int,
    reducer: Reducer,
    what: str,
) -> None:
    async def _apply() -> None:
        await apply_to_buckets(session, user_id, timestamp_ms, reducer)
        await session.commit()

    await _guarded(session, what, _apply)


async def _record_activity(
    session: AsyncSession,
    user_id: uuid.UUID,
    timestamp_ms: int,
    reducer: Reducer,
    what: str,
) -> None:
    if timestamp_ms < 0:
        raise ValidationError(f"timestamp must be non-negative, got {timestamp_ms}")
    await _guarded(session, "checking user", lambda: require_user(session, user_id))
    await _apply_and_commit(session, user_id, timestamp_ms, reducer, what)
    logger.debug("Recorded %s for user %s", what, user_id)


async def record_failure(session: AsyncSession, user_id: uuid.UUID, timestamp_ms: int) -> None:
    """Count one failed completion (no usage record is written)."""
    await _record_activity(session, user_id, timestamp_ms, apply_failure, "recording failed request")


async def record_conversation_started(
    session: AsyncSession, user_id: uuid.UUID, timestamp_ms: int,
) -> None:
    await _record_activity(
        session, user_id, timestamp_ms, apply_conversation_started, "recording conversation start",
    )


async def record_file_uploaded(
    session: AsyncSession, user_id: uuid.UUID, timestamp_ms: int,
) -> None:
    await _record_activity(
        session, user_id, timestamp_ms, apply_file_uploaded, "recording file upload",
    )


# ══════════════════════════════════════════════════════════
#  READ PATH
# ══════════════════════════════════════════════════════════
async def get_user_usage(
    session: AsyncSession,
    user_id: uuid.UUID,
    period: str | None = None,
    start_date: int | None = None,
    end_date: int | None = None,
) -> UserUsageStats:
    """
    Aggregate a user's raw records on the fly.

    start_date / end_date are epoch ms, both inclusive, each optional.
    `period` is validated and echoed back; the time series is always daily.
    """
    if period is not None:
        validate_period(period)
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    stmt = select(UsageRecord).where(UsageRecord.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(UsageRecord.timestamp >= start_date)
    if end_date is not None:
        stmt = stmt.where(UsageRecord.timestamp <= end_date)
    stmt = stmt.order_by(UsageRecord.timestamp, UsageRecord.id)

    async def _fetch() -> list[UsageRecord]:
        return list((await session.execute(stmt)).scalars().all())

    records = await _guarded(session, "reading user usage", _fetch)

    models: dict[str, ModelUsage] = {}
    days: dict[str, DailyUsage] = {}
    total_cost = _ZERO
    processing_total = 0

    for record in records:
        cost = Decimal(record.cost_in_usd)
        total_cost += cost
        processing_total += record.processing_time_ms or 0

        entry = models.setdefault(record.model_slug, ModelUsage(count=0, tokens=0, cost=_ZERO))
        entry.count += 1
        entry.tokens += record.total_tokens
        entry.cost += cost

        day = period_keys(record.timestamp).daily
        bucket = days.setdefault(day, DailyUsage(date=day, tokens=0, cost=_ZERO, requests=0))
        bucket.tokens += record.total_tokens
        bucket.cost += cost
        bucket.requests += 1

    count = len(records)
    return UserUsageStats(
        user_id=user_id,
        period=period,
        start_date=start_date,
        end_date=end_date,
        total_requests=count,
        total_tokens=sum(r.total_tokens for r in records),
        prompt_tokens=sum(r.prompt_tokens for r in records),
        completion_tokens=sum(r.completion_tokens for r in records),
        cached_tokens=sum(r.cached_tokens or 0 for r in records),
        total_cost=total_cost,
        avg_processing_time=processing_total / count if count else 0.0,
        model_breakdown={slug: models[slug] for slug in sorted(models)},
        daily_usage=[days[key] for key in sorted(days)],
    )


def _success_rate(row: UsageAggregate) -> float:
    if row.total_requests == 0:
        return 0.0
    return row.successful_requests / row.total_requests


async def get_system_usage(
    session: AsyncSession,
    period: str,
    limit: int = 30,
) -> list[SystemUsageOut]:
    """Most recent `limit` system-wide buckets of `period`, newest first."""
    validate_period(period)
    if limit < 1:
        raise ValidationError("limit must be positive")

    stmt = (
        select(UsageAggregate)
        .where(UsageAggregate.period == period, UsageAggregate.user_id.is_(None))
        # period keys sort chronologically within one period
        .order_by(UsageAggregate.period_key.desc())
        .limit(limit)
    )

    async def _fetch() -> list[UsageAggregate]:
        return list((await session.execute(stmt)).scalars().all())

    rows = await _guarded(session, "reading system usage", _fetch)
    return [
        SystemUsageOut(
            period=row.period,
            period_key=row.period_key,
            total_requests=row.total_requests,
            successful_requests=row.successful_requests,
            failed_requests=row.failed_requests,
            total_tokens=row.total_tokens,
            prompt_tokens=row.prompt_tokens,
            completion_tokens=row.completion_tokens,
            total_cost=Decimal(row.total_cost_usd),
            avg_processing_time=row.avg_processing_time_ms,
            success_rate=_success_rate(row),
            unique_models_used=row.unique_models_used,
            conversations_started=row.conversations_started,
            files_uploaded=row.files_uploaded,
        )
        for row in rows
    ]


async def get_top_users_by_usage(
    session: AsyncSession,
    period: str,
    limit: int = 10,
    now: datetime.datetime | None = None,
) -> list[TopUserOut]:
    """
    Top `limit` users of the current bucket by total_tokens (descending).

    Users without an aggregate row for the bucket are absent, not zero-filled.
    """
    validate_period(period)
    if limit < 1:
        raise ValidationError("limit must be positive")
    key = current_period_key(period, now)

    stmt = (
        select(UsageAggregate, User)
        .join(User, User.id == UsageAggregate.user_id)
        .where(UsageAggregate.period == period, UsageAggregate.period_key == key)
        .order_by(UsageAggregate.total_tokens.desc(), User.email)
        .limit(limit)
    )

    async def _fetch() -> Sequence[Row[tuple[UsageAggregate, User]]]:
        return (await session.execute(stmt)).all()

    rows = await _guarded(session, "reading top users", _fetch)
    return [
        TopUserOut(
            user=UserSummary.model_validate(user),
            stats=TopUserStats(
                total_requests=agg.total_requests,
                total_tokens=agg.total_tokens,
                total_cost=Decimal(agg.total_cost_usd),
                avg_processing_time=agg.avg_processing_time_ms,
                conversations_started=agg.conversations_started,
                files_uploaded=agg.files_uploaded,
            ),
        )
        for agg, user in rows
    ]


async def get_user_period_totals(
    session: AsyncSession,
    user_id: uuid.UUID,
    period: str,
    now: datetime.datetime | None = None,
) -> PeriodTotals:
    """Cumulative totals of the user's current bucket (zeros when absent)."""
    validate_period(period)
    key = current_period_key(period, now)
    row = await _guarded(
        session, "reading period totals", lambda: get_aggregate(session, period, key, user_id),
    )
    if row is None:
        return PeriodTotals(user_id=user_id, period=period, period_key=key)
    return PeriodTotals(
        user_id=user_id,
        period=period,
        period_key=key,
        total_requests=row.total_requests,
        total_tokens=row.total_tokens,
        total_cost=Decimal(row.total_cost_usd),
    )


async def get_user_usage_breakdown(
    session: AsyncSession,
    user_id: uuid.UUID,
    days: int = 30,
    now: datetime.datetime | None = None,
) -> UserUsageBreakdown:
    """
    Split the last `days` days of a user's usage into BYOK and system spend.

    A model counts as BYOK when its catalog entry has requires_byok set;
    slugs missing from the catalog count as system-funded. Totals and the
    zero-filled daily series share one window: `days` UTC dates, from the
    first date's midnight up to `now`.
    """
    if days < 1:
        raise ValidationError("days must be positive")
    end_ms = to_epoch_ms(now if now is not None else now_utc())
    today = from_epoch_ms(end_ms).date()
    first_day = today - datetime.timedelta(days=days - 1)
    start_ms = to_epoch_ms(
        datetime.datetime.combine(first_day, datetime.time(), tzinfo=datetime.timezone.utc)
    )

    stmt = (
        select(UsageRecord)
        .where(
            UsageRecord.user_id == user_id,
            UsageRecord.timestamp >= start_ms,
            UsageRecord.timestamp <= end_ms,
        )
        .order_by(UsageRecord.timestamp, UsageRecord.id)
    )

    async def _fetch() -> tuple[list[UsageRecord], dict[str, bool]]:
        records = list((await session.execute(stmt)).scalars().all())
        slugs = {r.model_slug for r in records}
        byok: dict[str, bool] = {}
        if slugs:
            catalog = await session.execute(
                select(CatalogModel.slug, CatalogModel.requires_byok)
                .where(CatalogModel.slug.in_(slugs))
            )
            byok = {slug: requires for slug, requires in catalog.all()}
        return records, byok

    records, byok_map = await _guarded(session, "reading usage breakdown", _fetch)

    byok_usage = FundingUsage()
    system_usage = FundingUsage()
    series = {
        daily_key(today - datetime.timedelta(days=offset)): BreakdownDay(
            date=daily_key(today - datetime.timedelta(days=offset)),
            byok_cost=_ZERO, system_cost=_ZERO,
            byok_tokens=0, system_tokens=0,
            total_cost=_ZERO, total_tokens=0,
        )
        for offset in range(days - 1, -1, -1)
    }

    for record in records:
        is_byok = byok_map.get(record.model_slug, False)
        target = byok_usage if is_byok else system_usage
        cost = Decimal(record.cost_in_usd)

        target.total_tokens += record.total_tokens
        target.total_cost += cost
        target.request_count += 1
        per_model = target.models.setdefault(record.model_slug, FundingModelUsage())
        per_model.tokens += record.total_tokens
        per_model.cost += cost
        per_model.count += 1

        day = series[period_keys(record.timestamp).daily]
        if is_byok:
            day.byok_cost += cost
            day.byok_tokens += record.total_tokens
        else:
            day.system_cost += cost
            day.system_tokens += record.total_tokens
        day.total_cost += cost
        day.total_tokens += record.total_tokens

    return UserUsageBreakdown(
        user_id=user_id,
        period=f"{days} days",
        start_date=start_ms,
        end_date=end_ms,
        byok_usage=byok_usage,
        system_usage=system_usage,
        total_usage=UsageTotals(
            total_tokens=byok_usage.total_tokens + system_usage.total_tokens,
            total_cost=byok_usage.total_cost + system_usage.total_cost,
            request_count=byok_usage.request_count + system_usage.request_count,
        ),
        daily_usage=list(series.values()),
    )


async def get_model_usage_stats(
    session: AsyncSession,
    period: str | None = None,
    limit: int = 20,
    now: datetime.datetime | None = None,
) -> list[ModelUsageStatsOut]:
    """Per-model totals over a trailing window (1 / 7 / 30 days, or all time)."""
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = select(UsageRecord).order_by(UsageRecord.timestamp, UsageRecord.id)
    if period is not None:
        stmt = stmt.where(UsageRecord.timestamp >= trailing_window_start(period, now))

    async def _fetch() -> list[UsageRecord]:
        return list((await session.execute(stmt)).scalars().all())

    records = await _guarded(session, "reading model usage", _fetch)

    stats: dict[str, dict] = {}
    for record in records:
        entry = stats.setdefault(
            record.model_slug,
            {"count": 0, "total_tokens": 0, "total_cost": _ZERO, "processing": 0},
        )
        entry["count"] += 1
        entry["total_tokens"] += record.total_tokens
        entry["total_cost"] += Decimal(record.cost_in_usd)
        entry["processing"] += record.processing_time_ms or 0

    ranked = sorted(stats.items(), key=lambda item: (-item[1]["count"], item[0]))
    return [
        ModelUsageStatsOut(
            model_slug=slug,
            count=entry["count"],
            total_tokens=entry["total_tokens"],
            total_cost=entry["total_cost"],
            avg_processing_time=entry["processing"] / entry["count"],
        )
        for slug, entry in ranked[:limit]
    ]


async def get_recent_usage_activity(
    session: AsyncSession,
    limit: int = 50,
    user_id: uuid.UUID | None = None,
) -> list[RecentUsage]:
    """Newest usage records with the user's name/email and conversation title."""
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = (
        select(UsageRecord, User, Conversation.title)
        .outerjoin(User, User.id == UsageRecord.user_id)
        .outerjoin(Conversation, Conversation.id == UsageRecord.conversation_id)
    )
    if user_id is not None:
        stmt = stmt.where(UsageRecord.user_id == user_id)
    stmt = stmt.order_by(UsageRecord.timestamp.desc(), UsageRecord.id).limit(limit)

    async def _fetch() -> Sequence[Row[tuple[UsageRecord, User | None, str | None]]]:
        return (await session.execute(stmt)).all()

    rows = await _guarded(session, "reading recent usage", _fetch)
    activity = []
    for record, user, title in rows:
        item = RecentUsage.model_validate(record)
        if user is not None:
            item.user = RecentUsageUser(name=user.name, email=user.email)
        if title:
            item.conversation_title = title
        activity.append(item)
    return activity
