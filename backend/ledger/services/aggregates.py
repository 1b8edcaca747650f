"""
Aggregate maintenance: pure reducers + storage upserts + idempotent rebuild.

Every usage record fans out to six buckets:
    {daily, weekly, monthly} × {the user, system-wide}

The increment logic is a set of pure functions
    (prior totals | None, event) → new totals
so it can be unit-tested without a database. The storage wrapper reads
the row (SELECT … FOR UPDATE on PostgreSQL), applies the reducer, writes
the result back — create-if-absent, else update.

CONSISTENCY:
  Each upsert holds a row lock between read and write, so no write is
  computed from a half-updated aggregate. Under heavy concurrency the
  very first insert of a bucket can still race (unique index violation →
  StoreError); aggregates are derived state and rebuild_aggregates()
  recomputes any bucket from usage_records.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models.aggregates import UsageAggregate
from ledger.models.usage import UsageRecord
from ledger.services.events import UsageEvent
from ledger.services.periods import PERIODS, period_bounds, period_keys, validate_period

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


# ── Pure state ──────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class AggregateTotals:
    """Snapshot of one bucket's counters."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_cost_usd: Decimal = _ZERO
    avg_processing_time_ms: float = 0.0
    model_slugs: tuple[str, ...] = ()
    conversations_started: int = 0
    files_uploaded: int = 0

    @property
    def unique_models_used(self) -> int:
        return len(self.model_slugs)

    @classmethod
    def from_row(cls, row: UsageAggregate) -> AggregateTotals:
        return cls(
            total_requests=row.total_requests,
            successful_requests=row.successful_requests,
            failed_requests=row.failed_requests,
            total_tokens=row.total_tokens,
            prompt_tokens=row.prompt_tokens,
            completion_tokens=row.completion_tokens,
            total_cost_usd=Decimal(row.total_cost_usd),
            avg_processing_time_ms=float(row.avg_processing_time_ms),
            model_slugs=tuple(row.model_slugs or ()),
            conversations_started=row.conversations_started,
            files_uploaded=row.files_uploaded,
        )


Reducer = Callable[[AggregateTotals | None], AggregateTotals]


# ── Reducers ────────────────────────────────────────────────
def apply_success(prior: AggregateTotals | None, event: UsageEvent) -> AggregateTotals:
    """
    Fold one successful completion into a bucket.

    avg_processing_time_ms is a weighted running mean over successful
    requests: (old_avg * n + sample) / (n + 1), n = pre-increment count.
    A missing sample counts as 0.
    """
    base = prior or AggregateTotals()
    n = base.successful_requests
    sample = event.processing_time_ms or 0

    slugs = base.model_slugs
    if event.model_slug not in slugs:
        slugs = (*slugs, event.model_slug)

    return dataclasses.replace(
        base,
        total_requests=base.total_requests + 1,
        successful_requests=n + 1,
        total_tokens=base.total_tokens + event.total_tokens,
        prompt_tokens=base.prompt_tokens + event.prompt_tokens,
        completion_tokens=base.completion_tokens + event.completion_tokens,
        total_cost_usd=base.total_cost_usd + event.cost_in_usd,
        avg_processing_time_ms=(base.avg_processing_time_ms * n + sample) / (n + 1),
        model_slugs=slugs,
    )


def apply_failure(prior: AggregateTotals | None) -> AggregateTotals:
    base = prior or AggregateTotals()
    return dataclasses.replace(
        base,
        total_requests=base.total_requests + 1,
        failed_requests=base.failed_requests + 1,
    )


def apply_conversation_started(prior: AggregateTotals | None) -> AggregateTotals:
    base = prior or AggregateTotals()
    return dataclasses.replace(base, conversations_started=base.conversations_started + 1)


def apply_file_uploaded(prior: AggregateTotals | None) -> AggregateTotals:
    base = prior or AggregateTotals()
    return dataclasses.replace(base, files_uploaded=base.files_uploaded + 1)


# ── Storage wrapper ─────────────────────────────────────────
def _bucket_filter(
    period: str, period_key: str, user_id: uuid.UUID | None,
) -> tuple[ColumnElement[bool], ...]:
    scope = (
        UsageAggregate.user_id.is_(None)
        if user_id is None
        else UsageAggregate.user_id == user_id
    )
    return (
        UsageAggregate.period == period,
        UsageAggregate.period_key == period_key,
        scope,
    )


async def get_aggregate(
    session: AsyncSession,
    period: str,
    period_key: str,
    user_id: uuid.UUID | None,
    *,
    for_update: bool = False,
) -> UsageAggregate | None:
    """Fetch one bucket row (user_id None = system-wide)."""
    stmt = select(UsageAggregate).where(*_bucket_filter(period, period_key, user_id))
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def _write_totals(row: UsageAggregate, totals: AggregateTotals) -> None:
    row.total_requests = totals.total_requests
    row.successful_requests = totals.successful_requests
    row.failed_requests = totals.failed_requests
    row.total_tokens = totals.total_tokens
    row.prompt_tokens = totals.prompt_tokens
    row.completion_tokens = totals.completion_tokens
    row.total_cost_usd = totals.total_cost_usd
    row.avg_processing_time_ms = totals.avg_processing_time_ms
    # New list object so the JSON column is flagged dirty
    row.model_slugs = list(totals.model_slugs)
    row.unique_models_used = totals.unique_models_used
    row.conversations_started = totals.conversations_started
    row.files_uploaded = totals.files_uploaded


async def upsert_aggregate(
    session: AsyncSession,
    period: str,
    period_key: str,
    user_id: uuid.UUID | None,
    reducer: Reducer,
) -> UsageAggregate:
    """Read-or-create one bucket, apply `reducer`, flush. Caller commits."""
    row = await get_aggregate(session, period, period_key, user_id, for_update=True)
    prior = AggregateTotals.from_row(row) if row is not None else None
    totals = reducer(prior)

    if row is None:
        row = UsageAggregate(user_id=user_id, period=period, period_key=period_key)
        session.add(row)
    _write_totals(row, totals)
    await session.flush()
    return row


async def apply_to_buckets(
    session: AsyncSession,
    user_id: uuid.UUID,
    timestamp_ms: int,
    reducer: Reducer,
) -> list[UsageAggregate]:
    """
    Apply `reducer` to the six buckets an instant belongs to.

    Order: for each period, the user's row first, then the system row.
    Does NOT commit — the caller owns the transaction.
    """
    keys = period_keys(timestamp_ms)
    rows: list[UsageAggregate] = []
    for period in PERIODS:
        key = keys.for_period(period)
        for scope in (user_id, None):
            rows.append(await upsert_aggregate(session, period, key, scope, reducer))
    return rows


# ── Rebuild (replay) ────────────────────────────────────────
async def rebuild_aggregates(
    session: AsyncSession,
    period: str,
    period_key: str,
) -> int:
    """
    Recompute every aggregate row of one bucket from usage_records.

    This function is idempotent — running it twice for the same bucket
    produces identical rows. Counters that records cannot reproduce
    (failed_requests, conversations_started, files_uploaded) are carried
    over from the existing rows.

    Committed in a single transaction. Returns the number of rows written.
    """
    validate_period(period)
    start_ms, end_ms = period_bounds(period, period_key)
    logger.info("Rebuilding %s aggregates for %s", period, period_key)

    stmt = (
        select(UsageRecord)
        .where(UsageRecord.timestamp >= start_ms, UsageRecord.timestamp < end_ms)
        .order_by(UsageRecord.timestamp, UsageRecord.id)
    )
    records: Sequence[UsageRecord] = (await session.execute(stmt)).scalars().all()

    replayed: dict[uuid.UUID | None, AggregateTotals] = {}
    for record in records:
        event = UsageEvent.from_record(record)
        for scope in (record.user_id, None):
            replayed[scope] = apply_success(replayed.get(scope), event)

    existing_stmt = select(UsageAggregate).where(
        UsageAggregate.period == period,
        UsageAggregate.period_key == period_key,
    ).with_for_update()
    existing = {
        row.user_id: row
        for row in (await session.execute(existing_stmt)).scalars().all()
    }

    written = 0
    for scope in set(replayed) | set(existing):
        totals = replayed.get(scope) or AggregateTotals()
        row = existing.get(scope)
        if row is None:
            row = UsageAggregate(user_id=scope, period=period, period_key=period_key)
            session.add(row)
        else:
            totals = dataclasses.replace(
                totals,
                total_requests=totals.successful_requests + row.failed_requests,
                failed_requests=row.failed_requests,
                conversations_started=row.conversations_started,
                files_uploaded=row.files_uploaded,
            )
        _write_totals(row, totals)
        written += 1

    await session.commit()
    logger.info(
        "Rebuilt %d %s aggregate rows for %s from %d records ✓",
        written, period, period_key, len(records),
    )
    return written
