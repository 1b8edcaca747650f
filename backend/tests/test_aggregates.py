import dataclasses
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger.models.aggregates import UsageAggregate
from ledger.models.usage import UsageRecord
from ledger.services.aggregates import (
    AggregateTotals,
    apply_conversation_started,
    apply_failure,
    apply_file_uploaded,
    apply_success,
    apply_to_buckets,
    get_aggregate,
    rebuild_aggregates,
)
from ledger.services.ledger import record_failure, record_usage
from ledger.services.periods import period_keys


# ── Pure reducers ───────────────────────────────────────────
def test_first_success_creates_totals(make_event):
    totals = apply_success(None, make_event(prompt_tokens=70, completion_tokens=30))
    assert totals.total_requests == 1
    assert totals.successful_requests == 1
    assert totals.failed_requests == 0
    assert totals.total_tokens == 100
    assert totals.prompt_tokens == 70
    assert totals.completion_tokens == 30
    assert totals.total_cost_usd == Decimal("0.001")
    assert totals.avg_processing_time_ms == 1000
    assert totals.unique_models_used == 1


def test_running_average_is_weighted_by_prior_count(make_event):
    totals = apply_success(None, make_event(processing_time_ms=1000))
    totals = apply_success(totals, make_event(processing_time_ms=2000))
    totals = apply_success(totals, make_event(processing_time_ms=3000))
    assert totals.avg_processing_time_ms == pytest.approx(2000)


def test_missing_processing_time_counts_as_zero(make_event):
    totals = apply_success(None, make_event(processing_time_ms=900))
    totals = apply_success(totals, make_event(processing_time_ms=None))
    assert totals.avg_processing_time_ms == pytest.approx(450)


def test_unique_models_counts_each_slug_once(make_event):
    totals = None
    for slug in ("a/x", "b/y", "a/x"):
        totals = apply_success(totals, make_event(model_slug=slug))
    assert totals.model_slugs == ("a/x", "b/y")
    assert totals.unique_models_used == 2


def test_reducers_do_not_mutate_prior(make_event):
    prior = AggregateTotals(total_requests=5, successful_requests=5, total_tokens=50)
    snapshot = dataclasses.replace(prior)
    apply_success(prior, make_event())
    apply_failure(prior)
    assert prior == snapshot


def test_failure_keeps_request_invariant(make_event):
    totals = apply_success(None, make_event())
    totals = apply_failure(totals)
    assert totals.total_requests == 2
    assert totals.total_requests == totals.successful_requests + totals.failed_requests
    assert totals.total_tokens == totals.prompt_tokens + totals.completion_tokens


def test_activity_counters():
    totals = apply_conversation_started(None)
    totals = apply_file_uploaded(apply_file_uploaded(totals))
    assert totals.conversations_started == 1
    assert totals.files_uploaded == 2
    assert totals.total_requests == 0


# ── Storage ─────────────────────────────────────────────────
async def test_fan_out_touches_six_buckets(session, make_event, user):
    event = make_event()
    rows = await apply_to_buckets(session, user.id, event.timestamp, lambda p: apply_success(p, event))
    await session.commit()

    assert len(rows) == 6
    keys = period_keys(event.timestamp)
    assert {(r.period, r.period_key) for r in rows} == {
        ("daily", keys.daily), ("weekly", keys.weekly), ("monthly", keys.monthly),
    }
    assert sum(1 for r in rows if r.is_system) == 3
    assert all(r.total_tokens == 100 for r in rows)


async def test_second_event_updates_existing_rows(session, make_event, user):
    for _ in range(2):
        event = make_event()
        await apply_to_buckets(session, user.id, event.timestamp, lambda p: apply_success(p, event))
    await session.commit()

    rows = (await session.execute(select(UsageAggregate))).scalars().all()
    assert len(rows) == 6
    daily = await get_aggregate(session, "daily", period_keys(event.timestamp).daily, user.id)
    assert daily.total_requests == 2
    assert daily.total_tokens == 200


async def test_system_row_sums_all_users(session, make_user, make_thread, make_event):
    other = await make_user(name="Bob")
    conversation, message = await make_thread(other)

    await record_usage(session, make_event(prompt_tokens=10, completion_tokens=0))
    await record_usage(
        session,
        make_event(
            user_id=other.id, conversation_id=conversation.id, message_id=message.id,
            prompt_tokens=0, completion_tokens=5,
        ),
    )

    key = period_keys(make_event().timestamp).monthly
    system = await get_aggregate(session, "monthly", key, None)
    assert system.total_tokens == 15
    assert system.total_requests == 2


# ── Rebuild ─────────────────────────────────────────────────
async def test_rebuild_restores_drifted_rows_and_keeps_counters(session, make_event, user):
    first = make_event(processing_time_ms=100)
    await record_usage(session, first)
    await record_usage(session, make_event(processing_time_ms=300, model_slug="b/y"))
    await record_failure(session, user.id, first.timestamp)

    key = period_keys(first.timestamp).daily
    row = await get_aggregate(session, "daily", key, user.id)
    row.total_tokens = 0
    row.total_cost_usd = Decimal("0")
    await session.commit()

    written = await rebuild_aggregates(session, "daily", key)
    assert written == 2

    row = await get_aggregate(session, "daily", key, user.id)
    assert row.total_tokens == 200
    assert row.total_cost_usd == Decimal("0.002")
    assert row.successful_requests == 2
    assert row.failed_requests == 1
    assert row.total_requests == 3
    assert row.unique_models_used == 2
    assert row.avg_processing_time_ms == pytest.approx(200)


async def test_rebuild_is_idempotent(session, make_event):
    event = make_event()
    await record_usage(session, event)
    key = period_keys(event.timestamp).weekly

    await rebuild_aggregates(session, "weekly", key)
    first = AggregateTotals.from_row(await get_aggregate(session, "weekly", key, None))
    await rebuild_aggregates(session, "weekly", key)
    second = AggregateTotals.from_row(await get_aggregate(session, "weekly", key, None))
    assert first == second


async def test_rebuild_of_empty_bucket_writes_nothing(session):
    assert await rebuild_aggregates(session, "monthly", "2020-01") == 0


def test_cost_columns_hold_large_totals_and_fine_prices():
    record_cost = UsageRecord.__table__.c.cost_in_usd.type
    total_cost = UsageAggregate.__table__.c.total_cost_usd.type
    assert (record_cost.precision, record_cost.scale) == (20, 12)
    assert (total_cost.precision, total_cost.scale) == (24, 12)


async def test_system_month_above_ten_thousand_dollars(session, make_event):
    for _ in range(3):
        await record_usage(session, make_event(cost_in_usd=Decimal("4000.5")))

    key = period_keys(make_event().timestamp).monthly
    system = await get_aggregate(session, "monthly", key, None)
    assert system.total_cost_usd == Decimal("12001.5")
