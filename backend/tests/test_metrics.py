import datetime
from decimal import Decimal

import pytest

from ledger.core.errors import ValidationError
from ledger.core.time import MS_PER_DAY, to_epoch_ms
from ledger.models.conversation import Message
from ledger.services import metrics
from ledger.services.ledger import record_conversation_started, record_usage


async def test_store_daily_metrics_from_the_ledger(session, make_user, make_event, user, thread, now):
    conversation, _ = thread
    await make_user(name="Idle")
    session.add(Message(conversation_id=conversation.id, role="user", created_at=now))
    await session.commit()

    base = to_epoch_ms(now)
    await record_usage(session, make_event(model_slug="a/x", cost_in_usd=Decimal("0.000000125")))
    await record_usage(session, make_event(model_slug="a/x"))
    await record_usage(session, make_event(model_slug="b/y", timestamp=base - MS_PER_DAY))
    await record_conversation_started(session, user.id, base)

    snapshot = await metrics.store_daily_metrics(session, now=now)
    assert snapshot.date == "2025-01-15"
    assert snapshot.total_users == 2
    assert snapshot.active_users == 1
    assert snapshot.total_conversations == 1
    assert snapshot.total_messages == 1
    assert snapshot.total_tokens_used == 200
    assert snapshot.total_cost == Decimal("0.001000125")
    assert snapshot.model_usage == {"a/x": 2}


async def test_storing_a_date_again_overwrites_it(session, make_event, now):
    first = await metrics.store_daily_metrics(session, "2025-01-15")
    assert first.total_tokens_used == 0

    await record_usage(session, make_event())
    second = await metrics.store_daily_metrics(session, "2025-01-15")
    assert second.id == first.id
    assert second.total_tokens_used == 100

    assert len(await metrics.get_historical_metrics(session, days=30, now=now)) == 1


async def test_store_rejects_malformed_date(session):
    with pytest.raises(ValidationError):
        await metrics.store_daily_metrics(session, "2025-13-01")


async def test_historical_metrics_window_oldest_first(session, now):
    for day in ("2025-01-15", "2025-01-09", "2025-01-13", "2024-12-01"):
        await metrics.store_daily_metrics(session, day)

    history = await metrics.get_historical_metrics(session, days=7, now=now)
    assert [m.date for m in history] == ["2025-01-09", "2025-01-13", "2025-01-15"]

    with pytest.raises(ValidationError):
        await metrics.get_historical_metrics(session, days=0)


async def test_user_activity_series(session, make_user, make_thread, make_event, now):
    other = await make_user(name="Bob")
    conversation, message = await make_thread(other)
    base = to_epoch_ms(now)

    await record_usage(session, make_event(timestamp=base))
    await record_usage(session, make_event(timestamp=base - 1000))
    await record_usage(
        session,
        make_event(
            user_id=other.id, conversation_id=conversation.id, message_id=message.id,
            timestamp=base - MS_PER_DAY,
        ),
    )
    session.add(Message(conversation_id=conversation.id, created_at=now - datetime.timedelta(days=1)))
    await session.commit()

    series = await metrics.get_user_activity_stats(session, days=3, now=now)
    assert [d.date for d in series] == ["2025-01-13", "2025-01-14", "2025-01-15"]
    assert [d.active_users for d in series] == [0, 1, 1]
    assert [d.requests for d in series] == [0, 1, 2]
    assert series[1].messages == 1
