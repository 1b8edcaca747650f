import uuid

import pytest

from ledger.core.errors import NotFoundError, ValidationError
from ledger.core.time import MS_PER_DAY, to_epoch_ms
from ledger.services import request_logs


@pytest.fixture
def log(session, user, now):
    """Factory: log a chat request for the default user at `now`."""

    async def _log(**overrides):
        fields = dict(
            user_id=user.id,
            request_type="chat_completion",
            method="POST",
            endpoint="/api/chat",
            timestamp=to_epoch_ms(now),
        )
        fields.update(overrides)
        return await request_logs.log_request(session, **fields)

    return _log


async def test_logged_request_starts_pending(log):
    entry = await log(metadata={"model": "openai/gpt-4o-mini"})
    assert entry.status == "pending"
    assert entry.processing_time_ms == 0
    assert entry.metadata_ == {"model": "openai/gpt-4o-mini"}


async def test_log_request_validates_input(log):
    with pytest.raises(ValidationError):
        await log(status="done")
    with pytest.raises(ValidationError):
        await log(timestamp=-1)
    with pytest.raises(NotFoundError):
        await log(user_id=uuid.uuid4())


async def test_update_records_the_outcome(session, log):
    entry = await log()
    updated = await request_logs.update_request(
        session, entry.id, "error", 420, status_code=502, error_message="Upstream timeout",
    )
    assert updated.status == "error"
    assert updated.processing_time_ms == 420
    assert updated.status_code == 502


async def test_update_unknown_request_is_not_found(session):
    with pytest.raises(NotFoundError):
        await request_logs.update_request(session, uuid.uuid4(), "success", 10)


async def test_recent_requests_filter_and_enrich(session, log, make_user, now):
    other = await make_user(name="Bob")
    first = await log()
    await request_logs.update_request(session, first.id, "success", 100)
    await log(timestamp=to_epoch_ms(now) + 1)
    await log(user_id=other.id, timestamp=to_epoch_ms(now) + 2)

    recent = await request_logs.get_recent_requests(session)
    assert [r.user.name for r in recent] == ["Bob", "Ada Lovelace", "Ada Lovelace"]

    (done,) = await request_logs.get_recent_requests(session, status="success")
    assert done.id == first.id
    assert len(await request_logs.get_recent_requests(session, user_id=other.id)) == 1
    assert len(await request_logs.get_recent_requests(session, limit=1)) == 1


async def test_request_stats(session, log, now):
    ok = await log()
    await request_logs.update_request(session, ok.id, "success", 300)
    failed = await log(request_type="file_upload")
    await request_logs.update_request(session, failed.id, "error", 100, error_message="Too large")
    unexplained = await log()
    await request_logs.update_request(session, unexplained.id, "error", 200)
    await log()
    await log(timestamp=to_epoch_ms(now) - 3 * MS_PER_DAY)

    stats = await request_logs.get_request_stats(session, period="daily", now=now)
    assert stats.total_requests == 4
    assert stats.successful_requests == 1
    assert stats.failed_requests == 2
    assert stats.pending_requests == 1
    assert stats.avg_processing_time == pytest.approx(150)
    assert stats.request_types == {"chat_completion": 3, "file_upload": 1}
    assert stats.error_breakdown == {"Too large": 1, "Unknown error": 1}

    assert (await request_logs.get_request_stats(session, now=now)).total_requests == 5
    assert (await request_logs.get_request_stats(session, user_id=uuid.uuid4())).total_requests == 0


async def test_request_stats_when_empty(session):
    stats = await request_logs.get_request_stats(session)
    assert stats.total_requests == 0
    assert stats.avg_processing_time == 0.0
    assert stats.error_breakdown == {}
