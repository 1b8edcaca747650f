import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from ledger.core.errors import PermissionDeniedError, ValidationError
from ledger.schemas.admin_log import (
    AdminLogOut,
    AggregatesRebuilt,
    ModelToggled,
    QuotaUpdated,
    details_adapter,
)
from ledger.services.admin_logs import (
    get_admin_logs,
    get_logs_for_target,
    get_recent_admin_activity,
    log_admin_action,
    require_admin,
)


async def test_require_admin(session, admin, user):
    assert (await require_admin(session, admin.id)).id == admin.id
    with pytest.raises(PermissionDeniedError):
        await require_admin(session, user.id)
    with pytest.raises(PermissionDeniedError):
        await require_admin(session, uuid.uuid4())


async def test_logged_details_round_trip_through_the_union(session, admin, user):
    log_admin_action(
        session,
        admin.id,
        QuotaUpdated(user_id=user.id, quota_type="daily_cost", limit=Decimal("5")),
    )
    await session.commit()

    (entry,) = await get_admin_logs(session)
    assert entry.action == "quota_updated"
    assert entry.target_type == "user_quotas"
    assert entry.target_id == str(user.id)

    out = AdminLogOut.model_validate(entry)
    assert isinstance(out.details, QuotaUpdated)
    assert out.details.limit == Decimal("5")


async def test_logs_newest_first_and_filter_by_action(session, admin):
    log_admin_action(session, admin.id, ModelToggled(slug="a/x", is_enabled=False))
    await session.commit()
    log_admin_action(
        session, admin.id, AggregatesRebuilt(period="daily", period_key="2025-01-15", rows_written=4),
    )
    await session.commit()

    logs = await get_admin_logs(session)
    assert len(logs) == 2
    assert logs[0].timestamp >= logs[1].timestamp

    rebuilt = await get_admin_logs(session, action="aggregates_rebuilt")
    assert [entry.target_id for entry in rebuilt] == ["daily:2025-01-15"]


def test_details_union_rejects_mismatched_shapes():
    with pytest.raises(SchemaValidationError):
        details_adapter.validate_python({"action": "model_toggled", "period": "daily"})
    with pytest.raises(SchemaValidationError):
        details_adapter.validate_python({"action": "deleted_everything"})


async def test_logs_for_one_target(session, admin, user):
    log_admin_action(session, admin.id, ModelToggled(slug="a/x", is_enabled=False))
    log_admin_action(session, admin.id, ModelToggled(slug="b/y", is_enabled=False))
    log_admin_action(
        session, admin.id, QuotaUpdated(user_id=user.id, quota_type="daily_cost", limit=Decimal("5")),
    )
    await session.commit()

    (entry,) = await get_logs_for_target(session, "models", "a/x")
    assert entry.details["slug"] == "a/x"
    assert await get_logs_for_target(session, "models", "c/z") == []


async def test_recent_activity_counts_by_action_and_admin(session, admin, make_user):
    other = await make_user(name="Linus", role="admin")
    log_admin_action(session, admin.id, ModelToggled(slug="a/x", is_enabled=False))
    log_admin_action(session, admin.id, ModelToggled(slug="a/x", is_enabled=True))
    log_admin_action(
        session, other.id, AggregatesRebuilt(period="daily", period_key="2025-01-15", rows_written=2),
    )
    stale = log_admin_action(session, other.id, ModelToggled(slug="b/y", is_enabled=False))
    stale.timestamp -= 48 * 3_600_000
    await session.commit()

    summary = await get_recent_admin_activity(session, hours=24)
    assert summary.total_actions == 3
    assert summary.action_counts == {"model_toggled": 2, "aggregates_rebuilt": 1}
    assert summary.admin_activity == {"Grace Hopper": 2, "Linus": 1}
    assert summary.time_range == "24 hours"

    assert (await get_recent_admin_activity(session, hours=72)).total_actions == 4


async def test_recent_activity_rejects_non_positive_hours(session):
    with pytest.raises(ValidationError):
        await get_recent_admin_activity(session, hours=0)
