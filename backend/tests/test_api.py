"""
HTTP surface tests — exercised through httpx against the real app.
"""

import uuid
from decimal import Decimal

from httpx import ASGITransport, AsyncClient

from ledger.core.time import now_ms
from ledger.main import app


def _payload(user, thread, **overrides) -> dict:
    conversation, message = thread
    body = {
        "user_id": str(user.id),
        "conversation_id": str(conversation.id),
        "message_id": str(message.id),
        "generation_id": f"gen-{uuid.uuid4().hex}",
        "model_slug": "openai/gpt-4o-mini",
        "prompt_tokens": 500,
        "completion_tokens": 150,
        "total_tokens": 650,
        "cost_in_credits": "0.00042",
        "cost_in_usd": "0.00042",
        "timestamp": now_ms(),
        "processing_time_ms": 1200,
    }
    body.update(overrides)
    return body


# ── Auth / health ───────────────────────────────────────────
async def test_health_needs_no_token():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        response = await http.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_missing_or_wrong_token_is_401(client, user, thread):
    response = await client.post(
        "/usage/records", json=_payload(user, thread), headers={"Authorization": ""},
    )
    assert response.status_code == 401

    response = await client.post(
        "/usage/records", json=_payload(user, thread), headers={"Authorization": "Bearer nope"},
    )
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


# ── Record path ─────────────────────────────────────────────
async def test_record_usage_then_read_it_back(client, user, thread):
    response = await client.post("/usage/records", json=_payload(user, thread))
    assert response.status_code == 201
    record_id = response.json()["id"]

    stats = (await client.get(f"/usage/users/{user.id}")).json()
    assert stats["total_requests"] == 1
    assert stats["total_tokens"] == 650
    assert stats["model_breakdown"]["openai/gpt-4o-mini"]["count"] == 1

    recent = (await client.get("/usage/recent")).json()
    assert recent[0]["id"] == record_id
    assert recent[0]["conversation_title"] == "Test chat"

    totals = (await client.get(f"/usage/users/{user.id}/totals", params={"period": "daily"})).json()
    assert totals["total_tokens"] == 650


async def test_replay_returns_same_id(client, user, thread):
    body = _payload(user, thread)
    first = (await client.post("/usage/records", json=body)).json()["id"]
    second = (await client.post("/usage/records", json=body)).json()["id"]
    assert first == second


async def test_bad_payloads_are_422(client, user, thread):
    assert (await client.post("/usage/records", json=_payload(user, thread, total_tokens=1))).status_code == 422
    assert (await client.post("/usage/records", json=_payload(user, thread, prompt_tokens=-1))).status_code == 422
    assert (await client.post("/usage/records", json=_payload(user, thread, surprise=True))).status_code == 422


async def test_unknown_user_is_404(client, user, thread):
    response = await client.post("/usage/records", json=_payload(user, thread, user_id=str(uuid.uuid4())))
    assert response.status_code == 404
    assert "does not exist" in response.json()["detail"]


async def test_activity_counters_return_204(client, user):
    body = {"user_id": str(user.id), "timestamp": now_ms()}
    for path in ("/usage/failures", "/usage/conversations", "/usage/files"):
        response = await client.post(path, json=body)
        assert response.status_code == 204

    (row,) = (await client.get("/analytics/system", params={"period": "daily"})).json()
    assert row["failed_requests"] == 1
    assert row["conversations_started"] == 1
    assert row["files_uploaded"] == 1
    assert row["success_rate"] == 0


# ── Analytics ───────────────────────────────────────────────
async def test_analytics_endpoints(client, user, thread, catalog):
    await client.post("/usage/records", json=_payload(user, thread))

    top = (await client.get("/analytics/top-users", params={"period": "monthly"})).json()
    assert top[0]["user"]["email"] == "ada@example.com"
    assert top[0]["stats"]["total_tokens"] == 650

    models = (await client.get("/analytics/models", params={"period": "weekly"})).json()
    assert models[0]["model_slug"] == "openai/gpt-4o-mini"

    breakdown = (await client.get(f"/usage/users/{user.id}/breakdown", params={"days": 3})).json()
    assert breakdown["system_usage"]["request_count"] == 1
    assert breakdown["byok_usage"]["request_count"] == 0
    assert len(breakdown["daily_usage"]) == 3


async def test_unknown_period_is_422(client):
    response = await client.get("/analytics/system", params={"period": "yearly"})
    assert response.status_code == 422


# ── Alerts ──────────────────────────────────────────────────
async def test_quota_update_raises_alert_on_ingest(client, admin, user, thread):
    response = await client.put(
        "/alerts/quotas",
        json={"admin_id": str(admin.id), "user_id": str(user.id), "quota_type": "daily_tokens", "limit": "600"},
    )
    assert response.status_code == 200
    assert response.json()["quota_type"] == "daily_tokens"

    await client.post("/usage/records", json=_payload(user, thread))

    active = (await client.get("/alerts")).json()
    assert [(a["alert_type"], a["severity"]) for a in active] == [("token_threshold", "critical")]
    alert_id = active[0]["id"]
    assert active[0]["metadata"]["period"] == "daily"

    resolved = await client.post(f"/alerts/{alert_id}/resolve", json={"admin_id": str(admin.id)})
    assert resolved.status_code == 200
    assert resolved.json()["is_resolved"] is True
    assert (await client.get("/alerts")).json() == []

    stats = (await client.get("/alerts/stats")).json()
    assert stats["total_alerts"] == 1
    assert stats["unresolved_alerts"] == 0

    logs = (await client.get("/admin/logs", params={"admin_id": str(admin.id)})).json()
    actions = [entry["action"] for entry in logs]
    assert sorted(actions) == ["alert_resolved", "quota_updated"]


async def test_non_admin_cannot_change_quotas(client, user):
    response = await client.put(
        "/alerts/quotas",
        json={"admin_id": str(user.id), "user_id": str(user.id), "quota_type": "daily_cost", "limit": "5"},
    )
    assert response.status_code == 403


async def test_unknown_alert_is_404(client, admin):
    response = await client.post(f"/alerts/{uuid.uuid4()}/read", json={"admin_id": str(admin.id)})
    assert response.status_code == 404


# ── Admin ───────────────────────────────────────────────────
async def test_rebuild_endpoint(client, admin, user, thread):
    body = _payload(user, thread)
    await client.post("/usage/records", json=body)
    key = (await client.get(f"/usage/users/{user.id}/totals", params={"period": "weekly"})).json()["period_key"]

    response = await client.post(
        "/admin/aggregates/rebuild",
        json={"admin_id": str(admin.id), "period": "weekly", "period_key": key},
    )
    assert response.status_code == 200
    assert response.json()["rows_written"] == 2

    response = await client.get(
        "/admin/logs", params={"admin_id": str(admin.id), "action": "aggregates_rebuilt"},
    )
    (entry,) = response.json()
    assert entry["details"]["rows_written"] == 2


async def test_rebuild_rejects_malformed_key(client, admin):
    response = await client.post(
        "/admin/aggregates/rebuild",
        json={"admin_id": str(admin.id), "period": "weekly", "period_key": "2025-W99"},
    )
    assert response.status_code == 422


async def test_toggle_model(client, admin, catalog):
    response = await client.patch(
        "/admin/models/openai/gpt-4o-mini",
        json={"admin_id": str(admin.id), "is_enabled": False},
    )
    assert response.status_code == 200
    assert response.json() == {"action": "model_toggled", "slug": "openai/gpt-4o-mini", "is_enabled": False}

    missing = await client.patch(
        "/admin/models/nobody/none", json={"admin_id": str(admin.id), "is_enabled": True},
    )
    assert missing.status_code == 404


async def test_admin_logs_need_an_admin(client, admin, user):
    await client.put(
        "/alerts/quotas",
        json={"admin_id": str(admin.id), "user_id": str(user.id), "quota_type": "daily_cost", "limit": "5"},
    )

    assert (await client.get("/admin/logs")).status_code == 422
    assert (await client.get("/admin/logs", params={"admin_id": str(user.id)})).status_code == 403
    assert (await client.get("/admin/logs", params={"admin_id": str(uuid.uuid4())})).status_code == 403

    for path in ("/admin/activity", "/admin/logs/target"):
        params = {"admin_id": str(user.id), "target_type": "user_quotas", "target_id": str(user.id)}
        assert (await client.get(path, params=params)).status_code == 403


async def test_admin_log_target_and_activity(client, admin, user, catalog):
    await client.put(
        "/alerts/quotas",
        json={"admin_id": str(admin.id), "user_id": str(user.id), "quota_type": "daily_cost", "limit": "5"},
    )
    await client.patch(
        "/admin/models/openai/gpt-4o-mini", json={"admin_id": str(admin.id), "is_enabled": False},
    )

    history = (
        await client.get(
            "/admin/logs/target",
            params={"admin_id": str(admin.id), "target_type": "models", "target_id": "openai/gpt-4o-mini"},
        )
    ).json()
    assert [entry["action"] for entry in history] == ["model_toggled"]

    activity = (await client.get("/admin/activity", params={"admin_id": str(admin.id)})).json()
    assert activity["total_actions"] == 2
    assert activity["admin_activity"] == {"Grace Hopper": 2}
    assert activity["time_range"] == "24 hours"


# ── Cost precision ──────────────────────────────────────────
async def test_cost_beyond_eight_places_is_kept(client, user, thread):
    await client.post("/usage/records", json=_payload(user, thread, cost_in_usd="0.000000125"))

    stats = (await client.get(f"/usage/users/{user.id}")).json()
    assert Decimal(stats["total_cost"]) == Decimal("0.000000125")


async def test_cost_finer_than_store_scale_is_422(client, user, thread):
    response = await client.post(
        "/usage/records", json=_payload(user, thread, cost_in_usd="0.0000000000001"),
    )
    assert response.status_code == 422

    response = await client.post(
        "/usage/records", json=_payload(user, thread, cost_in_credits="123456789012.5"),
    )
    assert response.status_code == 422


async def test_system_total_above_ten_thousand_dollars(client, user, thread):
    for _ in range(2):
        response = await client.post("/usage/records", json=_payload(user, thread, cost_in_usd="6000.5"))
        assert response.status_code == 201

    (row,) = (await client.get("/analytics/system", params={"period": "monthly"})).json()
    assert Decimal(row["total_cost"]) == Decimal("12001")


# ── Request log ─────────────────────────────────────────────
async def test_request_lifecycle(client, user):
    created = await client.post(
        "/requests",
        json={
            "user_id": str(user.id),
            "request_type": "chat_completion",
            "method": "POST",
            "endpoint": "/api/chat",
            "timestamp": now_ms(),
        },
    )
    assert created.status_code == 201
    request_id = created.json()["id"]

    updated = await client.patch(
        f"/requests/{request_id}",
        json={"status": "error", "processing_time_ms": 350, "status_code": 502, "error_message": "Upstream timeout"},
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "error"

    (recent,) = (await client.get("/requests", params={"status": "error"})).json()
    assert recent["user"]["email"] == "ada@example.com"

    stats = (await client.get("/requests/stats", params={"period": "daily"})).json()
    assert stats["failed_requests"] == 1
    assert stats["error_breakdown"] == {"Upstream timeout": 1}


async def test_request_updates_are_validated(client, user):
    missing = await client.patch(
        f"/requests/{uuid.uuid4()}", json={"status": "success", "processing_time_ms": 10},
    )
    assert missing.status_code == 404

    bad_status = await client.post(
        "/requests",
        json={
            "user_id": str(user.id),
            "request_type": "chat_completion",
            "method": "POST",
            "endpoint": "/api/chat",
            "status": "done",
            "timestamp": now_ms(),
        },
    )
    assert bad_status.status_code == 422


# ── Metrics / alert history ─────────────────────────────────
async def test_daily_metrics_endpoints(client, user, thread):
    await client.post("/usage/records", json=_payload(user, thread))

    stored = await client.post("/analytics/metrics/daily", json={})
    assert stored.status_code == 200
    assert stored.json()["active_users"] == 1
    assert stored.json()["total_tokens_used"] == 650

    history = (await client.get("/analytics/metrics/history", params={"days": 7})).json()
    assert [m["date"] for m in history] == [stored.json()["date"]]

    activity = (await client.get("/analytics/activity", params={"days": 7})).json()
    assert len(activity) == 7
    assert activity[-1]["active_users"] == 1
    assert activity[-1]["requests"] == 1

    bad = await client.post("/analytics/metrics/daily", json={"date": "2025-02-30"})
    assert bad.status_code == 422


async def test_alert_history_includes_resolved(client, admin, user, thread):
    await client.put(
        "/alerts/quotas",
        json={"admin_id": str(admin.id), "user_id": str(user.id), "quota_type": "daily_tokens", "limit": "600"},
    )
    await client.post("/usage/records", json=_payload(user, thread))
    (alert,) = (await client.get("/alerts")).json()
    await client.post(f"/alerts/{alert['id']}/resolve", json={"admin_id": str(admin.id)})

    history = (await client.get("/alerts/all")).json()
    assert [a["id"] for a in history] == [alert["id"]]
    assert history[0]["is_resolved"] is True
