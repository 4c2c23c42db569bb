from datetime import datetime, timedelta, timezone

import pytest

from app.settings import settings

USER = "44444444-4444-4444-4444-444444444444"
HEADERS = {"X-User-Id": USER}


def _at(hour: int, clock) -> datetime:
	return clock.now.replace(hour=hour, minute=0)


@pytest.mark.asyncio
async def test_post_event_returns_state(api_client, engine, memory_repo, signals, clock):
	memory_repo.add_user(USER)
	signals.add_task(USER, _at(5, clock), minutes=30, completed=True)
	signals.add_study(USER, _at(9, clock), 120)

	response = await api_client.post("/rating/events", json={"type": "TASK_COMPLETE"}, headers=HEADERS)

	assert response.status_code == 200
	payload = response.json()
	assert payload["current_rating"] == 1055
	assert payload["tier"] == "Pupil"
	assert payload["today_delta"] == 55
	assert payload["live_entry"]["id"] == "LIVE"
	assert payload["live_entry"]["is_live"] is True
	assert payload["live_entry"]["date"] == clock.now.date().isoformat()
	assert payload["today_dps"]["study_score"] == 30.0


@pytest.mark.asyncio
async def test_unknown_event_type_is_bad_request(api_client, engine, memory_repo):
	memory_repo.add_user(USER)

	response = await api_client.post(
		"/rating/events",
		json={"type": "TASK_EXPLODE"},
		headers={**HEADERS, "X-Request-Id": "req-123"},
	)

	assert response.status_code == 400
	assert response.json() == {"detail": "invalid_event:TASK_EXPLODE", "request_id": "req-123"}
	assert memory_repo.users[USER].last_active_date is None


@pytest.mark.asyncio
async def test_requires_identity(api_client, engine):
	response = await api_client.get("/rating/state")
	assert response.status_code == 401
	assert response.json()["detail"] == "invalid_token"


@pytest.mark.asyncio
async def test_state_for_unknown_user_is_not_found(api_client, engine):
	response = await api_client.get("/rating/state", headers=HEADERS)
	assert response.status_code == 404
	assert response.json()["detail"] == "user_not_found"


@pytest.mark.asyncio
async def test_persistence_failure_maps_to_service_unavailable(api_client, engine, memory_repo):
	memory_repo.add_user(USER)
	memory_repo.fail_ops.add("update_user_rating")

	response = await api_client.post("/rating/events", json={"type": "REFRESH"}, headers=HEADERS)

	assert response.status_code == 503
	assert response.json()["detail"] == "rating_unavailable"
	assert "request_id" in response.json()


@pytest.mark.asyncio
async def test_history_and_finalize(api_client, engine, memory_repo, clock):
	memory_repo.add_user(USER, last_active_date=clock.now.date() - timedelta(days=2))

	finalize = await api_client.post("/rating/finalize", headers=HEADERS)
	assert finalize.status_code == 200
	assert len(finalize.json()["finalized"]) == 2

	again = await api_client.post("/rating/finalize", headers=HEADERS)
	assert again.json()["finalized"] == []

	history = await api_client.get("/rating/history?limit=5", headers=HEADERS)
	assert history.status_code == 200
	payload = history.json()
	days = [item["date"] for item in payload["items"]]
	assert days == sorted(days)
	assert len(days) == 2
	assert all(item["status"] == "LOCKED" for item in payload["items"])
	assert payload["items"][1]["old_rating"] == payload["items"][0]["new_rating"]
	assert payload["live_entry"]["old_rating"] == payload["items"][-1]["new_rating"]
	assert payload["current_rating"] == payload["items"][-1]["new_rating"]


@pytest.mark.asyncio
async def test_admin_finalize_requires_token(api_client, engine, memory_repo, clock, monkeypatch):
	memory_repo.add_user(USER, last_active_date=clock.now.date() - timedelta(days=1))
	monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")

	denied = await api_client.post(f"/ops/rating/finalize/{USER}")
	assert denied.status_code == 403

	allowed = await api_client.post(f"/ops/rating/finalize/{USER}", headers={"X-Admin-Token": "ops-secret"})
	assert allowed.status_code == 200
	assert allowed.json()["finalized"] == [(clock.now.date() - timedelta(days=1)).isoformat()]


@pytest.mark.asyncio
async def test_health_live_and_metrics(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", True)

	live = await api_client.get("/health/live")
	assert live.json() == {"status": "ok"}

	metrics = await api_client.get("/metrics")
	assert metrics.status_code == 200
	assert "rating_events_total" in metrics.text


@pytest.mark.asyncio
async def test_malformed_user_id_is_rejected_before_storage(api_client, engine, memory_repo, monkeypatch):
	response = await api_client.get("/rating/state", headers={"X-User-Id": "not-a-uuid"})
	assert response.status_code == 401
	assert response.json()["detail"] == "invalid_token"

	monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")
	ops = await api_client.post("/ops/rating/finalize/not-a-uuid", headers={"X-Admin-Token": "ops-secret"})
	assert ops.status_code == 422
	assert memory_repo.entries == {}
