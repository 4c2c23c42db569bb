"""Outbox helpers for the rating events stream."""

from __future__ import annotations

from typing import Any, Dict

from app.domain.rating.models import RatingHistoryEntry, RatingState
from app.infra.redis import redis_client

RATING_STREAM = "x:rating.events"


async def append_event(event_type: str, payload: Dict[str, Any]) -> None:
	"""Append a structured event to the rating stream."""

	body = {"type": event_type, **{k: str(v) for k, v in payload.items()}}
	await redis_client.xadd(RATING_STREAM, body, maxlen=5000, approximate=False)


async def increment_counter(name: str, value: int = 1, **tags: str) -> None:
	"""Increment a Prometheus-style counter stored in Redis."""

	tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
	key = f"metrics:{name}:{tag_str}" if tag_str else f"metrics:{name}"
	await redis_client.incrby(key, value)
	await redis_client.expire(key, 7 * 24 * 60 * 60)


async def record_day_locked(entry: RatingHistoryEntry) -> None:
	await append_event(
		"day_locked",
		{
			"user_id": entry.user_id,
			"day": entry.day.isoformat(),
			"old_rating": entry.old_rating,
			"new_rating": entry.new_rating,
			"change": entry.change,
			"dps": entry.dps,
		},
	)
	await increment_counter("rating_days_locked_total")


async def record_live_update(user_id: str, event_type: str, state: RatingState) -> None:
	await append_event(
		"live_updated",
		{
			"user_id": user_id,
			"event": event_type,
			"rating": state.current_rating,
			"tier": state.tier,
			"today_delta": state.today_delta,
			"dps": state.today_dps.total_dps,
		},
	)
	await increment_counter("rating_live_updates_total", event=event_type)
