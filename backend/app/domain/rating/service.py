"""Rating engine entry points: event processing and state reads.

Every event takes the same path: lock any elapsed days, then recompute today
from current signals. Nothing is patched incrementally.
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Mapping, Optional, Sequence

from app.domain.rating import outbox, sockets
from app.domain.rating.exceptions import RatingError, RatingUserNotFound
from app.domain.rating.ledger import DayLedger, LiveProjection
from app.domain.rating.models import RatingEvent, RatingHistoryEntry, RatingState, tier_for
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)


class RatingEngine:
	"""Single writer of rating state; other code calls in rather than updating ratings."""

	def __init__(self, ledger: Optional[DayLedger] = None) -> None:
		self.ledger = ledger or DayLedger()

	@staticmethod
	def _state(
		current_rating: int,
		projection: LiveProjection,
		locked: Sequence[RatingHistoryEntry] = (),
	) -> RatingState:
		tier = tier_for(current_rating)
		return RatingState(
			current_rating=current_rating,
			tier=tier.name,
			tier_color=tier.color,
			today_delta=current_rating - projection.base_rating,
			today_dps=projection.entry.breakdown,
			live_entry=projection.entry,
			base_rating=projection.base_rating,
			finalized_days=[entry.day for entry in locked],
		)

	async def check_and_finalize_past_days(self, user_id: str) -> list[RatingHistoryEntry]:
		locked = await self.ledger.check_and_finalize_past_days(user_id)
		for entry in locked:
			try:
				await outbox.record_day_locked(entry)
			except Exception:
				logger.warning("Failed to publish locked rating day", exc_info=True)
		return locked

	async def process_event(self, event: RatingEvent) -> RatingState:
		"""Finalize elapsed days, then recompute and store today's rating."""
		started = perf_counter()
		locked = await self.check_and_finalize_past_days(event.user_id)
		projection = await self.ledger.upsert_live(event.user_id)
		state = self._state(projection.entry.new_rating, projection, locked)
		obs_metrics.observe_rating_recompute(perf_counter() - started)
		obs_metrics.inc_rating_event(event.type.value)
		logger.info(
			"rating_event_processed",
			extra={
				"event_type": event.type.value,
				"rating_user": event.user_id,
				"rating": state.current_rating,
				"today_delta": state.today_delta,
				"degraded": list(state.today_dps.degraded),
				"finalized": len(locked),
			},
		)
		await self._notify(event, state)
		return state

	async def _notify(self, event: RatingEvent, state: RatingState) -> None:
		try:
			await outbox.record_live_update(event.user_id, event.type.value, state)
		except Exception:
			logger.warning("Failed to append rating outbox event", exc_info=True)
		try:
			await sockets.emit_rating_delta(event.user_id, state)
		except Exception:
			logger.warning("Failed to emit rating delta", exc_info=True)

	async def get_state(self, user_id: str) -> RatingState:
		"""Current standing; may lock elapsed days as a side effect."""
		locked = await self.check_and_finalize_past_days(user_id)
		user = await self.ledger.repo.get_user(user_id)
		if user is None:
			raise RatingUserNotFound()
		projection = await self.ledger.project_live(user_id)
		return self._state(user.rating, projection, locked)

	async def get_history(
		self, user_id: str, *, limit: Optional[int] = None
	) -> tuple[RatingState, list[RatingHistoryEntry]]:
		state = await self.get_state(user_id)
		entries = await self.ledger.repo.list_history(user_id, limit=limit or settings.rating_history_limit)
		return state, entries


_engine: Optional[RatingEngine] = None


def get_engine() -> RatingEngine:
	global _engine
	if _engine is None:
		_engine = RatingEngine()
	return _engine


def set_engine(engine: Optional[RatingEngine]) -> None:
	global _engine
	_engine = engine


async def record_event_safely(
	event_type: Any,
	user_id: str,
	metadata: Optional[Mapping[str, Any]] = None,
	*,
	engine: Optional[RatingEngine] = None,
) -> Optional[RatingState]:
	"""Run the engine after a CRUD mutation without ever failing that mutation."""
	try:
		event = RatingEvent.build(event_type, user_id, metadata)
		return await (engine or get_engine()).process_event(event)
	except RatingError as exc:
		logger.warning(
			"rating_update_skipped",
			extra={"event_type": str(event_type), "rating_user": str(user_id), "reason": exc.detail},
		)
		return None
