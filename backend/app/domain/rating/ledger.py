"""Day ledger: today's LIVE projection and the LOCKED history of past days.

The day itself decides the state. Today is LIVE and only ever projected;
any earlier day is LOCKED once a row exists and is never rewritten. The
``(user_id, day)`` unique key is the only concurrency guard: a losing insert
means another request locked the day first and its row wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional

from app.domain.rating import policy
from app.domain.rating.aggregator import RatingBounds, aggregate
from app.domain.rating.calculators import ScoreCalculator
from app.domain.rating.exceptions import DuplicateFinalization, PersistenceFailure
from app.domain.rating.models import (
	LIVE_ENTRY_ID,
	EntryStatus,
	RatingHistoryEntry,
	UserRating,
	tier_for,
)
from app.domain.rating.repository import RatingRepository
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

LOCKED_REASON = "End of Day Summary"
LIVE_REASON = "Live Update"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(slots=True)
class LiveProjection:
	entry: RatingHistoryEntry
	base_rating: int
	user: Optional[UserRating] = None


class DayLedger:
	def __init__(
		self,
		repo: Optional[RatingRepository] = None,
		calculator: Optional[ScoreCalculator] = None,
		*,
		bounds: Optional[RatingBounds] = None,
		tz: Optional[tzinfo] = None,
		clock: Optional[Clock] = None,
	) -> None:
		self._tz = tz or settings.rating_zone()
		self.repo = repo or RatingRepository()
		self.calculator = calculator or ScoreCalculator(tz=self._tz)
		self.bounds = bounds or RatingBounds.from_settings()
		self._clock = clock or _utcnow

	def today(self) -> date:
		return policy.local_today(self._clock(), self._tz)

	async def baseline(self, user_id: str) -> int:
		"""Rating today's projection starts from: the latest locked ``new_rating``."""
		latest = await self.repo.latest_locked(user_id)
		return latest.new_rating if latest is not None else self.bounds.base

	async def check_and_finalize_past_days(self, user_id: str) -> list[RatingHistoryEntry]:
		"""Lock every elapsed day that has no history row yet.

		Returns only the rows this call inserted; days another request locked
		concurrently are skipped but still feed the next day's baseline. A day
		whose signals could not all be read stops the run unlocked, so the
		next call scores it again from complete data.
		"""
		today = self.today()
		latest = await self.repo.latest_locked(user_id)
		if latest is not None:
			start = latest.day + timedelta(days=1)
			baseline = latest.new_rating
		else:
			user = await self.repo.get_user(user_id)
			if user is None or user.last_active_date is None:
				return []
			start = user.last_active_date
			baseline = self.bounds.base

		inserted: list[RatingHistoryEntry] = []
		for day in policy.days_between(start, today):
			scores = await self.calculator.compute(user_id, day)
			if scores.degraded:
				# Locked rows are permanent; leave this day and the ones after it for a later call.
				obs_metrics.inc_rating_finalized("deferred")
				logger.warning(
					"rating_day_lock_deferred",
					extra={"rating_user": user_id, "day": day.isoformat(), "degraded": list(scores.degraded)},
				)
				break
			result = aggregate(scores, baseline, self.bounds)
			try:
				entry = await self.repo.insert_locked(user_id, day, result, reason=LOCKED_REASON)
			except DuplicateFinalization:
				logger.debug("rating_day_already_locked", extra={"rating_user": user_id, "day": day.isoformat()})
				obs_metrics.inc_rating_finalized("duplicate")
				existing = await self.repo.get_entry(user_id, day)
				if existing is None:
					raise PersistenceFailure("insert_locked")
				baseline = existing.new_rating
				continue
			obs_metrics.inc_rating_finalized("inserted")
			logger.info(
				"rating_day_locked",
				extra={
					"rating_user": user_id,
					"day": day.isoformat(),
					"old_rating": entry.old_rating,
					"new_rating": entry.new_rating,
					"dps": entry.dps,
				},
			)
			inserted.append(entry)
			baseline = entry.new_rating

		if inserted:
			await self.repo.update_user_rating(user_id, rating=baseline, rank=tier_for(baseline).name)
		return inserted

	async def project_live(self, user_id: str) -> LiveProjection:
		"""Score today against the locked baseline without writing anything."""
		today = self.today()
		base = await self.baseline(user_id)
		scores = await self.calculator.compute(user_id, today)
		result = aggregate(scores, base, self.bounds)
		entry = RatingHistoryEntry(
			id=LIVE_ENTRY_ID,
			user_id=user_id,
			day=today,
			old_rating=result.old_rating,
			new_rating=result.new_rating,
			change=result.change,
			dps=result.total_dps,
			breakdown=result.breakdown,
			status=EntryStatus.LIVE,
			reason=LIVE_REASON,
			created_at=self._clock(),
		)
		return LiveProjection(entry=entry, base_rating=base)

	async def upsert_live(self, user_id: str) -> LiveProjection:
		"""Recompute today and store it as the user's current rating.

		No history row is written for today. The user's ``last_active_date``
		moves to today, which is what later finalization anchors on.
		"""
		projection = await self.project_live(user_id)
		rating = projection.entry.new_rating
		projection.user = await self.repo.update_user_rating(
			user_id,
			rating=rating,
			rank=tier_for(rating).name,
			last_active_date=projection.entry.day,
		)
		return projection
