"""Async repository for rating history and the user's rating fields.

This is the only module that writes ``users.rating``, ``users.rank``,
``users.last_active_date`` and ``rating_history`` rows.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Mapping, Optional
from uuid import uuid4

import asyncpg

from app.domain.rating.exceptions import DuplicateFinalization, PersistenceFailure, RatingUserNotFound
from app.domain.rating.models import (
	BREAKDOWN_VERSION,
	DPSBreakdown,
	DPSResult,
	EntryStatus,
	RatingHistoryEntry,
	UserRating,
)
from app.infra.postgres import get_pool
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

_HISTORY_COLUMNS = "id, user_id, day, old_rating, new_rating, change, dps, breakdown, reason, created_at"


def _decode_breakdown(raw: Any) -> DPSBreakdown:
	if isinstance(raw, (str, bytes)):
		raw = json.loads(raw)
	return DPSBreakdown.from_json(raw if isinstance(raw, Mapping) else None)


def _entry_from_row(row: Mapping[str, Any]) -> RatingHistoryEntry:
	return RatingHistoryEntry(
		id=str(row["id"]),
		user_id=str(row["user_id"]),
		day=row["day"],
		old_rating=int(row["old_rating"]),
		new_rating=int(row["new_rating"]),
		change=int(row["change"]),
		dps=float(row["dps"]),
		breakdown=_decode_breakdown(row["breakdown"]),
		status=EntryStatus.LOCKED,
		reason=row["reason"] or "",
		created_at=row["created_at"],
	)


def _user_from_row(row: Mapping[str, Any]) -> UserRating:
	return UserRating(
		user_id=str(row["id"]),
		rating=int(row["rating"]),
		rank=row["rank"],
		last_active_date=row["last_active_date"],
	)


@asynccontextmanager
async def _connection(op: str) -> AsyncIterator[asyncpg.Connection]:
	try:
		pool = await get_pool()
		async with pool.acquire() as conn:
			yield conn
	except _DB_ERRORS as exc:
		logger.error("rating_persistence_failed", extra={"op": op}, exc_info=True)
		obs_metrics.inc_rating_persistence_failure(op)
		raise PersistenceFailure(op) from exc


class RatingRepository:
	"""Thin data-access layer around asyncpg."""

	async def get_user(self, user_id: str) -> Optional[UserRating]:
		async with _connection("get_user") as conn:
			row = await conn.fetchrow(
				"SELECT id, rating, rank, last_active_date FROM users WHERE id = $1",
				user_id,
			)
		return _user_from_row(row) if row else None

	async def latest_locked(self, user_id: str) -> Optional[RatingHistoryEntry]:
		async with _connection("latest_locked") as conn:
			row = await conn.fetchrow(
				f"""
				SELECT {_HISTORY_COLUMNS}
				FROM rating_history
				WHERE user_id = $1
				ORDER BY day DESC
				LIMIT 1
				""",
				user_id,
			)
		return _entry_from_row(row) if row else None

	async def get_entry(self, user_id: str, day: date) -> Optional[RatingHistoryEntry]:
		async with _connection("get_entry") as conn:
			row = await conn.fetchrow(
				f"SELECT {_HISTORY_COLUMNS} FROM rating_history WHERE user_id = $1 AND day = $2",
				user_id,
				day,
			)
		return _entry_from_row(row) if row else None

	async def insert_locked(self, user_id: str, day: date, result: DPSResult, *, reason: str) -> RatingHistoryEntry:
		"""Insert the LOCKED row for ``day`` unless one already exists.

		Raises ``DuplicateFinalization`` when another writer got there first.
		"""
		async with _connection("insert_locked") as conn:
			try:
				row = await conn.fetchrow(
					f"""
					INSERT INTO rating_history (
						id, user_id, day, old_rating, new_rating, change, dps,
						breakdown, breakdown_version, reason
					)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10)
					ON CONFLICT (user_id, day) DO NOTHING
					RETURNING {_HISTORY_COLUMNS}
					""",
					str(uuid4()),
					user_id,
					day,
					result.old_rating,
					result.new_rating,
					result.change,
					result.total_dps,
					json.dumps(result.breakdown.to_json()),
					BREAKDOWN_VERSION,
					reason,
				)
			except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
				raise DuplicateFinalization() from exc
		if row is None:
			raise DuplicateFinalization()
		return _entry_from_row(row)

	async def update_user_rating(
		self,
		user_id: str,
		*,
		rating: int,
		rank: str,
		last_active_date: Optional[date] = None,
	) -> UserRating:
		"""Write the current rating; ``last_active_date`` is kept when not given."""
		async with _connection("update_user_rating") as conn:
			row = await conn.fetchrow(
				"""
				UPDATE users
				SET rating = $2, rank = $3, last_active_date = COALESCE($4, last_active_date)
				WHERE id = $1
				RETURNING id, rating, rank, last_active_date
				""",
				user_id,
				rating,
				rank,
				last_active_date,
			)
		if row is None:
			raise RatingUserNotFound()
		return _user_from_row(row)

	async def list_history(self, user_id: str, *, limit: int) -> list[RatingHistoryEntry]:
		"""Most recent ``limit`` locked entries in ascending day order."""
		async with _connection("list_history") as conn:
			rows = await conn.fetch(
				f"""
				SELECT * FROM (
					SELECT {_HISTORY_COLUMNS}
					FROM rating_history
					WHERE user_id = $1
					ORDER BY day DESC
					LIMIT $2
				) recent
				ORDER BY day ASC
				""",
				user_id,
				limit,
			)
		return [_entry_from_row(row) for row in rows]
