"""Read-only access to the raw signals the score calculators consume.

Tasks, study sessions, activities, budgets and expenses are owned by the CRUD
application; the engine only reads counts, sums and timestamps from them.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Optional, TypeVar

import asyncpg

from app.domain.rating import policy
from app.domain.rating.exceptions import DataSourceUnavailable
from app.domain.rating.models import ActivitySignal, BudgetSignal, RatingComponent, TaskSignal
from app.infra.postgres import get_pool
from app.settings import settings

T = TypeVar("T")

_SOURCE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PostgresSignalSource:
	"""Fetches one user's signals for a day window from Postgres."""

	def __init__(self, *, timeout_seconds: Optional[float] = None) -> None:
		self._timeout = timeout_seconds if timeout_seconds is not None else settings.rating_signal_timeout_seconds

	async def _guarded(self, component: RatingComponent, awaitable: Awaitable[T]) -> T:
		try:
			return await asyncio.wait_for(awaitable, timeout=self._timeout)
		except _SOURCE_ERRORS as exc:
			raise DataSourceUnavailable(component.value) from exc

	async def _fetch(self, query: str, *args: Any) -> list[Any]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			return await conn.fetch(query, *args)

	async def _fetchrow(self, query: str, *args: Any) -> Any:
		pool = await get_pool()
		async with pool.acquire() as conn:
			return await conn.fetchrow(query, *args)

	async def fetch_tasks(self, user_id: str, start: datetime, end: datetime) -> list[TaskSignal]:
		"""Tasks created inside the window, including soft-deleted ones."""
		rows = await self._guarded(
			RatingComponent.PLAN,
			self._fetch(
				"""
				SELECT estimated_duration, is_completed, created_at, deleted_at, completed_at
				FROM tasks
				WHERE user_id = $1 AND created_at >= $2 AND created_at < $3
				ORDER BY created_at
				""",
				user_id,
				start,
				end,
			),
		)
		return [
			TaskSignal(
				estimated_duration=row["estimated_duration"],
				is_completed=bool(row["is_completed"]),
				created_at=row["created_at"],
				deleted_at=row["deleted_at"],
				completed_at=row["completed_at"],
			)
			for row in rows
		]

	async def fetch_study_minutes(self, user_id: str, start: datetime, end: datetime) -> float:
		row = await self._guarded(
			RatingComponent.STUDY,
			self._fetchrow(
				"""
				SELECT COALESCE(SUM(duration), 0) AS minutes
				FROM study_sessions
				WHERE user_id = $1 AND date >= $2 AND date < $3
				""",
				user_id,
				start,
				end,
			),
		)
		return float(row["minutes"]) if row else 0.0

	async def fetch_study_goal_hours(self, user_id: str) -> float:
		row = await self._guarded(
			RatingComponent.STUDY,
			self._fetchrow("SELECT daily_study_goal FROM users WHERE id = $1", user_id),
		)
		if not row or not row["daily_study_goal"]:
			return policy.DEFAULT_STUDY_GOAL_HOURS
		return float(row["daily_study_goal"])

	async def fetch_activities(self, user_id: str, start: datetime, end: datetime) -> list[ActivitySignal]:
		rows = await self._guarded(
			RatingComponent.ACTIVITY,
			self._fetch(
				"""
				SELECT duration, planned_duration
				FROM activities
				WHERE user_id = $1 AND date >= $2 AND date < $3
				""",
				user_id,
				start,
				end,
			),
		)
		return [
			ActivitySignal(duration=float(row["duration"] or 0), planned_duration=float(row["planned_duration"] or 0))
			for row in rows
		]

	async def fetch_budget(self, user_id: str) -> Optional[BudgetSignal]:
		row = await self._guarded(
			RatingComponent.BUDGET,
			self._fetchrow(
				"SELECT amount, type FROM budgets WHERE user_id = $1 ORDER BY created_at DESC LIMIT 1",
				user_id,
			),
		)
		if not row:
			return None
		return BudgetSignal(amount=float(row["amount"]), period=str(row["type"] or "MONTHLY").upper())

	async def fetch_spent(self, user_id: str, start: datetime, end: datetime) -> float:
		row = await self._guarded(
			RatingComponent.BUDGET,
			self._fetchrow(
				"""
				SELECT COALESCE(SUM(amount), 0) AS spent
				FROM expenses
				WHERE user_id = $1 AND date >= $2 AND date < $3
				""",
				user_id,
				start,
				end,
			),
		)
		return float(row["spent"]) if row else 0.0
