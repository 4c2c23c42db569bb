import os
import sys
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

import asyncio
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy")

from app.domain.rating import service as rating_service
from app.domain.rating.aggregator import RatingBounds
from app.domain.rating.calculators import ScoreCalculator
from app.domain.rating.exceptions import (
	DataSourceUnavailable,
	DuplicateFinalization,
	PersistenceFailure,
	RatingUserNotFound,
)
from app.domain.rating.ledger import DayLedger
from app.domain.rating.models import (
	ActivitySignal,
	BudgetSignal,
	EntryStatus,
	RatingHistoryEntry,
	TaskSignal,
	UserRating,
)
from app.domain.rating.service import RatingEngine
from app.infra import postgres
from app.main import app
from app.settings import settings

UTC = timezone.utc


class MemoryRatingRepository:
	"""In-memory stand-in for RatingRepository keyed on (user_id, day)."""

	def __init__(self) -> None:
		self.users: dict[str, UserRating] = {}
		self.entries: dict[tuple[str, date], RatingHistoryEntry] = {}
		self.fail_ops: set[str] = set()
		self.insert_attempts = 0

	def add_user(self, user_id: str, *, rating: int = 1000, last_active_date: Optional[date] = None) -> None:
		self.users[user_id] = UserRating(user_id=user_id, rating=rating, rank="Pupil", last_active_date=last_active_date)

	def _check(self, op: str) -> None:
		if op in self.fail_ops:
			raise PersistenceFailure(op)

	async def get_user(self, user_id):
		self._check("get_user")
		user = self.users.get(user_id)
		return replace(user) if user else None

	async def latest_locked(self, user_id):
		self._check("latest_locked")
		days = [day for (uid, day) in self.entries if uid == user_id]
		return self.entries[(user_id, max(days))] if days else None

	async def get_entry(self, user_id, day):
		return self.entries.get((user_id, day))

	async def insert_locked(self, user_id, day, result, *, reason):
		self._check("insert_locked")
		self.insert_attempts += 1
		# Let concurrent finalizers reach this point before the key check.
		await asyncio.sleep(0)
		if (user_id, day) in self.entries:
			raise DuplicateFinalization()
		entry = RatingHistoryEntry(
			id=str(uuid4()),
			user_id=user_id,
			day=day,
			old_rating=result.old_rating,
			new_rating=result.new_rating,
			change=result.change,
			dps=result.total_dps,
			breakdown=result.breakdown,
			status=EntryStatus.LOCKED,
			reason=reason,
			created_at=datetime.now(UTC),
		)
		self.entries[(user_id, day)] = entry
		return entry

	async def update_user_rating(self, user_id, *, rating, rank, last_active_date=None):
		self._check("update_user_rating")
		user = self.users.get(user_id)
		if user is None:
			raise RatingUserNotFound()
		user.rating = rating
		user.rank = rank
		if last_active_date is not None:
			user.last_active_date = last_active_date
		return replace(user)

	async def list_history(self, user_id, *, limit):
		rows = sorted((entry for (uid, _), entry in self.entries.items() if uid == user_id), key=lambda e: e.day)
		return rows[-limit:]


class FakeSignalSource:
	"""Signals held in memory and filtered by the requested window."""

	def __init__(self) -> None:
		self.tasks: dict[str, list[TaskSignal]] = defaultdict(list)
		self.study: dict[str, list[tuple[datetime, float]]] = defaultdict(list)
		self.activities: dict[str, list[tuple[datetime, ActivitySignal]]] = defaultdict(list)
		self.expenses: dict[str, list[tuple[datetime, float]]] = defaultdict(list)
		self.budgets: dict[str, BudgetSignal] = {}
		self.goals: dict[str, float] = {}
		self.failing: set[str] = set()

	def _guard(self, name: str, component: str) -> None:
		if name in self.failing:
			raise DataSourceUnavailable(component)

	def add_task(self, user_id, created_at, *, minutes=30, completed=False, deleted_at=None, completed_at=None):
		self.tasks[user_id].append(
			TaskSignal(
				estimated_duration=minutes,
				is_completed=completed or completed_at is not None,
				created_at=created_at,
				deleted_at=deleted_at,
				completed_at=completed_at,
			)
		)

	def add_study(self, user_id, at, minutes):
		self.study[user_id].append((at, minutes))

	def add_activity(self, user_id, at, duration, planned):
		self.activities[user_id].append((at, ActivitySignal(duration=duration, planned_duration=planned)))

	async def fetch_tasks(self, user_id, start, end):
		self._guard("fetch_tasks", "plan")
		return [task for task in self.tasks[user_id] if start <= task.created_at < end]

	async def fetch_study_minutes(self, user_id, start, end):
		self._guard("fetch_study_minutes", "study")
		return float(sum(minutes for at, minutes in self.study[user_id] if start <= at < end))

	async def fetch_study_goal_hours(self, user_id):
		self._guard("fetch_study_goal_hours", "study")
		return self.goals.get(user_id, 2.0)

	async def fetch_activities(self, user_id, start, end):
		self._guard("fetch_activities", "activity")
		return [signal for at, signal in self.activities[user_id] if start <= at < end]

	async def fetch_budget(self, user_id):
		self._guard("fetch_budget", "budget")
		return self.budgets.get(user_id)

	async def fetch_spent(self, user_id, start, end):
		self._guard("fetch_spent", "budget")
		return float(sum(amount for at, amount in self.expenses[user_id] if start <= at < end))


class FrozenClock:
	def __init__(self, now: datetime) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **kwargs) -> None:
		self.now = self.now + timedelta(**kwargs)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from app.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate via X-User-Id, which is only accepted in dev mode."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest.fixture
def memory_repo():
	return MemoryRatingRepository()


@pytest.fixture
def signals():
	return FakeSignalSource()


@pytest.fixture
def clock():
	return FrozenClock(datetime(2025, 3, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def ledger(memory_repo, signals, clock):
	return DayLedger(
		memory_repo,
		ScoreCalculator(signals, tz=UTC),
		bounds=RatingBounds(),
		tz=UTC,
		clock=clock,
	)


@pytest.fixture
def engine(ledger):
	engine = RatingEngine(ledger)
	rating_service.set_engine(engine)
	try:
		yield engine
	finally:
		rating_service.set_engine(None)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
