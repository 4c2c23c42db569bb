import json
from datetime import date, datetime, timezone

import asyncpg
import pytest

from app.domain.rating import repository, signals as signals_module
from app.domain.rating.exceptions import (
    DataSourceUnavailable,
    DuplicateFinalization,
    PersistenceFailure,
    RatingUserNotFound,
)
from app.domain.rating.models import ComponentScores, EntryStatus
from app.domain.rating.aggregator import RatingBounds, aggregate
from app.domain.rating.signals import PostgresSignalSource

USER = "33333333-3333-3333-3333-333333333333"
DAY = date(2025, 3, 9)


def history_row(**overrides):
    row = {
        "id": "7b1e9f1c-0000-0000-0000-000000000001",
        "user_id": USER,
        "day": DAY,
        "old_rating": 1000,
        "new_rating": 1030,
        "change": 30,
        "dps": 30.0,
        "breakdown": json.dumps({"version": 1, "study_score": 20, "plan_score": 10, "total_dps": 30}),
        "reason": "End of Day Summary",
        "created_at": datetime(2025, 3, 10, 0, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


class StaticConnection:
    def __init__(self, *, row=None, rows=(), error: Exception | None = None) -> None:
        self.row = row
        self.rows = list(rows)
        self.error = error
        self.queries: list[tuple[str, tuple[object, ...]]] = []

    async def fetchrow(self, query: str, *params):
        self.queries.append((" ".join(query.split()), params))
        if self.error is not None:
            raise self.error
        return self.row

    async def fetch(self, query: str, *params):
        self.queries.append((" ".join(query.split()), params))
        if self.error is not None:
            raise self.error
        return self.rows


class StaticPool:
    def __init__(self, conn: StaticConnection) -> None:
        self._conn = conn

    def acquire(self):
        conn = self._conn

        class _Ctx:
            async def __aenter__(self_inner):
                return conn

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Ctx()


def use_connection(monkeypatch, module, conn: StaticConnection) -> None:
    pool = StaticPool(conn)

    async def fake_get_pool():
        return pool

    monkeypatch.setattr(module, "get_pool", fake_get_pool)


def day_result():
    return aggregate(ComponentScores(study=20.0, plan=10.0), 1000, RatingBounds())


@pytest.mark.asyncio
async def test_insert_locked_returns_entry(monkeypatch):
    conn = StaticConnection(row=history_row())
    use_connection(monkeypatch, repository, conn)

    entry = await repository.RatingRepository().insert_locked(USER, DAY, day_result(), reason="End of Day Summary")

    assert entry.status is EntryStatus.LOCKED
    assert entry.new_rating == 1030
    assert entry.breakdown.study_score == 20.0
    query, params = conn.queries[0]
    assert "ON CONFLICT (user_id, day) DO NOTHING" in query
    stored = json.loads(params[7])
    assert stored["version"] == 1
    assert stored["total_dps"] == 30.0


@pytest.mark.asyncio
async def test_insert_locked_conflict_is_duplicate(monkeypatch):
    use_connection(monkeypatch, repository, StaticConnection(row=None))
    with pytest.raises(DuplicateFinalization):
        await repository.RatingRepository().insert_locked(USER, DAY, day_result(), reason="x")


@pytest.mark.asyncio
async def test_unique_violation_is_duplicate(monkeypatch):
    use_connection(monkeypatch, repository, StaticConnection(error=asyncpg.UniqueViolationError("duplicate key")))
    with pytest.raises(DuplicateFinalization):
        await repository.RatingRepository().insert_locked(USER, DAY, day_result(), reason="x")


@pytest.mark.asyncio
async def test_database_errors_become_persistence_failures(monkeypatch):
    use_connection(monkeypatch, repository, StaticConnection(error=ConnectionResetError("gone")))
    with pytest.raises(PersistenceFailure) as excinfo:
        await repository.RatingRepository().update_user_rating(USER, rating=1010, rank="Pupil")
    assert excinfo.value.operation == "update_user_rating"
    assert excinfo.value.detail == "rating_unavailable"


@pytest.mark.asyncio
async def test_update_missing_user(monkeypatch):
    use_connection(monkeypatch, repository, StaticConnection(row=None))
    with pytest.raises(RatingUserNotFound):
        await repository.RatingRepository().update_user_rating(USER, rating=1010, rank="Pupil")


@pytest.mark.asyncio
async def test_breakdown_decoding_tolerates_unknown_payloads(monkeypatch):
    conn = StaticConnection(rows=[history_row(breakdown={"study_score": "oops", "extra": 1}), history_row(breakdown=None)])
    use_connection(monkeypatch, repository, conn)

    entries = await repository.RatingRepository().list_history(USER, limit=10)

    assert [entry.breakdown.study_score for entry in entries] == [0.0, 0.0]
    assert conn.queries[0][1] == (USER, 10)


@pytest.mark.asyncio
async def test_signal_source_maps_rows(monkeypatch):
    created = datetime(2025, 3, 9, 7, tzinfo=timezone.utc)
    conn = StaticConnection(
        rows=[
            {
                "estimated_duration": None,
                "is_completed": 1,
                "created_at": created,
                "deleted_at": None,
                "completed_at": created,
            }
        ]
    )
    use_connection(monkeypatch, signals_module, conn)

    tasks = await PostgresSignalSource(timeout_seconds=1).fetch_tasks(USER, created, created)

    assert tasks[0].is_completed is True
    assert tasks[0].estimated_duration is None
    assert tasks[0].is_deleted is False
    assert tasks[0].completed_at == created


@pytest.mark.asyncio
async def test_signal_source_failure_is_component_scoped(monkeypatch):
    use_connection(monkeypatch, signals_module, StaticConnection(error=OSError("connection refused")))

    with pytest.raises(DataSourceUnavailable) as excinfo:
        await PostgresSignalSource(timeout_seconds=1).fetch_budget(USER)
    assert excinfo.value.component == "budget"


@pytest.mark.asyncio
async def test_signal_source_defaults_study_goal(monkeypatch):
    use_connection(monkeypatch, signals_module, StaticConnection(row={"daily_study_goal": None}))
    assert await PostgresSignalSource(timeout_seconds=1).fetch_study_goal_hours(USER) == 2.0
