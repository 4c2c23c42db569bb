"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from app.infra import migrate, postgres
from app.infra.redis import redis_client
from app.obs import metrics
from app.settings import settings

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - start
	metrics.mark_redis(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def _postgres_status(timeout: float = 0.3) -> Tuple[Dict[str, Any], Any]:
	start = perf_counter()
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			applied = await asyncio.wait_for(
				conn.fetch("SELECT version FROM schema_migrations ORDER BY version"),
				timeout=timeout,
			)
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_postgres(False)
		LOGGER.warning("Postgres readiness query failed", exc_info=True)
		return {"ok": False, "error": str(exc)}, None
	latency = perf_counter() - start
	metrics.mark_postgres(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}, [str(row["version"]) for row in applied]


def _migration_status(applied: list[str] | None, min_version: str) -> Dict[str, Any]:
	if applied is None:
		return {"ok": False, "error": "postgres_unavailable"}
	if not applied:
		return {"ok": False, "error": "no_migrations"}
	current = applied[-1]
	pending = [
		migrate.migration_version(path)
		for path in migrate.pending_migrations(migrate.MIGRATIONS_DIR.glob("*.sql"), applied)
	]
	return {"ok": current >= min_version, "version": current, "required": min_version, "pending": pending}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, (postgres_state, applied) = await asyncio.gather(_redis_status(), _postgres_status())
	migration_state = _migration_status(applied, settings.health_min_migration)
	ok = redis_state.get("ok") and postgres_state.get("ok") and migration_state.get("ok")
	status_code = 200 if ok else 503
	return (
		status_code,
		{
			"status": "ok" if ok else "degraded",
			"checks": {
				"redis": redis_state,
				"postgres": postgres_state,
				"migrations": migration_state,
			},
			"rating_timezone": settings.rating_timezone,
		},
	)
