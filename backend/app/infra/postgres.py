"""Process-wide asyncpg pool.

The rating repository, migration runner and readiness probe all borrow
connections from the same pool; tests install their own with ``set_pool``.
"""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from app.settings import settings

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT_SECONDS = 10.0

_pool: Optional[asyncpg.pool.Pool] = None


def _pool_options() -> dict:
	return {
		"dsn": settings.postgres_url,
		"min_size": settings.postgres_min_pool_size,
		"max_size": settings.postgres_max_pool_size,
		"ssl": "require" if settings.postgres_ssl else "disable",
		"command_timeout": COMMAND_TIMEOUT_SECONDS,
		"server_settings": {"application_name": settings.service_name},
	}


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(**_pool_options())
		logger.info(
			"postgres_pool_ready",
			extra={"min_size": settings.postgres_min_pool_size, "max_size": settings.postgres_max_pool_size},
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
