"""Apply ordered SQL migrations with asyncpg.

Usage: ``python -m app.infra.migrate [migrations_dir]``. Files are named
``NNNN_description.sql``; the numeric prefix is the recorded version.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

from app.infra import postgres

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "infra" / "migrations"


def migration_version(path: Path) -> str:
	return path.name.split("_", 1)[0]


def pending_migrations(paths: Iterable[Path], applied: Iterable[str]) -> list[Path]:
	"""Return the migrations not yet applied, ordered by version."""
	done = set(applied)
	return [path for path in sorted(paths, key=migration_version) if migration_version(path) not in done]


async def apply_migrations(pool, directory: Optional[Path] = None) -> Sequence[str]:
	directory = directory or MIGRATIONS_DIR
	paths = sorted(directory.glob("*.sql"))
	if not paths:
		raise FileNotFoundError(f"no migration files found in {directory}")

	applied_now: list[str] = []
	async with pool.acquire() as conn:
		await conn.execute(
			"""
			CREATE TABLE IF NOT EXISTS schema_migrations (
				version TEXT PRIMARY KEY,
				applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
			)
			"""
		)
		rows = await conn.fetch("SELECT version FROM schema_migrations")
		for path in pending_migrations(paths, (row["version"] for row in rows)):
			version = migration_version(path)
			async with conn.transaction():
				await conn.execute(path.read_text())
				await conn.execute(
					"""
					INSERT INTO schema_migrations (version)
					VALUES ($1)
					ON CONFLICT (version) DO UPDATE SET applied_at = NOW()
					""",
					version,
				)
			logger.info("migration_applied", extra={"version": version, "file": path.name})
			applied_now.append(version)
	return applied_now


async def _main(argv: Sequence[str]) -> None:
	directory = Path(argv[0]) if argv else None
	pool = await postgres.init_pool()
	try:
		applied = await apply_migrations(pool, directory)
	finally:
		await postgres.close_pool()
	print(f"Applied {len(applied)} migration(s): {', '.join(applied) or '-'}")


if __name__ == "__main__":
	logging.basicConfig(level=logging.INFO)
	asyncio.run(_main(sys.argv[1:]))
