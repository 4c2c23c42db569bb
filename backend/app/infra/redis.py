"""Redis client for the rating outbox stream and counters.

Modules import the ``redis_client`` proxy, so the real client is created on
first use and can be swapped (fakeredis in tests) without re-importing.
"""

from __future__ import annotations

from typing import Callable, Optional

import redis.asyncio as redis

from app.settings import settings


class RedisProxy:
	"""Forwards attribute access to a lazily created Redis client."""

	def __init__(self, factory: Callable[[], redis.Redis]) -> None:
		self._factory = factory
		self._client: Optional[redis.Redis] = None

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = self._factory()
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def xadd(self, name, fields, *, maxlen: int | None = None, approximate: bool = False):
		"""Exact trimming by default so stream lengths stay predictable."""
		return await self.client.xadd(name, fields, maxlen=maxlen, approximate=approximate)

	async def close(self) -> None:
		if self._client is not None:
			await self._client.aclose()
			self._client = None

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client = RedisProxy(lambda: redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)
