"""Redis client used for idempotency keys on scheduling writes.

Modules import the stable ``redis_client`` proxy; the client behind it can be
swapped at runtime (fakeredis in tests) without re-importing.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from app.settings import settings

_LOG = logging.getLogger(__name__)


class RedisProxy:
	"""Forwards attribute access to the current client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


redis_client: RedisProxy = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	try:
		await redis_client.aclose()
	except redis.RedisError:
		_LOG.warning("redis.close_failed", exc_info=True)
