"""Idempotency helpers backed by Redis."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Awaitable, Callable, TypeVar

from app.infra.redis import redis_client
from app.scheduling.domain import messages
from app.scheduling.domain.exceptions import IdempotencyConflict
from app.settings import settings

_LOG = logging.getLogger(__name__)

T = TypeVar("T")
_KEY_PREFIX = "scheduling:idemp:"


@dataclass(slots=True)
class IdempotencyRecord:
	hash: str
	payload: Any

	def to_json(self) -> str:
		return json.dumps({"hash": self.hash, "payload": self.payload})

	@staticmethod
	def from_json(raw: str) -> "IdempotencyRecord":
		data = json.loads(raw)
		return IdempotencyRecord(hash=data.get("hash", ""), payload=data.get("payload"))


def compute_hash(*, body: Any | None) -> str:
	"""Stable hash of the request body, used to detect key reuse."""
	if body is None:
		return ""
	materialised = json.dumps(body, sort_keys=True, separators=(",", ":"))
	return sha256(materialised.encode()).hexdigest()


def _replay(raw: str, body_hash: str, deserializer: Callable[[Any], T] | None) -> T:
	record = IdempotencyRecord.from_json(raw)
	if record.hash != body_hash:
		raise IdempotencyConflict(messages.IDEMPOTENCY_CONFLICT)
	if deserializer:
		return deserializer(record.payload)
	return record.payload  # type: ignore[return-value]


async def resolve(
	*,
	key: str | None,
	scope: str,
	body_hash: str,
	producer: Callable[[], Awaitable[T]],
	serializer: Callable[[T], Any],
	deserializer: Callable[[Any], T] | None = None,
) -> T:
	"""Run ``producer`` once per ``(scope, key)``.

	A replay with the same body returns the stored payload; a replay with a
	different body raises :class:`IdempotencyConflict`.
	"""
	if not key:
		return await producer()

	redis_key = f"{_KEY_PREFIX}{scope}:{key}"
	cached = await redis_client.get(redis_key)
	if cached:
		return _replay(cached, body_hash, deserializer)

	result = await producer()
	record = IdempotencyRecord(hash=body_hash, payload=serializer(result))
	stored = await redis_client.set(redis_key, record.to_json(), ex=settings.idempotency_ttl_seconds, nx=True)
	if not stored:
		cached_after = await redis_client.get(redis_key)
		if cached_after:
			return _replay(cached_after, body_hash, deserializer)
		_LOG.warning("scheduling.idempotency.store_race", extra={"key": key})
	return result


__all__ = ["compute_hash", "resolve"]
