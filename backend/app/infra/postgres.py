"""AsyncPG pool management and connection helpers.

Repositories accept an optional ``conn`` so that several writes can share one
transaction; :func:`connection` reuses it when given and borrows from the pool
otherwise.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from app.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
			command_timeout=settings.postgres_command_timeout_seconds,
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


@asynccontextmanager
async def connection(conn: Optional[asyncpg.Connection] = None) -> AsyncIterator[asyncpg.Connection]:
	if conn is not None:
		yield conn
		return
	pool = await get_pool()
	async with pool.acquire() as acquired:
		yield acquired


@asynccontextmanager
async def transaction() -> AsyncIterator[asyncpg.Connection]:
	"""Borrow a connection and run the block inside one transaction."""
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			yield conn


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
