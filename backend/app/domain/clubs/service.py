"""Read-only club directory used by event scheduling."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

import asyncpg

from app.domain.clubs.models import Club, ClubMember
from app.infra.postgres import get_pool


class ClubDirectory:
    """Club, membership and ban lookups."""

    async def get_club(self, club_id: UUID) -> Optional[Club]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT id, name, description, owner_id, is_public, created_at
                FROM clubs
                WHERE id = $1
            """, club_id)
        return _club_from_row(row) if row else None

    async def get_member(self, club_id: UUID, user_id: UUID) -> Optional[ClubMember]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT club_id, user_id, role, joined_at
                FROM club_members
                WHERE club_id = $1 AND user_id = $2
            """, club_id, user_id)
        return _member_from_row(row) if row else None

    async def list_members(self, club_id: UUID) -> List[ClubMember]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT club_id, user_id, role, joined_at
                FROM club_members
                WHERE club_id = $1
                ORDER BY joined_at ASC
            """, club_id)
        return [_member_from_row(row) for row in rows]

    async def is_banned(self, club_id: UUID, user_id: UUID) -> bool:
        pool = await get_pool()
        async with pool.acquire() as conn:
            found = await conn.fetchval("""
                SELECT 1 FROM club_bans WHERE club_id = $1 AND user_id = $2
            """, club_id, user_id)
        return bool(found)


def _club_from_row(row: asyncpg.Record) -> Club:
    return Club(
        id=row['id'],
        name=row['name'],
        description=row['description'],
        owner_id=row['owner_id'],
        is_public=row['is_public'],
        created_at=row['created_at'],
    )


def _member_from_row(row: asyncpg.Record) -> ClubMember:
    return ClubMember(
        club_id=row['club_id'],
        user_id=row['user_id'],
        role=row['role'],
        joined_at=row['joined_at'],
    )
