"""Domain models for Clubs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

MANAGER_ROLES = frozenset({"owner", "admin"})


@dataclass
class Club:
    id: UUID
    name: str
    owner_id: UUID
    is_public: bool
    description: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ClubMember:
    club_id: UUID
    user_id: UUID
    role: str  # 'owner', 'admin', 'member'
    joined_at: Optional[datetime] = None

    @property
    def is_owner(self) -> bool:
        return self.role == 'owner'

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES
