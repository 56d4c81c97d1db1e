"""Authorization policies for scheduling operations."""

from __future__ import annotations

from app.domain.clubs.models import Club, ClubMember
from app.scheduling.domain import messages
from app.scheduling.domain.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.scheduling.domain.models import Visibility

_MAX_IDEMPOTENCY_KEY_LENGTH = 200


def require_club(club: Club | None) -> Club:
	if club is None:
		raise NotFoundError(messages.CLUB_NOT_FOUND)
	return club


def assert_can_manage(member: ClubMember | None) -> None:
	"""Only club owners and admins may create, edit or delete series and instances."""
	if member is None or not member.is_manager:
		raise ForbiddenError(messages.EVENT_UNAUTHORIZED)


def assert_can_view(visibility: Visibility, member: ClubMember | None) -> None:
	if Visibility(visibility) is Visibility.MEMBERS_ONLY and member is None:
		raise ForbiddenError(messages.ACCESS_DENIED)


def assert_not_banned(is_banned: bool) -> None:
	if is_banned:
		raise ForbiddenError(messages.BANNED_USER)


def ensure_idempotency_key(key: str | None) -> str | None:
	if key is not None and len(key) > _MAX_IDEMPOTENCY_KEY_LENGTH:
		raise ValidationError("idempotency_key_too_long")
	return key
