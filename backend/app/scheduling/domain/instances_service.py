"""Instance reads, deletion and timeslot participation."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable
from uuid import UUID

from app.domain.clubs.models import ClubMember
from app.domain.clubs.service import ClubDirectory
from app.infra.auth import AuthenticatedUser
from app.obs import metrics as obs_metrics
from app.scheduling.domain import messages, models, policies, repo as repo_module, validators
from app.scheduling.domain.exceptions import ConflictError, NotFoundError
from app.scheduling.domain.timeutils import local_midnight_utc
from app.scheduling.domain.transitions import StatusTransitionScheduler
from app.scheduling.infra.jobs import JobScheduler, PostgresJobScheduler
from app.scheduling.schemas import dto

_LOG = logging.getLogger(__name__)

_DEFAULT_PAGE_SIZE = 50
_MAX_PAGE_SIZE = 100


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def instance_to_response(instance: models.EventInstance) -> dto.InstanceResponse:
	return dto.InstanceResponse.model_validate(instance.model_dump(mode="json"))


def _timeslot_response(slot: models.Timeslot) -> dto.TimeslotResponse:
	return dto.TimeslotResponse.model_validate(slot.model_dump(mode="json"))


def _page(rows: list[models.EventInstance], limit: int) -> dto.InstanceListResponse:
	"""Trim the ``limit + 1`` lookahead row into a ``next_cursor``."""
	next_cursor = None
	if len(rows) > limit:
		rows = rows[:limit]
		last = rows[-1]
		next_cursor = repo_module.encode_cursor((last.date, last.id))
	return dto.InstanceListResponse(items=[instance_to_response(row) for row in rows], next_cursor=next_cursor)


def _replace_slot(
	instance: models.EventInstance, timeslot_id: str, **counters: int
) -> tuple[list[models.Timeslot], models.Timeslot]:
	slots: list[models.Timeslot] = []
	changed: models.Timeslot | None = None
	for slot in instance.timeslots:
		if slot.id == timeslot_id:
			slot = slot.model_copy(update=counters)
			changed = slot
		slots.append(slot)
	if changed is None:
		raise NotFoundError(messages.TIMESLOT_INVALID_ID)
	return slots, changed


class InstanceService:
	"""Member-facing operations on materialized instances."""

	def __init__(
		self,
		repository: repo_module.SchedulingRepository | None = None,
		*,
		clubs: ClubDirectory | None = None,
		jobs: JobScheduler | None = None,
		transitions: StatusTransitionScheduler | None = None,
		clock: Callable[[], datetime] | None = None,
		limits: validators.ValidationLimits | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self.clubs = clubs or ClubDirectory()
		self.jobs = jobs or PostgresJobScheduler()
		self.transitions = transitions or StatusTransitionScheduler(self.repo, self.jobs)
		self._clock = clock or _utcnow
		self._limits = limits

	@property
	def limits(self) -> validators.ValidationLimits:
		return self._limits or validators.ValidationLimits.from_settings()

	async def _require_instance(self, instance_id: UUID) -> models.EventInstance:
		instance = await self.repo.get_instance(instance_id)
		if instance is None:
			raise NotFoundError(messages.INSTANCE_NOT_FOUND)
		return instance

	async def _member(self, club_id: UUID, user: AuthenticatedUser) -> ClubMember | None:
		return await self.clubs.get_member(club_id, UUID(user.id))

	async def _visible_instance(self, user: AuthenticatedUser, instance_id: UUID) -> models.EventInstance:
		instance = await self._require_instance(instance_id)
		policies.assert_can_view(instance.visibility, await self._member(instance.club_id, user))
		return instance

	# --- Reads --------------------------------------------------------------

	async def get_instance(self, user: AuthenticatedUser, instance_id: UUID) -> dto.InstanceResponse:
		return instance_to_response(await self._visible_instance(user, instance_id))

	async def get_instance_at_date(
		self, user: AuthenticatedUser, series_id: UUID, day: date
	) -> dto.InstanceResponse:
		"""Look up the instance a series produced for a local calendar day."""
		series = await self.repo.get_series(series_id)
		if series is None:
			raise NotFoundError(messages.SERIES_NOT_FOUND)
		policies.assert_can_view(series.visibility, await self._member(series.club_id, user))
		instance = await self.repo.get_instance_at_date(series_id, local_midnight_utc(day, series.timezone))
		if instance is None:
			raise NotFoundError(messages.INSTANCE_NOT_FOUND)
		return instance_to_response(instance)

	async def list_instances_for_club(
		self,
		user: AuthenticatedUser,
		club_id: UUID,
		*,
		from_date: datetime,
		to_date: datetime,
		limit: int = _DEFAULT_PAGE_SIZE,
		after: str | None = None,
	) -> dto.InstanceListResponse:
		validators.validate_date_range(from_date, to_date, limits=self.limits)
		policies.require_club(await self.clubs.get_club(club_id))
		member = await self._member(club_id, user)
		limit = max(1, min(limit, _MAX_PAGE_SIZE))
		cursor = repo_module.decode_cursor(after) if after else None
		rows = await self.repo.list_instances_for_club(
			club_id,
			from_date=from_date,
			to_date=to_date,
			limit=limit + 1,
			after=cursor,
			include_members_only=member is not None,
		)
		return _page(rows, limit)

	async def list_my_instances(
		self,
		user: AuthenticatedUser,
		*,
		from_date: datetime,
		to_date: datetime,
		limit: int = _DEFAULT_PAGE_SIZE,
		after: str | None = None,
	) -> dto.InstanceListResponse:
		"""Instances the caller holds a seat or waitlist spot in, across all clubs."""
		validators.validate_date_range(from_date, to_date, limits=self.limits)
		limit = max(1, min(limit, _MAX_PAGE_SIZE))
		rows = await self.repo.list_instances_for_user(
			UUID(user.id),
			from_date=from_date,
			to_date=to_date,
			limit=limit + 1,
			after=repo_module.decode_cursor(after) if after else None,
		)
		return _page(rows, limit)

	async def get_schedule_statuses(
		self, user: AuthenticatedUser, instance_id: UUID
	) -> dto.ScheduleStatusesResponse:
		instance = await self._visible_instance(user, instance_id)
		statuses = await self.transitions.get_statuses(instance)
		return dto.ScheduleStatusesResponse(
			instance_id=instance.id,
			on_event_start=statuses.on_event_start.value if statuses.on_event_start else None,
			on_event_end=statuses.on_event_end.value if statuses.on_event_end else None,
		)

	# --- Mutations ----------------------------------------------------------

	async def delete_instance(self, user: AuthenticatedUser, instance_id: UUID) -> None:
		"""Cancel the instance's pending transition jobs, then delete it."""
		instance = await self._require_instance(instance_id)
		policies.assert_can_manage(await self._member(instance.club_id, user))
		async with self.repo.transaction() as conn:
			locked = await self.repo.get_instance(instance_id, conn=conn, for_update=True)
			if locked is None:
				raise NotFoundError(messages.INSTANCE_NOT_FOUND)
			canceled = await self.transitions.cancel(locked, conn=conn)
			await self.repo.delete_instance(instance_id, conn=conn)
		_LOG.info(
			"scheduling.instance.deleted",
			extra={"instance_id": str(instance_id), "jobs_canceled": len(canceled)},
		)

	async def _participation_context(self, user: AuthenticatedUser, instance_id: UUID) -> models.EventInstance:
		instance = await self._require_instance(instance_id)
		policies.assert_not_banned(await self.clubs.is_banned(instance.club_id, UUID(user.id)))
		policies.assert_can_view(instance.visibility, await self._member(instance.club_id, user))
		return instance

	async def join_timeslot(
		self, user: AuthenticatedUser, instance_id: UUID, timeslot_id: str
	) -> dto.JoinResponse:
		"""Take a seat in the slot, or a waitlist spot once the seats are gone."""
		await self._participation_context(user, instance_id)
		user_id = UUID(user.id)
		async with self.repo.transaction() as conn:
			instance = await self.repo.get_instance(instance_id, conn=conn, for_update=True)
			if instance is None:
				raise NotFoundError(messages.INSTANCE_NOT_FOUND)
			validators.validate_status_for_join_leave(instance)
			slot = instance.find_timeslot(timeslot_id)
			if slot is None:
				raise NotFoundError(messages.TIMESLOT_INVALID_ID)

			existing = await self.repo.get_participant(
				instance_id=instance_id, timeslot_id=timeslot_id, user_id=user_id, conn=conn
			)
			if existing is not None:
				return dto.JoinResponse(
					instance_id=instance_id,
					timeslot_id=timeslot_id,
					user_id=user_id,
					is_waitlisted=existing.is_waitlisted,
					joined_at=existing.joined_at,
					timeslot=_timeslot_response(slot),
				)

			if slot.num_participants < slot.max_participants:
				waitlisted = False
				slots, slot = _replace_slot(instance, timeslot_id, num_participants=slot.num_participants + 1)
			elif slot.num_waitlisted < slot.max_waitlist:
				waitlisted = True
				slots, slot = _replace_slot(instance, timeslot_id, num_waitlisted=slot.num_waitlisted + 1)
			else:
				raise ConflictError(messages.TIMESLOT_FULL)

			participant = await self.repo.add_participant(
				instance=instance,
				timeslot_id=timeslot_id,
				user_id=user_id,
				joined_at=self._clock(),
				is_waitlisted=waitlisted,
				conn=conn,
			)
			await self.repo.update_instance(instance_id, {"timeslots": slots}, conn=conn)

		obs_metrics.inc_timeslot_participation("waitlist" if waitlisted else "join")
		return dto.JoinResponse(
			instance_id=instance_id,
			timeslot_id=timeslot_id,
			user_id=user_id,
			is_waitlisted=participant.is_waitlisted,
			joined_at=participant.joined_at,
			timeslot=_timeslot_response(slot),
		)

	async def leave_timeslot(
		self, user: AuthenticatedUser, instance_id: UUID, timeslot_id: str
	) -> dto.LeaveResponse:
		"""Give up a seat or waitlist spot; a freed seat goes to the earliest waitlisted user."""
		await self._participation_context(user, instance_id)
		user_id = UUID(user.id)
		promoted: models.EventParticipant | None = None
		async with self.repo.transaction() as conn:
			instance = await self.repo.get_instance(instance_id, conn=conn, for_update=True)
			if instance is None:
				raise NotFoundError(messages.INSTANCE_NOT_FOUND)
			validators.validate_status_for_join_leave(instance)
			slot = instance.find_timeslot(timeslot_id)
			if slot is None:
				raise NotFoundError(messages.TIMESLOT_INVALID_ID)
			participant = await self.repo.get_participant(
				instance_id=instance_id, timeslot_id=timeslot_id, user_id=user_id, conn=conn
			)
			if participant is None:
				raise NotFoundError(messages.PARTICIPANT_NOT_FOUND)

			await self.repo.remove_participant(participant.id, conn=conn)
			if participant.is_waitlisted:
				slots, slot = _replace_slot(instance, timeslot_id, num_waitlisted=max(slot.num_waitlisted - 1, 0))
			else:
				promoted = await self.repo.next_waitlisted(instance_id=instance_id, timeslot_id=timeslot_id, conn=conn)
				if promoted is not None:
					await self.repo.promote_participant(promoted.id, conn=conn)
					slots, slot = _replace_slot(instance, timeslot_id, num_waitlisted=max(slot.num_waitlisted - 1, 0))
				else:
					slots, slot = _replace_slot(
						instance, timeslot_id, num_participants=max(slot.num_participants - 1, 0)
					)
			await self.repo.update_instance(instance_id, {"timeslots": slots}, conn=conn)

		obs_metrics.inc_timeslot_participation("leave")
		if promoted is not None:
			obs_metrics.inc_timeslot_participation("promote")
			_LOG.info(
				"scheduling.timeslot.promoted",
				extra={"instance_id": str(instance_id), "timeslot_id": timeslot_id, "user_id": str(promoted.user_id)},
			)
		return dto.LeaveResponse(
			instance_id=instance_id,
			timeslot_id=timeslot_id,
			user_id=user_id,
			promoted_user_id=promoted.user_id if promoted else None,
			timeslot=_timeslot_response(slot),
		)


__all__ = ["InstanceService", "instance_to_response"]
