"""Series orchestration: create, edit, delete, activate and generate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence
from uuid import UUID, uuid4

from app.domain.clubs.models import Club, ClubMember
from app.domain.clubs.service import ClubDirectory
from app.infra.auth import AuthenticatedUser
from app.obs import metrics as obs_metrics
from app.scheduling.domain import messages, models, policies, repo as repo_module, validators
from app.scheduling.domain.exceptions import NotFoundError
from app.scheduling.domain.lifecycle import SeriesLifecycleController, last_scheduled_day
from app.scheduling.infra import idempotency
from app.scheduling.infra.jobs import JobScheduler, PostgresJobScheduler
from app.scheduling.schemas import dto

_LOG = logging.getLogger(__name__)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def series_to_response(series: models.EventSeries) -> dto.SeriesResponse:
	return dto.SeriesResponse.model_validate(series.model_dump(mode="json"))


def _timeslot_templates(payload: Sequence[dto.TimeslotPayload]) -> list[models.TimeslotTemplate]:
	return [models.TimeslotTemplate.model_validate(slot.model_dump()) for slot in payload]


def _event_details(payload: dto.SeriesCreateRequest | dto.SeriesUpdateRequest) -> dict[str, object]:
	"""Event type, skill range, payment and grace time given on the payload, as domain values."""
	details: dict[str, object] = {}
	if payload.type is not None:
		details["type"] = models.EventType(payload.type)
	if payload.level_range is not None:
		details["level_range"] = models.LevelRange.model_validate(payload.level_range.model_dump())
	if payload.payment_type is not None:
		details["payment_type"] = models.PaymentType(payload.payment_type)
	if "grace_time" in payload.model_fields_set:
		details["grace_time"] = (
			models.GraceTime.model_validate(payload.grace_time.model_dump()) if payload.grace_time else None
		)
	return details


class SeriesService:
	"""Manager-facing operations on event series."""

	def __init__(
		self,
		repository: repo_module.SchedulingRepository | None = None,
		*,
		clubs: ClubDirectory | None = None,
		jobs: JobScheduler | None = None,
		lifecycle: SeriesLifecycleController | None = None,
		clock: Callable[[], datetime] | None = None,
		limits: validators.ValidationLimits | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self.clubs = clubs or ClubDirectory()
		self.jobs = jobs or PostgresJobScheduler()
		self._clock = clock or _utcnow
		self.lifecycle = lifecycle or SeriesLifecycleController(self.repo, self.jobs, clock=self._clock)
		self._limits = limits

	@property
	def limits(self) -> validators.ValidationLimits:
		return self._limits or validators.ValidationLimits.from_settings()

	async def _club_context(self, club_id: UUID, user: AuthenticatedUser) -> tuple[Club, ClubMember | None]:
		club = policies.require_club(await self.clubs.get_club(club_id))
		member = await self.clubs.get_member(club_id, UUID(user.id))
		return club, member

	async def _require_series(self, series_id: UUID) -> models.EventSeries:
		series = await self.repo.get_series(series_id)
		if series is None:
			raise NotFoundError(messages.SERIES_NOT_FOUND)
		return series

	async def _managed_series(
		self, user: AuthenticatedUser, series_id: UUID
	) -> tuple[models.EventSeries, Club]:
		series = await self._require_series(series_id)
		club, member = await self._club_context(series.club_id, user)
		policies.assert_can_manage(member)
		return series, club

	async def _member_ids(self, club_id: UUID) -> list[UUID]:
		return [member.user_id for member in await self.clubs.list_members(club_id)]

	async def create_series(
		self,
		user: AuthenticatedUser,
		club_id: UUID,
		payload: dto.SeriesCreateRequest,
		*,
		idempotency_key: str | None = None,
	) -> dto.SeriesResponse:
		club, member = await self._club_context(club_id, user)
		policies.assert_can_manage(member)
		key = policies.ensure_idempotency_key(idempotency_key)

		location = models.Location.model_validate(payload.location.model_dump())
		schedule = models.RecurrenceSchedule.model_validate(payload.schedule.model_dump())
		timeslots = _timeslot_templates(payload.timeslots)
		details = _event_details(payload)
		validators.validate_series_for_create(
			club=club,
			recurrence=payload.recurrence,
			schedule=schedule,
			location=location,
			timeslots=timeslots,
			visibility=payload.visibility,
			member_ids=await self._member_ids(club_id),
			now=self._clock(),
			level_range=details.get("level_range"),
			grace_time=details.get("grace_time"),
			limits=self.limits,
		)
		body_hash = idempotency.compute_hash(body=payload.model_dump(mode="json"))

		async def _producer() -> dto.SeriesResponse:
			now = self._clock()
			series = models.EventSeries(
				id=uuid4(),
				club_id=club_id,
				name=payload.name,
				description=payload.description,
				location=location,
				recurrence=models.Recurrence(payload.recurrence),
				schedule=schedule,
				timeslots=timeslots,
				visibility=models.Visibility(payload.visibility),
				**details,
				state=models.SeriesState.INACTIVE,
				created_by=UUID(user.id),
				created_at=now,
				updated_at=now,
			)
			stored = await self.repo.insert_series(series)
			obs_metrics.inc_series_created(stored.recurrence.value)
			_LOG.info(
				"scheduling.series.created",
				extra={"series_id": str(stored.id), "club_id": str(club_id), "recurrence": stored.recurrence.value},
			)
			return series_to_response(stored)

		return await idempotency.resolve(
			key=key,
			scope=f"series:{club_id}",
			body_hash=body_hash,
			producer=_producer,
			serializer=lambda response: response.model_dump(mode="json"),
			deserializer=lambda raw: dto.SeriesResponse.model_validate(raw),
		)

	async def list_series(self, user: AuthenticatedUser, club_id: UUID) -> dto.SeriesListResponse:
		_, member = await self._club_context(club_id, user)
		items = [
			series_to_response(series)
			for series in await self.repo.list_series_for_club(club_id)
			if member is not None or series.visibility is models.Visibility.PUBLIC
		]
		return dto.SeriesListResponse(items=items)

	async def get_series(self, user: AuthenticatedUser, series_id: UUID) -> dto.SeriesResponse:
		series = await self._require_series(series_id)
		member = await self.clubs.get_member(series.club_id, UUID(user.id))
		policies.assert_can_view(series.visibility, member)
		return series_to_response(series)

	async def update_series(
		self,
		user: AuthenticatedUser,
		series_id: UUID,
		payload: dto.SeriesUpdateRequest,
	) -> dto.SeriesResponse:
		"""Apply a partial edit. Materialized instances keep their snapshot."""
		series, club = await self._managed_series(user, series_id)
		schedule_patch = payload.schedule.model_dump(exclude_unset=True) if payload.schedule else None
		timeslots = _timeslot_templates(payload.timeslots) if payload.timeslots is not None else None
		location = models.Location.model_validate(payload.location.model_dump()) if payload.location else None
		details = _event_details(payload)
		merged = validators.validate_series_for_update(
			series,
			club=club,
			schedule_patch=schedule_patch,
			timeslots=timeslots,
			visibility=payload.visibility,
			location=location,
			member_ids=await self._member_ids(series.club_id) if timeslots is not None else None,
			now=self._clock(),
			level_range=details.get("level_range"),
			grace_time=details.get("grace_time"),
			limits=self.limits,
		)

		fields: dict[str, object] = dict(details)
		if payload.name is not None:
			fields["name"] = payload.name
		if "description" in payload.model_fields_set:
			fields["description"] = payload.description
		if location is not None:
			fields["location"] = location
		if payload.visibility is not None:
			fields["visibility"] = models.Visibility(payload.visibility)
		if timeslots is not None:
			fields["timeslots"] = timeslots
		if schedule_patch:
			fields["schedule"] = merged

		candidate = series.model_copy(update={"schedule": merged, **({"location": location} if location else {})})
		end_moved = last_scheduled_day(candidate) != last_scheduled_day(series) or (
			location is not None and location.timezone != series.timezone
		)
		async with self.repo.transaction() as conn:
			updated = await self.repo.update_series(series_id, fields, conn=conn) if fields else series
			if updated is None:
				raise NotFoundError(messages.SERIES_NOT_FOUND)
			# An inactive series keeps the end job registered by a failed activation.
			if (
				end_moved
				and updated.on_series_end_function_id is not None
				and updated.state is not models.SeriesState.DEACTIVATED
			):
				await self.lifecycle.reschedule_deactivation(updated, conn=conn)
		if end_moved and updated.state is models.SeriesState.ACTIVE:
			await self.lifecycle.resume_generation(updated)
		if end_moved:
			updated = await self._require_series(series_id)
		_LOG.info("scheduling.series.updated", extra={"series_id": str(series_id), "fields": sorted(fields)})
		return series_to_response(updated)

	async def delete_series(self, user: AuthenticatedUser, series_id: UUID) -> None:
		"""Delete the series and cancel its end-of-series job.

		Instances stay in place with their own transition jobs.
		"""
		series, _ = await self._managed_series(user, series_id)
		async with self.repo.transaction() as conn:
			if series.on_series_end_function_id is not None:
				await self.jobs.cancel(series.on_series_end_function_id, conn=conn)
			await self.repo.delete_series(series_id, conn=conn)
		_LOG.info("scheduling.series.deleted", extra={"series_id": str(series_id)})

	async def activate_series(self, user: AuthenticatedUser, series_id: UUID) -> dto.ActivationResponse:
		await self._managed_series(user, series_id)
		result = await self.lifecycle.activate(series_id)
		series = await self._require_series(series_id)
		return dto.ActivationResponse(
			series_id=series_id,
			state=series.state.value,
			dates=result.dates,
			generated=len(result.created),
			skipped=result.skipped,
		)

	async def generate_instances(
		self,
		user: AuthenticatedUser,
		series_id: UUID,
		payload: dto.GenerateRequest,
	) -> dto.GenerationResponse:
		await self._managed_series(user, series_id)
		validators.validate_date_range(payload.range_start, payload.range_end, limits=self.limits)
		result = await self.lifecycle.generate(series_id, payload.range_start, payload.range_end)
		return dto.GenerationResponse(
			series_id=series_id,
			dates=result.dates,
			generated=len(result.created),
			skipped=result.skipped,
		)

	async def get_series_deactivation_status(
		self, user: AuthenticatedUser, series_id: UUID
	) -> dto.DeactivationStatusResponse:
		series = await self._require_series(series_id)
		member = await self.clubs.get_member(series.club_id, UUID(user.id))
		policies.assert_can_view(series.visibility, member)
		job_status = None
		if series.on_series_end_function_id is not None:
			job_status = await self.jobs.get_status(series.on_series_end_function_id)
		return dto.DeactivationStatusResponse(
			series_id=series.id,
			state=series.state.value,
			job_id=series.on_series_end_function_id,
			job_status=job_status.value if job_status else None,
		)


__all__ = ["SeriesService", "series_to_response"]
