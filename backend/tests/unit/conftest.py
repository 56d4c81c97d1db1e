"""In-memory collaborators shared by the scheduling unit tests."""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID, uuid4

import pytest

from app.domain.clubs.models import Club, ClubMember
from app.scheduling.domain import models
from app.scheduling.domain.exceptions import JobSchedulingError
from app.scheduling.domain.factory import InstanceFactory
from app.scheduling.domain.lifecycle import SeriesLifecycleController
from app.scheduling.domain.transitions import StatusTransitionScheduler

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
	def __init__(self, now: datetime = FIXED_NOW) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **kwargs: float) -> datetime:
		self.now = self.now + timedelta(**kwargs)
		return self.now


class FakeJobScheduler:
	def __init__(self) -> None:
		self.jobs: dict[UUID, models.ScheduledJob] = {}
		self.fail_after: int | None = None
		self._calls = 0

	async def schedule_at(self, run_at: datetime, handler: str, payload: dict[str, Any], *, conn=None) -> UUID:
		self._calls += 1
		if self.fail_after is not None and self._calls > self.fail_after:
			raise JobSchedulingError()
		job = models.ScheduledJob(id=uuid4(), run_at=run_at, handler=handler, payload=dict(payload))
		self.jobs[job.id] = job
		return job.id

	async def cancel(self, job_id: UUID, *, conn=None) -> bool:
		job = self.jobs.get(job_id)
		if job is None or job.status is not models.JobStatus.PENDING:
			return False
		self.jobs[job_id] = job.model_copy(update={"status": models.JobStatus.CANCELED})
		return True

	async def get_status(self, job_id: UUID, *, conn=None):
		job = self.jobs.get(job_id)
		return job.status if job else None

	async def fetch_due(self, *, now: datetime, limit: int):
		due = [
			job
			for job in self.jobs.values()
			if job.status is models.JobStatus.PENDING and job.run_at <= now
		]
		return sorted(due, key=lambda job: (job.run_at, str(job.id)))[:limit]

	async def mark_executed(self, job_id: UUID) -> bool:
		job = self.jobs.get(job_id)
		if job is None or job.status is not models.JobStatus.PENDING:
			return False
		self.jobs[job_id] = job.model_copy(
			update={"status": models.JobStatus.EXECUTED, "attempts": job.attempts + 1}
		)
		return True

	async def record_failure(self, job_id: UUID, *, error: str, retry_at: datetime) -> None:
		job = self.jobs[job_id]
		if job.status is models.JobStatus.PENDING:
			self.jobs[job_id] = job.model_copy(
				update={"attempts": job.attempts + 1, "last_error": error, "run_at": retry_at}
			)

	def pending(self, handler: str | None = None) -> list[models.ScheduledJob]:
		return sorted(
			(
				job
				for job in self.jobs.values()
				if job.status is models.JobStatus.PENDING and (handler is None or job.handler == handler)
			),
			key=lambda job: job.run_at,
		)


class FakeRepository:
	"""Dictionary-backed stand-in for SchedulingRepository.

	``transaction()`` snapshots state and restores it when the block raises.
	"""

	def __init__(self) -> None:
		self.series: dict[UUID, models.EventSeries] = {}
		self.instances: dict[UUID, models.EventInstance] = {}
		self.participants: dict[UUID, models.EventParticipant] = {}

	@asynccontextmanager
	async def transaction(self):
		snapshot = copy.deepcopy((self.series, self.instances, self.participants))
		try:
			yield None
		except BaseException:
			self.series, self.instances, self.participants = snapshot
			raise

	# series

	async def insert_series(self, series, *, conn=None):
		self.series[series.id] = series
		return series

	async def get_series(self, series_id, *, conn=None, for_update=False):
		return self.series.get(series_id)

	async def list_series_for_club(self, club_id):
		return [series for series in self.series.values() if series.club_id == club_id]

	async def update_series(self, series_id, fields, *, conn=None):
		current = self.series.get(series_id)
		if current is None:
			return None
		updated = current.model_copy(update={**fields, "updated_at": current.updated_at})
		self.series[series_id] = updated
		return updated

	async def delete_series(self, series_id, *, conn=None):
		if self.series.pop(series_id, None) is None:
			return False
		for instance_id, instance in list(self.instances.items()):
			if instance.series_id == series_id:
				self.instances[instance_id] = instance.model_copy(update={"series_id": None})
		return True

	# instances

	async def insert_instance_if_absent(self, instance, *, conn=None):
		for existing in self.instances.values():
			if existing.series_id == instance.series_id and existing.date == instance.date:
				return None
		self.instances[instance.id] = instance
		return instance

	async def get_instance(self, instance_id, *, conn=None, for_update=False):
		return self.instances.get(instance_id)

	async def get_instance_at_date(self, series_id, occurs_on, *, conn=None):
		for instance in self.instances.values():
			if instance.series_id == series_id and instance.date == occurs_on:
				return instance
		return None

	async def list_instances_for_club(
		self, club_id, *, from_date, to_date, limit, after=None, include_members_only=True
	):
		rows = sorted(
			(
				instance
				for instance in self.instances.values()
				if instance.club_id == club_id
				and from_date <= instance.date <= to_date
				and (include_members_only or instance.visibility is models.Visibility.PUBLIC)
			),
			key=lambda instance: (instance.date, str(instance.id)),
		)
		if after is not None:
			rows = [row for row in rows if (row.date, str(row.id)) > (after[0], str(after[1]))]
		return rows[:limit]

	async def update_instance(self, instance_id, fields, *, conn=None):
		current = self.instances.get(instance_id)
		if current is None:
			return None
		updated = current.model_copy(update=dict(fields))
		self.instances[instance_id] = updated
		return updated

	async def delete_instance(self, instance_id, *, conn=None):
		if self.instances.pop(instance_id, None) is None:
			return False
		for participant_id, participant in list(self.participants.items()):
			if participant.instance_id == instance_id:
				del self.participants[participant_id]
		return True

	async def latest_instance_date(self, series_id, *, conn=None):
		dates = [instance.date for instance in self.instances.values() if instance.series_id == series_id]
		return max(dates) if dates else None

	async def list_instances_for_user(self, user_id, *, from_date, to_date, limit, after=None):
		joined = {participant.instance_id for participant in self.participants.values() if participant.user_id == user_id}
		rows = sorted(
			(
				instance
				for instance in self.instances.values()
				if instance.id in joined and from_date <= instance.date <= to_date
			),
			key=lambda instance: (instance.date, str(instance.id)),
		)
		if after is not None:
			rows = [row for row in rows if (row.date, str(row.id)) > (after[0], str(after[1]))]
		return rows[:limit]

	# participants

	async def insert_participants(self, instance, entries, *, conn=None):
		count = 0
		for timeslot_id, user_id in entries:
			participant = models.EventParticipant(
				id=uuid4(),
				instance_id=instance.id,
				timeslot_id=timeslot_id,
				user_id=user_id,
				joined_at=instance.date,
				is_waitlisted=False,
				date=instance.date,
			)
			self.participants[participant.id] = participant
			count += 1
		return count

	async def add_participant(self, *, instance, timeslot_id, user_id, joined_at, is_waitlisted, conn=None):
		participant = models.EventParticipant(
			id=uuid4(),
			instance_id=instance.id,
			timeslot_id=timeslot_id,
			user_id=user_id,
			joined_at=joined_at,
			is_waitlisted=is_waitlisted,
			date=instance.date,
		)
		self.participants[participant.id] = participant
		return participant

	async def get_participant(self, *, instance_id, timeslot_id, user_id, conn=None):
		for participant in self.participants.values():
			if (participant.instance_id, participant.timeslot_id, participant.user_id) == (
				instance_id,
				timeslot_id,
				user_id,
			):
				return participant
		return None

	async def remove_participant(self, participant_id, *, conn=None):
		self.participants.pop(participant_id, None)

	async def next_waitlisted(self, *, instance_id, timeslot_id, conn=None):
		waiting = [
			participant
			for participant in self.participants.values()
			if participant.instance_id == instance_id
			and participant.timeslot_id == timeslot_id
			and participant.is_waitlisted
		]
		waiting.sort(key=lambda participant: (participant.joined_at, str(participant.id)))
		return waiting[0] if waiting else None

	async def promote_participant(self, participant_id, *, conn=None):
		participant = self.participants[participant_id]
		self.participants[participant_id] = participant.model_copy(update={"is_waitlisted": False})

	async def list_participants(self, instance_id, *, conn=None):
		return sorted(
			(participant for participant in self.participants.values() if participant.instance_id == instance_id),
			key=lambda participant: (participant.joined_at, str(participant.id)),
		)


class FakeClubDirectory:
	def __init__(self) -> None:
		self.clubs: dict[UUID, Club] = {}
		self.members: dict[tuple[UUID, UUID], ClubMember] = {}
		self.bans: set[tuple[UUID, UUID]] = set()

	def add_club(self, *, is_public: bool = True) -> Club:
		club = Club(id=uuid4(), name="Court Club", owner_id=uuid4(), is_public=is_public)
		self.clubs[club.id] = club
		self.add_member(club.id, club.owner_id, role="owner")
		return club

	def add_member(self, club_id: UUID, user_id: UUID, *, role: str = "member") -> ClubMember:
		member = ClubMember(club_id=club_id, user_id=user_id, role=role)
		self.members[(club_id, user_id)] = member
		return member

	async def get_club(self, club_id):
		return self.clubs.get(club_id)

	async def get_member(self, club_id, user_id):
		return self.members.get((club_id, user_id))

	async def list_members(self, club_id):
		return [member for (member_club, _), member in self.members.items() if member_club == club_id]

	async def is_banned(self, club_id, user_id):
		return (club_id, user_id) in self.bans


def build_series(
	*,
	club_id: UUID | None = None,
	recurrence: models.Recurrence = models.Recurrence.DAILY,
	timezone_name: str = "UTC",
	start_date: datetime | None = None,
	end_date: datetime | None = None,
	day_of_week: list[int] | None = None,
	timeslots: list[models.TimeslotTemplate] | None = None,
	visibility: models.Visibility = models.Visibility.PUBLIC,
	start_time: str = "18:00",
	end_time: str = "20:00",
	**schedule_extra: Any,
) -> models.EventSeries:
	start_date = start_date or datetime(2024, 3, 6, tzinfo=timezone.utc)
	end_date = end_date or start_date + timedelta(days=28)
	schedule = models.RecurrenceSchedule(
		start_time=start_time,
		end_time=end_time,
		start_date=start_date,
		end_date=end_date,
		day_of_week=day_of_week,
		**schedule_extra,
	)
	if recurrence is models.Recurrence.ONE_TIME:
		schedule = models.RecurrenceSchedule(
			start_time=start_time, end_time=end_time, date=schedule_extra.get("date", start_date)
		)
	return models.EventSeries(
		id=uuid4(),
		club_id=club_id or uuid4(),
		name="Thursday doubles",
		description=None,
		location=models.Location(name="Court 1", timezone=timezone_name),
		recurrence=recurrence,
		schedule=schedule,
		timeslots=timeslots
		or [
			models.TimeslotTemplate(
				name="Open play",
				capacity_model=models.CapacityModel.DURATION,
				duration=60,
				fee_type=models.FeeType.SPLIT,
				max_participants=4,
				max_waitlist=2,
			)
		],
		visibility=visibility,
		created_by=uuid4(),
		created_at=FIXED_NOW,
		updated_at=FIXED_NOW,
	)


@pytest.fixture()
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture()
def jobs() -> FakeJobScheduler:
	return FakeJobScheduler()


@pytest.fixture()
def repo() -> FakeRepository:
	return FakeRepository()


@pytest.fixture()
def clubs() -> FakeClubDirectory:
	return FakeClubDirectory()


@pytest.fixture()
def make_series() -> Callable[..., models.EventSeries]:
	return build_series


@pytest.fixture()
def factory(repo, clock) -> InstanceFactory:
	return InstanceFactory(repo, clock=clock)


@pytest.fixture()
def transitions(repo, jobs) -> StatusTransitionScheduler:
	return StatusTransitionScheduler(repo, jobs)


@pytest.fixture()
def lifecycle(repo, jobs, clock, factory, transitions) -> SeriesLifecycleController:
	return SeriesLifecycleController(
		repo,
		jobs,
		factory=factory,
		transitions=transitions,
		clock=clock,
		max_generation_days=14,
	)
