from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.infra.auth import AuthenticatedUser
from app.scheduling.domain import messages, models
from app.scheduling.domain.exceptions import (
	ConflictError,
	ForbiddenError,
	LifecycleError,
	NotFoundError,
	ValidationError,
)
from app.scheduling.domain.instances_service import InstanceService
from app.scheduling.domain.validators import ValidationLimits


@pytest.fixture()
def service(repo, clubs, jobs, transitions, clock) -> InstanceService:
	return InstanceService(repo, clubs=clubs, jobs=jobs, transitions=transitions, clock=clock, limits=ValidationLimits())


@pytest.fixture()
def club(clubs):
	return clubs.add_club()


async def _instance(factory, transitions, make_series, club, **series_kwargs) -> models.EventInstance:
	series = make_series(club_id=club.id, **series_kwargs)
	instance, _ = await factory.create_for_date(series, datetime(2024, 3, 7, tzinfo=timezone.utc))
	return await transitions.schedule(instance)


def _user() -> AuthenticatedUser:
	return AuthenticatedUser(id=str(uuid4()))


@pytest.mark.asyncio
async def test_join_fills_seats_then_waitlist(service, repo, factory, transitions, make_series, club, clock):
	instance = await _instance(factory, transitions, make_series, club)
	slot_id = instance.timeslots[0].id

	seated = []
	for _ in range(4):
		clock.advance(minutes=1)
		seated.append(await service.join_timeslot(_user(), instance.id, slot_id))
	assert not any(result.is_waitlisted for result in seated)
	assert seated[-1].timeslot.num_participants == 4

	waiting = [await service.join_timeslot(_user(), instance.id, slot_id) for _ in range(2)]
	assert all(result.is_waitlisted for result in waiting)
	assert waiting[-1].timeslot.num_waitlisted == 2

	with pytest.raises(ConflictError) as exc:
		await service.join_timeslot(_user(), instance.id, slot_id)
	assert exc.value.detail == messages.TIMESLOT_FULL

	stored = repo.instances[instance.id].timeslots[0]
	assert (stored.num_participants, stored.num_waitlisted) == (4, 2)
	assert len(await repo.list_participants(instance.id)) == 6


@pytest.mark.asyncio
async def test_joining_twice_returns_existing_place(service, repo, factory, transitions, make_series, club):
	instance = await _instance(factory, transitions, make_series, club)
	user = _user()

	first = await service.join_timeslot(user, instance.id, instance.timeslots[0].id)
	second = await service.join_timeslot(user, instance.id, instance.timeslots[0].id)

	assert second.joined_at == first.joined_at
	assert repo.instances[instance.id].timeslots[0].num_participants == 1


@pytest.mark.asyncio
async def test_leaving_seat_promotes_earliest_waitlisted(service, repo, factory, transitions, make_series, club, clock):
	instance = await _instance(factory, transitions, make_series, club)
	slot_id = instance.timeslots[0].id
	seated = [_user() for _ in range(4)]
	for user in seated:
		await service.join_timeslot(user, instance.id, slot_id)
	clock.advance(minutes=5)
	first_waiting = _user()
	await service.join_timeslot(first_waiting, instance.id, slot_id)
	clock.advance(minutes=5)
	await service.join_timeslot(_user(), instance.id, slot_id)

	result = await service.leave_timeslot(seated[0], instance.id, slot_id)

	assert str(result.promoted_user_id) == first_waiting.id
	assert (result.timeslot.num_participants, result.timeslot.num_waitlisted) == (4, 1)
	promoted = await repo.get_participant(
		instance_id=instance.id, timeslot_id=slot_id, user_id=result.promoted_user_id
	)
	assert promoted.is_waitlisted is False


@pytest.mark.asyncio
async def test_leaving_waitlist_or_empty_slot(service, repo, factory, transitions, make_series, club):
	instance = await _instance(factory, transitions, make_series, club)
	slot_id = instance.timeslots[0].id
	user = _user()
	await service.join_timeslot(user, instance.id, slot_id)

	result = await service.leave_timeslot(user, instance.id, slot_id)

	assert result.promoted_user_id is None
	assert result.timeslot.num_participants == 0
	with pytest.raises(NotFoundError) as exc:
		await service.leave_timeslot(user, instance.id, slot_id)
	assert exc.value.detail == messages.PARTICIPANT_NOT_FOUND


@pytest.mark.asyncio
async def test_join_rejects_unknown_slot_and_started_instance(service, repo, factory, transitions, make_series, club):
	instance = await _instance(factory, transitions, make_series, club)

	with pytest.raises(NotFoundError) as exc:
		await service.join_timeslot(_user(), instance.id, "missing")
	assert exc.value.detail == messages.TIMESLOT_INVALID_ID

	await transitions.apply_transition(instance.id, models.InstanceStatus.IN_PROGRESS)
	with pytest.raises(LifecycleError):
		await service.join_timeslot(_user(), instance.id, instance.timeslots[0].id)


@pytest.mark.asyncio
async def test_banned_and_outside_users_cannot_join(service, clubs, factory, transitions, make_series, club):
	instance = await _instance(
		factory, transitions, make_series, club, visibility=models.Visibility.MEMBERS_ONLY
	)
	slot_id = instance.timeslots[0].id

	with pytest.raises(ForbiddenError):
		await service.join_timeslot(_user(), instance.id, slot_id)

	banned = uuid4()
	clubs.add_member(club.id, banned)
	clubs.bans.add((club.id, banned))
	with pytest.raises(ForbiddenError) as exc:
		await service.join_timeslot(AuthenticatedUser(id=str(banned)), instance.id, slot_id)
	assert exc.value.detail == messages.BANNED_USER

	member = uuid4()
	clubs.add_member(club.id, member)
	joined = await service.join_timeslot(AuthenticatedUser(id=str(member)), instance.id, slot_id)
	assert joined.is_waitlisted is False


@pytest.mark.asyncio
async def test_delete_instance_cancels_its_two_jobs(service, repo, jobs, factory, transitions, make_series, club):
	instance = await _instance(factory, transitions, make_series, club)
	other = await _instance(factory, transitions, make_series, club)
	owner = AuthenticatedUser(id=str(club.owner_id))

	await service.delete_instance(owner, instance.id)

	assert instance.id not in repo.instances
	for job_id in (instance.on_event_start_function_id, instance.on_event_end_function_id):
		assert jobs.jobs[job_id].status is models.JobStatus.CANCELED
	assert {job.id for job in jobs.pending()} == {
		other.on_event_start_function_id,
		other.on_event_end_function_id,
	}


@pytest.mark.asyncio
async def test_only_managers_delete_instances(service, factory, transitions, make_series, club):
	instance = await _instance(factory, transitions, make_series, club)
	with pytest.raises(ForbiddenError):
		await service.delete_instance(_user(), instance.id)


@pytest.mark.asyncio
async def test_club_listing_pages_by_date(service, factory, transitions, make_series, club):
	series = make_series(club_id=club.id)
	start = datetime(2024, 3, 6, tzinfo=timezone.utc)
	for offset in range(5):
		await factory.create_for_date(series, start + timedelta(days=offset))
	owner = AuthenticatedUser(id=str(club.owner_id))

	first = await service.list_instances_for_club(
		owner, club.id, from_date=start, to_date=start + timedelta(days=10), limit=3
	)
	assert len(first.items) == 3
	assert first.next_cursor

	second = await service.list_instances_for_club(
		owner, club.id, from_date=start, to_date=start + timedelta(days=10), limit=3, after=first.next_cursor
	)
	assert [item.date for item in second.items] == [start + timedelta(days=3), start + timedelta(days=4)]
	assert second.next_cursor is None


@pytest.mark.asyncio
async def test_instance_at_local_date(service, factory, make_series, club):
	series = make_series(club_id=club.id, timezone_name="America/New_York")
	occurs_on = datetime(2024, 3, 7, 5, 0, tzinfo=timezone.utc)
	instance, _ = await factory.create_for_date(series, occurs_on)
	service.repo.series[series.id] = series

	found = await service.get_instance_at_date(_user(), series.id, occurs_on.date())

	assert found.id == instance.id


@pytest.mark.asyncio
async def test_my_instances_lists_joined_and_waitlisted_across_clubs(service, clubs, factory, make_series, club):
	other_club = clubs.add_club()
	user = _user()
	start = datetime(2024, 3, 6, tzinfo=timezone.utc)
	single_seat = models.TimeslotTemplate(
		capacity_model=models.CapacityModel.DURATION,
		duration=60,
		fee_type=models.FeeType.SPLIT,
		max_participants=1,
		max_waitlist=1,
	)
	joined = []
	for owning_club in (club, other_club):
		series = make_series(club_id=owning_club.id, timeslots=[single_seat])
		for offset in range(2):
			instance, _ = await factory.create_for_date(series, start + timedelta(days=offset))
			await service.join_timeslot(_user(), instance.id, instance.timeslots[0].id)
			await service.join_timeslot(user, instance.id, instance.timeslots[0].id)
			joined.append(instance.id)
	await factory.create_for_date(series, start + timedelta(days=5))

	first = await service.list_my_instances(user, from_date=start, to_date=start + timedelta(days=10), limit=3)
	second = await service.list_my_instances(
		user, from_date=start, to_date=start + timedelta(days=10), limit=3, after=first.next_cursor
	)

	listed = [item.id for item in first.items + second.items]
	assert sorted(listed, key=str) == sorted(joined, key=str)
	assert second.next_cursor is None

	with pytest.raises(ValidationError):
		await service.list_my_instances(user, from_date=start, to_date=start + timedelta(days=45))
