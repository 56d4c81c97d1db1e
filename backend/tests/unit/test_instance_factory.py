from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.scheduling.domain import models

OCCURS_ON = datetime(2024, 3, 7, tzinfo=timezone.utc)


def _slot(**overrides) -> models.TimeslotTemplate:
	fields = {
		"capacity_model": models.CapacityModel.DURATION,
		"duration": 60,
		"fee_type": models.FeeType.SPLIT,
		"max_participants": 4,
	}
	fields.update(overrides)
	return models.TimeslotTemplate(**fields)


def test_build_snapshots_template(factory, make_series):
	series = make_series(timeslots=[_slot(name="A"), _slot(name="B")])
	instance = factory.build(series, OCCURS_ON)

	assert instance.series_id == series.id
	assert instance.club_id == series.club_id
	assert instance.date == OCCURS_ON
	assert instance.status is models.InstanceStatus.NOT_STARTED
	assert (instance.start_time, instance.end_time) == (series.schedule.start_time, series.schedule.end_time)
	assert [slot.name for slot in instance.timeslots] == ["A", "B"]
	assert len({slot.id for slot in instance.timeslots}) == 2
	assert instance.on_event_start_function_id is None


def test_build_copies_event_details(factory, make_series):
	series = make_series(
		timeslots=[_slot(discounts=[models.Discount(type=models.DiscountType.GENDER, value=10)])]
	).model_copy(
		update={
			"type": models.EventType.TRAINING,
			"level_range": models.LevelRange(min=1, max=3),
			"grace_time": models.GraceTime(hours=12, penalty_type=models.PenaltyType.DEFAULT_FEE),
		}
	)

	instance = factory.build(series, OCCURS_ON)

	assert instance.type is models.EventType.TRAINING
	assert instance.payment_type is models.PaymentType.CASH
	assert instance.level_range == series.level_range
	assert instance.level_range is not series.level_range
	assert instance.grace_time == series.grace_time
	assert instance.timeslots[0].discounts == series.timeslots[0].discounts


def test_permanent_participants_seed_counters(factory, make_series):
	regulars = [uuid4(), uuid4()]
	series = make_series(timeslots=[_slot(permanent_participants=regulars)])
	slot = factory.build(series, OCCURS_ON).timeslots[0]
	assert slot.num_participants == 2
	assert slot.num_waitlisted == 0


@pytest.mark.asyncio
async def test_create_enrolls_permanent_participants(factory, repo, make_series):
	regulars = [uuid4(), uuid4()]
	series = make_series(timeslots=[_slot(permanent_participants=regulars)])

	instance, created = await factory.create_for_date(series, OCCURS_ON)

	assert created is True
	participants = await repo.list_participants(instance.id)
	assert {p.user_id for p in participants} == set(regulars)
	assert all(not p.is_waitlisted and p.timeslot_id == instance.timeslots[0].id for p in participants)


@pytest.mark.asyncio
async def test_second_create_for_same_date_returns_existing(factory, repo, make_series):
	series = make_series(timeslots=[_slot(permanent_participants=[uuid4()])])

	first, created_first = await factory.create_for_date(series, OCCURS_ON)
	second, created_second = await factory.create_for_date(series, OCCURS_ON)

	assert created_first is True
	assert created_second is False
	assert second.id == first.id
	assert len(repo.instances) == 1
	assert len(repo.participants) == 1
