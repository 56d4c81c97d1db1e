from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.scheduling.domain.exceptions import ScheduleValidationError
from app.scheduling.domain.models import Recurrence, RecurrenceSchedule
from app.scheduling.domain.recurrence import generate_occurrence_dates


def _utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
	return datetime(year, month, day, hour, tzinfo=timezone.utc)


def _schedule(**overrides) -> RecurrenceSchedule:
	fields = {
		"start_time": "18:00",
		"end_time": "20:00",
		"start_date": _utc(2024, 1, 1),
		"end_date": _utc(2024, 1, 31),
	}
	fields.update(overrides)
	return RecurrenceSchedule(**fields)


def test_weekly_monday_wednesday_friday_in_january():
	schedule = _schedule(day_of_week=[1, 3, 5])
	dates = generate_occurrence_dates(
		Recurrence.WEEKLY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 1, 31), max_generation_days=31
	)
	assert [d.day for d in dates] == [1, 3, 5, 8, 10, 12, 15, 17, 19, 22, 24, 26, 29]
	assert all(d < schedule.end_date for d in dates)


def test_generation_horizon_caps_the_batch():
	schedule = _schedule(day_of_week=[1, 3, 5])
	dates = generate_occurrence_dates(
		Recurrence.WEEKLY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 1, 31), max_generation_days=14
	)
	assert [d.day for d in dates] == [1, 3, 5, 8, 10, 12]
	assert max(dates) < _utc(2024, 1, 1) + timedelta(days=14)


@pytest.mark.parametrize("interval", [1, 2, 3])
def test_weekly_interval_spacing(interval):
	schedule = _schedule(day_of_week=[2], interval=interval, end_date=_utc(2024, 6, 1))
	dates = generate_occurrence_dates(
		Recurrence.WEEKLY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 6, 1), max_generation_days=150
	)
	assert len(dates) > 2
	gaps = {(later - earlier).days for earlier, later in zip(dates, dates[1:])}
	assert gaps == {7 * interval}


def test_empty_day_of_week_yields_nothing():
	schedule = _schedule(day_of_week=[])
	assert (
		generate_occurrence_dates(
			Recurrence.WEEKLY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 1, 31), max_generation_days=31
		)
		== []
	)


def test_daily_interval_counts_from_start_date():
	schedule = _schedule(interval=3)
	dates = generate_occurrence_dates(
		Recurrence.DAILY, schedule, "UTC", _utc(2024, 1, 2), _utc(2024, 1, 31), max_generation_days=14
	)
	assert [d.day for d in dates] == [4, 7, 10, 13]


def test_monthly_skips_months_without_the_day():
	schedule = _schedule(day_of_month=31, end_date=_utc(2024, 6, 30))
	dates = generate_occurrence_dates(
		Recurrence.MONTHLY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 6, 30), max_generation_days=200
	)
	assert dates == [_utc(2024, 1, 31), _utc(2024, 3, 31), _utc(2024, 5, 31)]


def test_range_start_before_series_start_uses_series_start():
	schedule = _schedule(start_date=_utc(2024, 1, 10))
	dates = generate_occurrence_dates(
		Recurrence.DAILY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 1, 31), max_generation_days=14
	)
	assert dates[0] == _utc(2024, 1, 10)
	assert dates[-1] == _utc(2024, 1, 14)


def test_weekly_dates_are_local_midnights_across_dst():
	schedule = _schedule(
		day_of_week=[1],
		start_date=_utc(2024, 3, 4, 5),
		end_date=_utc(2024, 3, 20, 4),
	)
	dates = generate_occurrence_dates(
		Recurrence.WEEKLY,
		schedule,
		"America/New_York",
		_utc(2024, 3, 4, 5),
		_utc(2024, 3, 20, 4),
		max_generation_days=30,
	)
	assert dates == [_utc(2024, 3, 4, 5), _utc(2024, 3, 11, 4), _utc(2024, 3, 18, 4)]


def test_one_time_inside_and_outside_window():
	schedule = RecurrenceSchedule(start_time="10:00", end_time="11:00", date=_utc(2024, 2, 10, 15))
	inside = generate_occurrence_dates(
		Recurrence.ONE_TIME, schedule, "UTC", _utc(2024, 2, 1), _utc(2024, 2, 28), max_generation_days=14
	)
	outside = generate_occurrence_dates(
		Recurrence.ONE_TIME, schedule, "UTC", _utc(2024, 2, 1), _utc(2024, 2, 28), max_generation_days=5
	)
	assert inside == [_utc(2024, 2, 10)]
	assert outside == []


def test_non_positive_interval_is_rejected():
	schedule = _schedule(interval=0)
	with pytest.raises(ScheduleValidationError):
		generate_occurrence_dates(
			Recurrence.DAILY, schedule, "UTC", _utc(2024, 1, 1), _utc(2024, 1, 31), max_generation_days=14
		)
