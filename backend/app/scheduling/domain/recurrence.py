"""Expansion of a recurrence schedule into concrete occurrence dates."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from app.scheduling.domain import messages
from app.scheduling.domain.exceptions import ScheduleValidationError
from app.scheduling.domain.models import Recurrence, RecurrenceSchedule
from app.scheduling.domain.timeutils import ensure_utc, local_date, local_midnight_utc


def _sunday_weekday(day: date) -> int:
	"""Weekday number with 0 = Sunday."""
	return (day.weekday() + 1) % 7


def _week_start(day: date) -> date:
	return day - timedelta(days=_sunday_weekday(day))


def _matches(recurrence: Recurrence, schedule: RecurrenceSchedule, day: date, anchor: date) -> bool:
	interval = schedule.interval
	if recurrence is Recurrence.DAILY:
		return (day - anchor).days % interval == 0
	if recurrence is Recurrence.WEEKLY:
		if _sunday_weekday(day) not in (schedule.day_of_week or ()):
			return False
		weeks = (_week_start(day) - _week_start(anchor)).days // 7
		return weeks % interval == 0
	if recurrence is Recurrence.MONTHLY:
		if day.day != schedule.day_of_month:
			return False
		months = (day.year - anchor.year) * 12 + (day.month - anchor.month)
		return months % interval == 0
	return False


def generate_occurrence_dates(
	recurrence: Recurrence | str,
	schedule: RecurrenceSchedule,
	timezone: str,
	range_start: datetime,
	range_end: datetime,
	*,
	max_generation_days: int,
) -> list[datetime]:
	"""Return the UTC local-midnight instants at which instances should exist.

	Days are walked in ``timezone`` starting from the local day of
	``max(range_start, schedule.start_date)``. A day is kept while its local
	midnight falls strictly before ``min(range_end, range_start +
	max_generation_days)`` and before ``schedule.end_date`` when set.
	"""
	recurrence = Recurrence(recurrence)
	if schedule.interval is None or schedule.interval <= 0:
		raise ScheduleValidationError(messages.INVALID_INTERVAL)

	range_start = ensure_utc(range_start)
	bound = min(ensure_utc(range_end), range_start + timedelta(days=max_generation_days))
	if schedule.end_date is not None:
		bound = min(bound, ensure_utc(schedule.end_date))

	if recurrence is Recurrence.ONE_TIME:
		if schedule.date is None:
			return []
		occurrence = local_midnight_utc(local_date(schedule.date, timezone), timezone)
		first_day = local_midnight_utc(local_date(range_start, timezone), timezone)
		if first_day <= occurrence < bound:
			return [occurrence]
		return []

	if schedule.start_date is None:
		raise ScheduleValidationError(messages.RECURRING_START_END_DATE_REQUIRED)
	if recurrence is Recurrence.WEEKLY and not schedule.day_of_week:
		return []
	if recurrence is Recurrence.MONTHLY and schedule.day_of_month is None:
		return []

	anchor = local_date(schedule.start_date, timezone)
	walk_from = max(range_start, ensure_utc(schedule.start_date))
	day = local_date(walk_from, timezone)
	dates: list[datetime] = []
	while True:
		occurrence = local_midnight_utc(day, timezone)
		if occurrence >= bound:
			break
		if _matches(recurrence, schedule, day, anchor):
			dates.append(occurrence)
		day += timedelta(days=1)
	return dates


__all__ = ["generate_occurrence_dates"]
