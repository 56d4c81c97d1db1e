"""Validation rules for series schedules, timeslots and instance participation.

Every validator raises on the first violated rule instead of collecting a
report, and runs before anything is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from app.domain.clubs.models import Club
from app.scheduling.domain import messages
from app.scheduling.domain.exceptions import (
	CapacityValidationError,
	LifecycleError,
	ScheduleValidationError,
	ValidationError,
	VisibilityError,
)
from app.scheduling.domain.models import (
	CapacityModel,
	EventInstance,
	EventSeries,
	FeeType,
	GraceTime,
	InstanceStatus,
	LevelRange,
	Location,
	Recurrence,
	RecurrenceSchedule,
	TimeslotTemplate,
	Visibility,
)
from app.scheduling.domain.timeutils import (
	days_between,
	ensure_utc,
	get_time_duration_in_minutes,
	is_valid_time,
	is_valid_timezone,
	months_between,
	parse_time,
)
from app.settings import settings

_RECURRENCE_LABELS = {
	Recurrence.ONE_TIME: "one-time",
	Recurrence.DAILY: "daily",
	Recurrence.WEEKLY: "weekly",
	Recurrence.MONTHLY: "monthly",
}

SKILL_LEVEL_BOUNDS = (0, 5)
GRACE_TIME_HOURS_BOUNDS = (1, 168)

_SUPERFLUOUS_FIELDS = {
	Recurrence.ONE_TIME: ("start_date", "end_date", "day_of_week", "day_of_month"),
	Recurrence.DAILY: ("date", "day_of_week", "day_of_month"),
	Recurrence.WEEKLY: ("date", "day_of_month"),
	Recurrence.MONTHLY: ("date", "day_of_week"),
}


@dataclass(slots=True, frozen=True)
class ValidationLimits:
	"""Tunable ceilings applied by the validators."""

	max_start_date_days: int = 30
	max_series_months: int = 6
	max_participants: int = 100
	max_list_range_days: int = 30
	max_discounts: int = 10
	allow_one_time: bool = False

	@classmethod
	def from_settings(cls) -> "ValidationLimits":
		return cls(
			max_start_date_days=settings.scheduling_max_start_date_days,
			max_series_months=settings.scheduling_max_series_months,
			max_participants=settings.scheduling_max_participants,
			max_list_range_days=settings.scheduling_max_list_range_days,
			allow_one_time=settings.scheduling_allow_one_time_series,
		)


def validate_visibility(club: Club, visibility: Visibility | str) -> None:
	if not club.is_public and Visibility(visibility) is Visibility.PUBLIC:
		raise VisibilityError(messages.VISIBILITY_CANNOT_BE_PUBLIC)


def validate_location(location: Location) -> None:
	if not is_valid_timezone(location.timezone):
		raise ScheduleValidationError(messages.INVALID_TIMEZONE)


def validate_level_range(level_range: LevelRange) -> None:
	low, high = SKILL_LEVEL_BOUNDS
	if not (low <= level_range.min <= high and low <= level_range.max <= high):
		raise ValidationError(messages.LEVEL_RANGE_INVALID)
	if level_range.min > level_range.max:
		raise ValidationError(messages.LEVEL_RANGE_REVERSED)


def validate_grace_time(grace_time: GraceTime | None) -> None:
	if grace_time is None:
		return
	min_hours, max_hours = GRACE_TIME_HOURS_BOUNDS
	if not min_hours <= grace_time.hours <= max_hours:
		raise ValidationError(
			messages.GRACE_TIME_HOURS_INVALID_TEMPLATE.format(min_hours=min_hours, max_hours=max_hours)
		)
	if grace_time.penalty_amount < 0:
		raise ValidationError(messages.GRACE_TIME_PENALTY_NEGATIVE)


def validate_time_window(start_time: str | None, end_time: str | None) -> None:
	if not is_valid_time(start_time) or not is_valid_time(end_time):
		raise ScheduleValidationError(messages.INVALID_TIME_FORMAT)
	if parse_time(start_time) >= parse_time(end_time):
		raise ScheduleValidationError(messages.END_TIME_AFTER_START)


def _reject_superfluous(recurrence: Recurrence, schedule: RecurrenceSchedule) -> None:
	for field_name in _SUPERFLUOUS_FIELDS[recurrence]:
		if getattr(schedule, field_name) is not None:
			raise ScheduleValidationError(
				messages.PARAMETER_NOT_ALLOWED_TEMPLATE.format(
					parameter=field_name,
					recurrence=_RECURRENCE_LABELS[recurrence],
				)
			)


def _validate_start_window(start: datetime, now: datetime, limits: ValidationLimits, *, future_message: str) -> None:
	if ensure_utc(start) <= ensure_utc(now):
		raise ScheduleValidationError(future_message)
	if days_between(now, start) >= limits.max_start_date_days:
		raise ScheduleValidationError(
			messages.DATE_TOO_FAR_IN_FUTURE_TEMPLATE.format(days=limits.max_start_date_days)
		)


def _validate_recurring_dates(
	schedule: RecurrenceSchedule,
	*,
	now: datetime,
	limits: ValidationLimits,
	check_start: bool,
) -> None:
	if schedule.start_date is None or schedule.end_date is None:
		raise ScheduleValidationError(messages.RECURRING_START_END_DATE_REQUIRED)
	if check_start and ensure_utc(schedule.start_date) <= ensure_utc(now):
		raise ScheduleValidationError(messages.START_DATE_FUTURE)
	if ensure_utc(schedule.end_date) <= ensure_utc(schedule.start_date):
		raise ScheduleValidationError(messages.END_DATE_AFTER_START)
	if check_start and days_between(now, schedule.start_date) >= limits.max_start_date_days:
		raise ScheduleValidationError(
			messages.DATE_TOO_FAR_IN_FUTURE_TEMPLATE.format(days=limits.max_start_date_days)
		)
	if months_between(schedule.start_date, schedule.end_date) >= limits.max_series_months:
		raise ScheduleValidationError(
			messages.SERIES_DURATION_EXCEEDED_TEMPLATE.format(months=limits.max_series_months)
		)


def validate_schedule(
	recurrence: Recurrence | str,
	schedule: RecurrenceSchedule,
	*,
	now: datetime,
	limits: ValidationLimits | None = None,
	check_start: bool = True,
) -> None:
	"""Validate the schedule shape for ``recurrence``.

	``check_start`` is disabled on updates that leave the start date untouched,
	so an already running series can still be edited.
	"""
	limits = limits or ValidationLimits.from_settings()
	try:
		recurrence = Recurrence(recurrence)
	except ValueError as exc:
		raise ScheduleValidationError(messages.INVALID_RECURRENCE) from exc

	validate_time_window(schedule.start_time, schedule.end_time)
	if schedule.interval is None or schedule.interval <= 0:
		raise ScheduleValidationError(messages.INVALID_INTERVAL)

	if recurrence is Recurrence.ONE_TIME:
		if not limits.allow_one_time:
			raise ScheduleValidationError(messages.ONE_TIME_NOT_SUPPORTED)
		if schedule.date is None:
			raise ScheduleValidationError(messages.DATE_REQUIRED_ONE_TIME)
		if check_start:
			_validate_start_window(schedule.date, now, limits, future_message=messages.DATE_FUTURE)
	elif recurrence is Recurrence.DAILY:
		_validate_recurring_dates(schedule, now=now, limits=limits, check_start=check_start)
	elif recurrence is Recurrence.WEEKLY:
		if not schedule.day_of_week:
			raise ScheduleValidationError(messages.DAY_OF_WEEK_REQUIRED)
		if any(day < 0 or day > 6 for day in schedule.day_of_week):
			raise ScheduleValidationError(messages.DAY_OF_WEEK_INVALID)
		_validate_recurring_dates(schedule, now=now, limits=limits, check_start=check_start)
	elif recurrence is Recurrence.MONTHLY:
		if schedule.day_of_month is None:
			raise ScheduleValidationError(messages.DAY_OF_MONTH_REQUIRED)
		if not 1 <= schedule.day_of_month <= 31:
			raise ScheduleValidationError(messages.DAY_OF_MONTH_INVALID)
		_validate_recurring_dates(schedule, now=now, limits=limits, check_start=check_start)
	_reject_superfluous(recurrence, schedule)


def validate_timeslot_window(slot: TimeslotTemplate, start_time: str, end_time: str) -> None:
	"""Check a slot's duration or start/end window against the enclosing schedule."""
	if slot.capacity_model is CapacityModel.DURATION:
		if not slot.duration:
			raise CapacityValidationError(messages.TIMESLOT_DURATION_REQUIRED)
		if slot.duration > get_time_duration_in_minutes(start_time, end_time):
			raise CapacityValidationError(messages.TIMESLOT_DURATION_NOT_MATCH_SCHEDULE)
		return
	if not slot.start_time or not slot.end_time:
		raise CapacityValidationError(messages.TIMESLOT_START_END_REQUIRED)
	if not is_valid_time(slot.start_time) or not is_valid_time(slot.end_time):
		raise CapacityValidationError(messages.INVALID_TIME_FORMAT)
	if parse_time(slot.start_time) < parse_time(start_time) or parse_time(slot.end_time) > parse_time(end_time):
		raise CapacityValidationError(messages.TIMESLOT_TIME_RANGE_NOT_MATCH_SCHEDULE)
	if parse_time(slot.start_time) >= parse_time(slot.end_time):
		raise CapacityValidationError(messages.END_TIME_AFTER_START)


def validate_timeslots(
	start_time: str,
	end_time: str,
	timeslots: Sequence[TimeslotTemplate],
	member_ids: Iterable[UUID],
	*,
	limits: ValidationLimits | None = None,
) -> None:
	limits = limits or ValidationLimits.from_settings()
	if not timeslots:
		raise CapacityValidationError(messages.TIMESLOT_AT_LEAST_ONE_REQUIRED)
	members = {str(member_id) for member_id in member_ids}

	for slot in timeslots:
		if slot.max_participants <= 0:
			raise CapacityValidationError(messages.TIMESLOT_INVALID_MAX_PARTICIPANTS)
		if slot.fee_type is FeeType.FIXED and not slot.fee:
			raise CapacityValidationError(messages.TIMESLOT_FEE_REQUIRED_FOR_FIXED)
		validate_timeslot_window(slot, start_time, end_time)
		if len(slot.discounts) > limits.max_discounts:
			raise CapacityValidationError(
				messages.TIMESLOT_DISCOUNTS_EXCEEDED_TEMPLATE.format(limit=limits.max_discounts)
			)
		if any(not 0 <= discount.value <= 100 for discount in slot.discounts):
			raise CapacityValidationError(messages.TIMESLOT_DISCOUNT_VALUE_INVALID)
		permanent = [str(user_id) for user_id in slot.permanent_participants]
		if len(permanent) > slot.max_participants:
			raise CapacityValidationError(messages.TIMESLOT_PERMANENT_PARTICIPANTS_EXCEEDED_MAX)
		if len(set(permanent)) != len(permanent):
			raise CapacityValidationError(messages.TIMESLOT_PERMANENT_PARTICIPANTS_NOT_UNIQUE)
		if not set(permanent) <= members:
			raise CapacityValidationError(messages.TIMESLOT_PERMANENT_PARTICIPANT_NOT_CLUB_MEMBER)

	if sum(slot.max_participants for slot in timeslots) > limits.max_participants:
		raise CapacityValidationError(
			messages.TIMESLOT_MAX_PARTICIPANTS_EXCEEDED_TEMPLATE.format(limit=limits.max_participants)
		)


def validate_series_for_create(
	*,
	club: Club,
	recurrence: Recurrence | str,
	schedule: RecurrenceSchedule,
	location: Location,
	timeslots: Sequence[TimeslotTemplate],
	visibility: Visibility | str,
	member_ids: Iterable[UUID],
	now: datetime,
	level_range: LevelRange | None = None,
	grace_time: GraceTime | None = None,
	limits: ValidationLimits | None = None,
) -> None:
	limits = limits or ValidationLimits.from_settings()
	validate_visibility(club, visibility)
	validate_location(location)
	validate_level_range(level_range or LevelRange())
	validate_grace_time(grace_time)
	validate_schedule(recurrence, schedule, now=now, limits=limits)
	validate_timeslots(schedule.start_time, schedule.end_time, timeslots, member_ids, limits=limits)


def merge_schedule(existing: RecurrenceSchedule, patch: Mapping[str, Any] | None) -> RecurrenceSchedule:
	if not patch:
		return existing
	return RecurrenceSchedule.model_validate({**existing.model_dump(), **patch})


def validate_series_for_update(
	existing: EventSeries,
	*,
	club: Club,
	schedule_patch: Mapping[str, Any] | None = None,
	timeslots: Sequence[TimeslotTemplate] | None = None,
	visibility: Visibility | str | None = None,
	location: Location | None = None,
	member_ids: Iterable[UUID] | None = None,
	now: datetime,
	level_range: LevelRange | None = None,
	grace_time: GraceTime | None = None,
	limits: ValidationLimits | None = None,
) -> RecurrenceSchedule:
	"""Validate only what the update touches; return the merged schedule.

	The time window is always re-checked against the merged schedule, and so
	are the duration/window rules of whichever timeslots will apply.
	"""
	limits = limits or ValidationLimits.from_settings()
	if visibility is not None:
		validate_visibility(club, visibility)
	if location is not None:
		validate_location(location)
	if level_range is not None:
		validate_level_range(level_range)
	validate_grace_time(grace_time)

	merged = merge_schedule(existing.schedule, schedule_patch)
	validate_time_window(merged.start_time, merged.end_time)
	if schedule_patch:
		touches_start = "start_date" in schedule_patch or "date" in schedule_patch
		validate_schedule(existing.recurrence, merged, now=now, limits=limits, check_start=touches_start)

	if timeslots is not None:
		validate_timeslots(merged.start_time, merged.end_time, timeslots, member_ids or (), limits=limits)
	else:
		for slot in existing.timeslots:
			validate_timeslot_window(slot, merged.start_time, merged.end_time)
	return merged


def validate_status_for_join_leave(instance: EventInstance) -> None:
	if instance.status is not InstanceStatus.NOT_STARTED:
		raise LifecycleError(messages.CANNOT_JOIN_OR_LEAVE_DUE_TO_STATUS)


def validate_date_range(from_date: datetime, to_date: datetime, *, limits: ValidationLimits | None = None) -> None:
	limits = limits or ValidationLimits.from_settings()
	if ensure_utc(to_date) < ensure_utc(from_date) or days_between(from_date, to_date) > limits.max_list_range_days:
		raise ValidationError(messages.DATE_RANGE_INVALID_TEMPLATE.format(days=limits.max_list_range_days))
