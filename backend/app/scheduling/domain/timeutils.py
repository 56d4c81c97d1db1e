"""Timezone helpers for converting series wall-clock times into UTC instants.

Instance dates are stored as the UTC instant of the local midnight in the
series timezone, so every helper here works from the local calendar day
rather than the UTC one.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TIME_FORMAT_RE = re.compile(r"^([0-1][0-9]|2[0-3]):(00|15|30|45)$")


def is_valid_time(value: str | None) -> bool:
	return bool(value) and TIME_FORMAT_RE.match(value) is not None


def is_valid_timezone(name: str | None) -> bool:
	if not name:
		return False
	try:
		ZoneInfo(name)
	except (ZoneInfoNotFoundError, ValueError):
		return False
	return True


def parse_time(value: str) -> time:
	hours, minutes = value.split(":", maxsplit=1)
	return time(int(hours), int(minutes))


def get_time_duration_in_minutes(start_time: str, end_time: str) -> int:
	"""Minutes between two HH:MM wall-clock times on the same day."""
	start = parse_time(start_time)
	end = parse_time(end_time)
	return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


def ensure_utc(moment: datetime) -> datetime:
	"""Treat naive datetimes as UTC and normalise aware ones to UTC."""
	if moment.tzinfo is None:
		return moment.replace(tzinfo=timezone.utc)
	return moment.astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str) -> date:
	return ensure_utc(moment).astimezone(ZoneInfo(tz_name)).date()


def local_midnight_utc(day: date, tz_name: str) -> datetime:
	"""UTC instant at which ``day`` begins in ``tz_name``."""
	local = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz_name))
	return local.astimezone(timezone.utc)


def get_utc_timestamp_for_date(time_str: str, tz_name: str, target: date | datetime) -> datetime:
	"""Convert ``time_str`` on the local date of ``target`` into a UTC instant.

	``target`` may be a plain ``date`` or an instant; instants are first
	resolved to their calendar day in ``tz_name``.
	"""
	if isinstance(target, datetime):
		day = local_date(target, tz_name)
	else:
		day = target
	local = datetime.combine(day, parse_time(time_str), tzinfo=ZoneInfo(tz_name))
	return local.astimezone(timezone.utc)


def get_start_of_day_in_timezone(moment: datetime, tz_name: str) -> datetime:
	return local_midnight_utc(local_date(moment, tz_name), tz_name)


def get_end_of_day_in_timezone(moment: datetime, tz_name: str) -> datetime:
	"""First instant after the local day containing ``moment``."""
	return local_midnight_utc(local_date(moment, tz_name) + timedelta(days=1), tz_name)


def months_between(start: datetime, end: datetime) -> int:
	"""Whole calendar months from ``start`` to ``end`` (truncated toward zero)."""
	start = ensure_utc(start)
	end = ensure_utc(end)
	if end < start:
		return -months_between(end, start)
	months = (end.year - start.year) * 12 + (end.month - start.month)
	if (end.day, end.time()) < (start.day, start.time()):
		months -= 1
	return months


def days_between(start: datetime, end: datetime) -> int:
	"""Whole days from ``start`` to ``end`` (truncated toward zero)."""
	delta = ensure_utc(end) - ensure_utc(start)
	seconds = delta.total_seconds()
	whole = int(abs(seconds) // 86400)
	return whole if seconds >= 0 else -whole
