"""Async repository helpers for event series, instances and participants."""

from __future__ import annotations

import json
from base64 import b64decode, b64encode
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID, uuid4

import asyncpg
from pydantic import BaseModel

from app.infra import postgres
from app.scheduling.domain import models

CursorPair = tuple[datetime, UUID]

_SERIES_COLUMNS = (
	"id, club_id, name, description, location, recurrence, schedule, timeslots, visibility, type, level_range, "
	"payment_type, grace_time, state, "
	"on_series_end_function_id, on_next_batch_function_id, created_by, created_at, updated_at"
)
_INSTANCE_COLUMNS = (
	"id, series_id, club_id, name, description, location, visibility, type, level_range, payment_type, grace_time, "
	"date, start_time, end_time, timeslots, status, on_event_start_function_id, on_event_end_function_id, "
	"created_by, created_at, updated_at"
)
_PARTICIPANT_COLUMNS = "id, instance_id, timeslot_id, user_id, joined_at, is_waitlisted, date"
_JSON_COLUMNS = frozenset({"location", "schedule", "timeslots", "level_range", "grace_time"})
_SERIES_MUTABLE = frozenset(
	{
		"name",
		"description",
		"location",
		"schedule",
		"timeslots",
		"visibility",
		"type",
		"level_range",
		"payment_type",
		"grace_time",
		"state",
		"on_series_end_function_id",
		"on_next_batch_function_id",
	}
)
_INSTANCE_MUTABLE = frozenset({"timeslots", "status", "on_event_start_function_id", "on_event_end_function_id"})


def encode_cursor(value: CursorPair) -> str:
	occurs_on, entity_id = value
	payload = f"{occurs_on.isoformat()}|{entity_id}"
	return b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> CursorPair:
	decoded = b64decode(cursor.encode()).decode()
	date_str, id_str = decoded.split("|", maxsplit=1)
	return datetime.fromisoformat(date_str), UUID(id_str)


def _to_db(column: str, value: Any) -> Any:
	if value is None:
		return None
	if column in _JSON_COLUMNS:
		if isinstance(value, BaseModel):
			return json.dumps(value.model_dump(mode="json"))
		if isinstance(value, (list, tuple)):
			return json.dumps([item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in value])
		return json.dumps(value)
	if isinstance(value, Enum):
		return value.value
	return value


def _decode_json_columns(row: asyncpg.Record) -> dict[str, Any]:
	data = dict(row)
	for column in _JSON_COLUMNS:
		if isinstance(data.get(column), str):
			data[column] = json.loads(data[column])
	return data


def _series_from_row(row: asyncpg.Record) -> models.EventSeries:
	return models.EventSeries.model_validate(_decode_json_columns(row))


def _instance_from_row(row: asyncpg.Record) -> models.EventInstance:
	return models.EventInstance.model_validate(_decode_json_columns(row))


def _participant_from_row(row: asyncpg.Record) -> models.EventParticipant:
	return models.EventParticipant.model_validate(dict(row))


class SchedulingRepository:
	"""Thin data-access layer around asyncpg."""

	def transaction(self):
		"""One transaction shared by every call that is passed its ``conn``."""
		return postgres.transaction()

	def _connection(self, conn: Optional[asyncpg.Connection]):
		return postgres.connection(conn)

	async def _update(
		self,
		table: str,
		columns: str,
		allowed: frozenset[str],
		entity_id: UUID,
		fields: Mapping[str, Any],
		conn: Optional[asyncpg.Connection],
	) -> Optional[asyncpg.Record]:
		unknown = set(fields) - allowed
		if unknown:
			raise ValueError(f"unsupported_fields:{','.join(sorted(unknown))}")
		assignments: list[str] = []
		values: list[Any] = [entity_id]
		for column, value in fields.items():
			values.append(_to_db(column, value))
			cast = "::jsonb" if column in _JSON_COLUMNS else ""
			assignments.append(f"{column} = ${len(values)}{cast}")
		assignments.append("updated_at = NOW()")
		async with self._connection(conn) as connection:
			return await connection.fetchrow(
				f"UPDATE {table} SET {', '.join(assignments)} WHERE id = $1 RETURNING {columns}",
				*values,
			)

	# --- Series -------------------------------------------------------------

	async def insert_series(
		self, series: models.EventSeries, *, conn: Optional[asyncpg.Connection] = None
	) -> models.EventSeries:
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"""
				INSERT INTO event_series (
					id, club_id, name, description, location, recurrence, schedule, timeslots,
					visibility, type, level_range, payment_type, grace_time, state, created_by, created_at, updated_at
				)
				VALUES (
					$1, $2, $3, $4, $5::jsonb, $6, $7::jsonb, $8::jsonb, $9, $10, $11::jsonb, $12, $13::jsonb,
					$14, $15, $16, $17
				)
				RETURNING {_SERIES_COLUMNS}
				""",
				series.id,
				series.club_id,
				series.name,
				series.description,
				_to_db("location", series.location),
				series.recurrence.value,
				_to_db("schedule", series.schedule),
				_to_db("timeslots", series.timeslots),
				series.visibility.value,
				series.type.value,
				_to_db("level_range", series.level_range),
				series.payment_type.value,
				_to_db("grace_time", series.grace_time),
				series.state.value,
				series.created_by,
				series.created_at,
				series.updated_at,
			)
		return _series_from_row(row)

	async def get_series(
		self,
		series_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.EventSeries]:
		lock = " FOR UPDATE" if for_update else ""
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"SELECT {_SERIES_COLUMNS} FROM event_series WHERE id = $1{lock}",
				series_id,
			)
		return _series_from_row(row) if row else None

	async def list_series_for_club(self, club_id: UUID) -> list[models.EventSeries]:
		async with self._connection(None) as connection:
			rows = await connection.fetch(
				f"SELECT {_SERIES_COLUMNS} FROM event_series WHERE club_id = $1 ORDER BY created_at DESC, id DESC",
				club_id,
			)
		return [_series_from_row(row) for row in rows]

	async def update_series(
		self,
		series_id: UUID,
		fields: Mapping[str, Any],
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.EventSeries]:
		row = await self._update("event_series", _SERIES_COLUMNS, _SERIES_MUTABLE, series_id, fields, conn)
		return _series_from_row(row) if row else None

	async def delete_series(self, series_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> bool:
		async with self._connection(conn) as connection:
			deleted = await connection.fetchval("DELETE FROM event_series WHERE id = $1 RETURNING id", series_id)
		return deleted is not None

	# --- Instances ----------------------------------------------------------

	async def insert_instance_if_absent(
		self, instance: models.EventInstance, *, conn: Optional[asyncpg.Connection] = None
	) -> Optional[models.EventInstance]:
		"""Insert the instance unless one already exists for (series_id, date).

		Returns ``None`` when the unique index rejected the row.
		"""
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"""
				INSERT INTO event_instance (
					id, series_id, club_id, name, description, location, visibility, type, level_range,
					payment_type, grace_time, date, start_time, end_time, timeslots, status, created_by,
					created_at, updated_at
				)
				VALUES (
					$1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9::jsonb, $10, $11::jsonb, $12, $13, $14,
					$15::jsonb, $16, $17, $18, $19
				)
				ON CONFLICT (series_id, date) DO NOTHING
				RETURNING {_INSTANCE_COLUMNS}
				""",
				instance.id,
				instance.series_id,
				instance.club_id,
				instance.name,
				instance.description,
				_to_db("location", instance.location),
				instance.visibility.value,
				instance.type.value,
				_to_db("level_range", instance.level_range),
				instance.payment_type.value,
				_to_db("grace_time", instance.grace_time),
				instance.date,
				instance.start_time,
				instance.end_time,
				_to_db("timeslots", instance.timeslots),
				instance.status.value,
				instance.created_by,
				instance.created_at,
				instance.updated_at,
			)
		return _instance_from_row(row) if row else None

	async def get_instance(
		self,
		instance_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.EventInstance]:
		lock = " FOR UPDATE" if for_update else ""
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"SELECT {_INSTANCE_COLUMNS} FROM event_instance WHERE id = $1{lock}",
				instance_id,
			)
		return _instance_from_row(row) if row else None

	async def get_instance_at_date(
		self,
		series_id: UUID,
		occurs_on: datetime,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.EventInstance]:
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"SELECT {_INSTANCE_COLUMNS} FROM event_instance WHERE series_id = $1 AND date = $2",
				series_id,
				occurs_on,
			)
		return _instance_from_row(row) if row else None

	async def list_instances_for_club(
		self,
		club_id: UUID,
		*,
		from_date: datetime,
		to_date: datetime,
		limit: int,
		after: Optional[CursorPair] = None,
		include_members_only: bool = True,
	) -> list[models.EventInstance]:
		clauses = ["club_id = $1", "date >= $2", "date <= $3"]
		params: list[Any] = [club_id, from_date, to_date]
		if not include_members_only:
			clauses.append("visibility = 'public'")
		if after is not None:
			params.extend(after)
			clauses.append(f"(date, id) > (${len(params) - 1}, ${len(params)})")
		params.append(limit)
		async with self._connection(None) as connection:
			rows = await connection.fetch(
				f"""
				SELECT {_INSTANCE_COLUMNS}
				FROM event_instance
				WHERE {' AND '.join(clauses)}
				ORDER BY date ASC, id ASC
				LIMIT ${len(params)}
				""",
				*params,
			)
		return [_instance_from_row(row) for row in rows]

	async def update_instance(
		self,
		instance_id: UUID,
		fields: Mapping[str, Any],
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.EventInstance]:
		row = await self._update("event_instance", _INSTANCE_COLUMNS, _INSTANCE_MUTABLE, instance_id, fields, conn)
		return _instance_from_row(row) if row else None

	async def delete_instance(self, instance_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> bool:
		async with self._connection(conn) as connection:
			deleted = await connection.fetchval("DELETE FROM event_instance WHERE id = $1 RETURNING id", instance_id)
		return deleted is not None

	async def latest_instance_date(
		self, series_id: UUID, *, conn: Optional[asyncpg.Connection] = None
	) -> Optional[datetime]:
		async with self._connection(conn) as connection:
			return await connection.fetchval("SELECT max(date) FROM event_instance WHERE series_id = $1", series_id)

	async def list_instances_for_user(
		self,
		user_id: UUID,
		*,
		from_date: datetime,
		to_date: datetime,
		limit: int,
		after: Optional[CursorPair] = None,
	) -> list[models.EventInstance]:
		"""Instances the user holds a place or waitlist spot in, ordered by ``(date, id)``."""
		clauses = ["p.user_id = $1", "i.date >= $2", "i.date <= $3"]
		params: list[Any] = [user_id, from_date, to_date]
		if after is not None:
			params.extend(after)
			clauses.append(f"(i.date, i.id) > (${len(params) - 1}, ${len(params)})")
		params.append(limit)
		columns = ", ".join(f"i.{column.strip()}" for column in _INSTANCE_COLUMNS.split(","))
		async with self._connection(None) as connection:
			rows = await connection.fetch(
				f"""
				SELECT DISTINCT {columns}
				FROM event_instance i
				JOIN event_participant p ON p.instance_id = i.id
				WHERE {' AND '.join(clauses)}
				ORDER BY i.date ASC, i.id ASC
				LIMIT ${len(params)}
				""",
				*params,
			)
		return [_instance_from_row(row) for row in rows]

	# --- Participants -------------------------------------------------------

	async def insert_participants(
		self,
		instance: models.EventInstance,
		entries: Iterable[tuple[str, UUID]],
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> int:
		"""Insert confirmed participants given as ``(timeslot_id, user_id)`` pairs."""
		records = [
			(uuid4(), instance.id, timeslot_id, user_id, instance.date, False, instance.date)
			for timeslot_id, user_id in entries
		]
		if not records:
			return 0
		async with self._connection(conn) as connection:
			await connection.executemany(
				"""
				INSERT INTO event_participant (id, instance_id, timeslot_id, user_id, joined_at, is_waitlisted, date)
				VALUES ($1, $2, $3, $4, $5, $6, $7)
				ON CONFLICT (instance_id, timeslot_id, user_id) DO NOTHING
				""",
				records,
			)
		return len(records)

	async def add_participant(
		self,
		*,
		instance: models.EventInstance,
		timeslot_id: str,
		user_id: UUID,
		joined_at: datetime,
		is_waitlisted: bool,
		conn: Optional[asyncpg.Connection] = None,
	) -> models.EventParticipant:
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"""
				INSERT INTO event_participant (id, instance_id, timeslot_id, user_id, joined_at, is_waitlisted, date)
				VALUES ($1, $2, $3, $4, $5, $6, $7)
				RETURNING {_PARTICIPANT_COLUMNS}
				""",
				uuid4(),
				instance.id,
				timeslot_id,
				user_id,
				joined_at,
				is_waitlisted,
				instance.date,
			)
		return _participant_from_row(row)

	async def get_participant(
		self,
		*,
		instance_id: UUID,
		timeslot_id: str,
		user_id: UUID,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.EventParticipant]:
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"""
				SELECT {_PARTICIPANT_COLUMNS}
				FROM event_participant
				WHERE instance_id = $1 AND timeslot_id = $2 AND user_id = $3
				""",
				instance_id,
				timeslot_id,
				user_id,
			)
		return _participant_from_row(row) if row else None

	async def remove_participant(self, participant_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> None:
		async with self._connection(conn) as connection:
			await connection.execute("DELETE FROM event_participant WHERE id = $1", participant_id)

	async def next_waitlisted(
		self,
		*,
		instance_id: UUID,
		timeslot_id: str,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.EventParticipant]:
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				f"""
				SELECT {_PARTICIPANT_COLUMNS}
				FROM event_participant
				WHERE instance_id = $1 AND timeslot_id = $2 AND is_waitlisted
				ORDER BY joined_at ASC, id ASC
				LIMIT 1
				FOR UPDATE
				""",
				instance_id,
				timeslot_id,
			)
		return _participant_from_row(row) if row else None

	async def promote_participant(self, participant_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> None:
		async with self._connection(conn) as connection:
			await connection.execute(
				"UPDATE event_participant SET is_waitlisted = FALSE WHERE id = $1",
				participant_id,
			)

	async def list_participants(
		self, instance_id: UUID, *, conn: Optional[asyncpg.Connection] = None
	) -> Sequence[models.EventParticipant]:
		async with self._connection(conn) as connection:
			rows = await connection.fetch(
				f"""
				SELECT {_PARTICIPANT_COLUMNS}
				FROM event_participant
				WHERE instance_id = $1
				ORDER BY joined_at ASC, id ASC
				""",
				instance_id,
			)
		return [_participant_from_row(row) for row in rows]


__all__ = ["SchedulingRepository", "encode_cursor", "decode_cursor"]
