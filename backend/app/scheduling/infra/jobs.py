"""Time-triggered job port and its Postgres-backed implementation.

Jobs move from ``pending`` to exactly one of ``executed`` or ``canceled``;
both are terminal, so every state change is guarded on ``status = 'pending'``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence
from uuid import UUID, uuid4

import asyncpg

from app.infra import postgres
from app.obs import metrics as obs_metrics
from app.scheduling.domain import messages
from app.scheduling.domain.exceptions import JobSchedulingError
from app.scheduling.domain.models import JobStatus, ScheduledJob

_LOG = logging.getLogger(__name__)

_JOB_COLUMNS = "id, run_at, handler, payload, status, attempts, last_error, created_at"


class JobScheduler(Protocol):
	"""Port used by the domain to register, cancel and inspect jobs."""

	async def schedule_at(
		self,
		run_at: datetime,
		handler: str,
		payload: dict[str, Any],
		*,
		conn: Any = None,
	) -> UUID: ...

	async def cancel(self, job_id: UUID, *, conn: Any = None) -> bool: ...

	async def get_status(self, job_id: UUID, *, conn: Any = None) -> Optional[JobStatus]: ...


def _job_from_row(row: asyncpg.Record) -> ScheduledJob:
	data = dict(row)
	payload = data.get("payload")
	if isinstance(payload, str):
		data["payload"] = json.loads(payload)
	return ScheduledJob.model_validate(data)


class PostgresJobScheduler:
	"""Stores jobs in ``scheduled_job`` for the dispatcher to pick up."""

	def _connection(self, conn: Any):
		return postgres.connection(conn)

	async def schedule_at(
		self,
		run_at: datetime,
		handler: str,
		payload: dict[str, Any],
		*,
		conn: Any = None,
	) -> UUID:
		job_id = uuid4()
		try:
			async with self._connection(conn) as connection:
				await connection.execute(
					"""
					INSERT INTO scheduled_job (id, run_at, handler, payload, status)
					VALUES ($1, $2, $3, $4::jsonb, 'pending')
					""",
					job_id,
					run_at,
					handler,
					json.dumps(payload),
				)
		except (asyncpg.PostgresError, OSError) as exc:
			_LOG.exception("scheduling.job.register_failed", extra={"handler": handler, "run_at": run_at.isoformat()})
			raise JobSchedulingError(messages.JOB_REGISTRATION_FAILED) from exc
		obs_metrics.inc_job_scheduled(handler)
		_LOG.info(
			"scheduling.job.registered",
			extra={"job_id": str(job_id), "handler": handler, "run_at": run_at.isoformat()},
		)
		return job_id

	async def cancel(self, job_id: UUID, *, conn: Any = None) -> bool:
		async with self._connection(conn) as connection:
			row = await connection.fetchrow(
				"""
				UPDATE scheduled_job
				SET status = 'canceled', updated_at = NOW()
				WHERE id = $1 AND status = 'pending'
				RETURNING id
				""",
				job_id,
			)
		if row is not None:
			obs_metrics.inc_job_canceled()
		return row is not None

	async def get_status(self, job_id: UUID, *, conn: Any = None) -> Optional[JobStatus]:
		async with self._connection(conn) as connection:
			value = await connection.fetchval("SELECT status FROM scheduled_job WHERE id = $1", job_id)
		return JobStatus(value) if value is not None else None

	async def fetch_due(self, *, now: datetime, limit: int) -> Sequence[ScheduledJob]:
		async with self._connection(None) as connection:
			rows = await connection.fetch(
				f"""
				SELECT {_JOB_COLUMNS}
				FROM scheduled_job
				WHERE status = 'pending' AND run_at <= $1
				ORDER BY run_at ASC, id ASC
				LIMIT $2
				""",
				now,
				limit,
			)
		return [_job_from_row(row) for row in rows]

	async def mark_executed(self, job_id: UUID) -> bool:
		async with self._connection(None) as connection:
			row = await connection.fetchrow(
				"""
				UPDATE scheduled_job
				SET status = 'executed', attempts = attempts + 1, updated_at = NOW()
				WHERE id = $1 AND status = 'pending'
				RETURNING id
				""",
				job_id,
			)
		return row is not None

	async def record_failure(self, job_id: UUID, *, error: str, retry_at: datetime) -> None:
		async with self._connection(None) as connection:
			await connection.execute(
				"""
				UPDATE scheduled_job
				SET attempts = attempts + 1, last_error = $2, run_at = $3, updated_at = NOW()
				WHERE id = $1 AND status = 'pending'
				""",
				job_id,
				error[:1000],
				retry_at,
			)


__all__ = ["JobScheduler", "PostgresJobScheduler"]
