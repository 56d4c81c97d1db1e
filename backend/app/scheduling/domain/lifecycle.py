"""Activation, batch generation and deactivation of event series.

Series move ``inactive -> active -> deactivated``. Activation registers the
end-of-series job, materializes the first batch of instances and chains a
``series.generate_next`` job that keeps producing batches until the schedule
runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from app.obs import metrics as obs_metrics
from app.scheduling.domain import messages, models, repo as repo_module
from app.scheduling.domain.exceptions import LifecycleError, NotFoundError
from app.scheduling.domain.factory import InstanceFactory
from app.scheduling.domain.recurrence import generate_occurrence_dates
from app.scheduling.domain.timeutils import (
	days_between,
	ensure_utc,
	get_end_of_day_in_timezone,
	local_date,
	local_midnight_utc,
)
from app.scheduling.domain.transitions import HANDLER_INSTANCE_TRANSITION, StatusTransitionScheduler
from app.scheduling.infra.jobs import JobScheduler, PostgresJobScheduler
from app.settings import settings

_LOG = logging.getLogger(__name__)

HANDLER_SERIES_DEACTIVATE = "series.deactivate"
HANDLER_SERIES_GENERATE_NEXT = "series.generate_next"

JobHandler = Callable[[models.ScheduledJob], Awaitable[None]]


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(slots=True)
class GenerationResult:
	dates: list[datetime] = field(default_factory=list)
	created: list[models.EventInstance] = field(default_factory=list)
	skipped: int = 0
	next_batch_job_id: Optional[UUID] = None


def last_scheduled_day(series: models.EventSeries) -> Optional[datetime]:
	"""The day whose end deactivates the series."""
	if series.recurrence is models.Recurrence.ONE_TIME:
		return series.schedule.date
	return series.schedule.end_date


def generation_end(series: models.EventSeries) -> datetime:
	"""Exclusive upper bound of every date the series can ever produce."""
	if series.recurrence is models.Recurrence.ONE_TIME:
		return get_end_of_day_in_timezone(series.schedule.date, series.timezone)
	return ensure_utc(series.schedule.end_date)


class SeriesLifecycleController:
	def __init__(
		self,
		repository: repo_module.SchedulingRepository | None = None,
		jobs: JobScheduler | None = None,
		*,
		factory: InstanceFactory | None = None,
		transitions: StatusTransitionScheduler | None = None,
		clock: Callable[[], datetime] | None = None,
		max_generation_days: int | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self.jobs = jobs or PostgresJobScheduler()
		self._clock = clock or _utcnow
		self.factory = factory or InstanceFactory(self.repo, clock=self._clock)
		self.transitions = transitions or StatusTransitionScheduler(self.repo, self.jobs)
		self.max_generation_days = (
			max_generation_days if max_generation_days is not None else settings.scheduling_max_generation_days
		)

	async def _require_series(self, series_id: UUID) -> models.EventSeries:
		series = await self.repo.get_series(series_id)
		if series is None:
			raise NotFoundError(messages.SERIES_NOT_FOUND)
		return series

	def _occurrences(
		self,
		series: models.EventSeries,
		range_start: datetime,
		range_end: datetime,
		*,
		max_days: Optional[int] = None,
	) -> list[datetime]:
		return generate_occurrence_dates(
			series.recurrence,
			series.schedule,
			series.timezone,
			range_start,
			range_end,
			max_generation_days=max_days if max_days is not None else self.max_generation_days,
		)

	# --- Activation ---------------------------------------------------------

	async def activate(self, series_id: UUID) -> GenerationResult:
		"""Start generating instances for a series.

		Safe to retry: the end-of-series job is only registered once, instances
		already present for a date are reused and the batch chain is only
		extended when no pending batch job exists.
		"""
		series = await self._require_series(series_id)
		if series.state is models.SeriesState.DEACTIVATED:
			raise LifecycleError(messages.SERIES_ALREADY_DEACTIVATED)

		series = await self.schedule_deactivation(series)
		now = self._clock()
		start = series.schedule.start_date
		range_start = max(now, ensure_utc(start)) if start is not None else now
		result = await self._run_batch(series, range_start, generation_end(series), current_job_id=None, chain=True)

		if series.state is not models.SeriesState.ACTIVE:
			await self.repo.update_series(series.id, {"state": models.SeriesState.ACTIVE})
			obs_metrics.inc_series_lifecycle(models.SeriesState.ACTIVE.value)
		_LOG.info(
			"scheduling.series.activated",
			extra={"series_id": str(series.id), "generated": len(result.created), "skipped": result.skipped},
		)
		return result

	async def schedule_deactivation(self, series: models.EventSeries) -> models.EventSeries:
		"""Register the end-of-series job once and persist its id."""
		if series.on_series_end_function_id is not None:
			return series
		last_day = last_scheduled_day(series)
		if last_day is None:
			return series
		async with self.repo.transaction() as conn:
			locked = await self.repo.get_series(series.id, conn=conn, for_update=True)
			if locked is None:
				raise NotFoundError(messages.SERIES_NOT_FOUND)
			if locked.on_series_end_function_id is not None:
				return locked
			run_at = get_end_of_day_in_timezone(last_day, series.timezone)
			job_id = await self.jobs.schedule_at(
				run_at,
				HANDLER_SERIES_DEACTIVATE,
				{"series_id": str(series.id)},
				conn=conn,
			)
			updated = await self.repo.update_series(series.id, {"on_series_end_function_id": job_id}, conn=conn)
		return updated or series.model_copy(update={"on_series_end_function_id": job_id})

	async def reschedule_deactivation(self, series: models.EventSeries, *, conn: Any = None) -> Optional[UUID]:
		"""Replace the pending end-of-series job after the end date moved."""
		if series.on_series_end_function_id is not None:
			await self.jobs.cancel(series.on_series_end_function_id, conn=conn)
		last_day = last_scheduled_day(series)
		if last_day is None:
			return None
		job_id = await self.jobs.schedule_at(
			get_end_of_day_in_timezone(last_day, series.timezone),
			HANDLER_SERIES_DEACTIVATE,
			{"series_id": str(series.id)},
			conn=conn,
		)
		await self.repo.update_series(series.id, {"on_series_end_function_id": job_id}, conn=conn)
		return job_id

	# --- Generation ---------------------------------------------------------

	async def _materialize(self, series: models.EventSeries, dates: list[datetime]) -> GenerationResult:
		result = GenerationResult(dates=list(dates))
		for occurrence in dates:
			async with self.repo.transaction() as conn:
				instance, created = await self.factory.create_for_date(series, occurrence, conn=conn)
				if instance is None:
					continue
				instance = await self.transitions.schedule(instance, conn=conn)
			if created:
				result.created.append(instance)
			else:
				result.skipped += 1
		return result

	async def _run_batch(
		self,
		series: models.EventSeries,
		range_start: datetime,
		range_end: datetime,
		*,
		current_job_id: Optional[UUID],
		chain: bool,
	) -> GenerationResult:
		range_start = ensure_utc(range_start)
		dates = self._occurrences(series, range_start, range_end)
		result = await self._materialize(series, dates)
		if chain:
			covered_until = min(ensure_utc(range_end), range_start + timedelta(days=self.max_generation_days))
			result.next_batch_job_id = await self.schedule_next_generation(
				series,
				dates,
				covered_until=covered_until,
				current_job_id=current_job_id,
			)
		return result

	async def generate(
		self,
		series_id: UUID,
		range_start: datetime,
		range_end: datetime,
		*,
		chain: bool = False,
		current_job_id: Optional[UUID] = None,
	) -> GenerationResult:
		"""Materialize instances for an active series within ``[range_start, range_end)``."""
		series = await self._require_series(series_id)
		if series.state is not models.SeriesState.ACTIVE:
			raise LifecycleError(messages.CANNOT_GENERATE_DUE_TO_INACTIVE_STATUS)
		return await self._run_batch(
			series,
			range_start,
			min(ensure_utc(range_end), generation_end(series)),
			current_job_id=current_job_id,
			chain=chain,
		)

	async def schedule_next_generation(
		self,
		series: models.EventSeries,
		dates: list[datetime],
		*,
		covered_until: datetime,
		current_job_id: Optional[UUID] = None,
	) -> Optional[UUID]:
		"""Chain the next batch job, or return ``None`` once the schedule is exhausted.

		After a non-empty batch the job fires ``max_generation_days`` before the
		last generated date. After an empty batch it fires that far ahead of the
		next occurrence. Triggers already in the past are clamped to now.
		"""
		if dates:
			last = max(dates)
			next_start = local_midnight_utc(local_date(last, series.timezone) + timedelta(days=1), series.timezone)
		else:
			next_start = ensure_utc(covered_until)

		window_end = generation_end(series)
		if next_start >= window_end:
			return None
		horizon = days_between(next_start, window_end) + 1
		remaining = self._occurrences(series, next_start, window_end, max_days=horizon)
		if not remaining:
			return None

		existing = series.on_next_batch_function_id
		if existing is not None and existing != current_job_id:
			status = await self.jobs.get_status(existing)
			if status is models.JobStatus.PENDING:
				return existing

		anchor = max(dates) if dates else remaining[0]
		run_at = max(anchor - timedelta(days=self.max_generation_days), self._clock())
		async with self.repo.transaction() as conn:
			job_id = await self.jobs.schedule_at(
				run_at,
				HANDLER_SERIES_GENERATE_NEXT,
				{"series_id": str(series.id), "range_start": next_start.isoformat()},
				conn=conn,
			)
			await self.repo.update_series(series.id, {"on_next_batch_function_id": job_id}, conn=conn)
		_LOG.info(
			"scheduling.series.next_batch_scheduled",
			extra={"series_id": str(series.id), "job_id": str(job_id), "run_at": run_at.isoformat()},
		)
		return job_id

	async def resume_generation(self, series: models.EventSeries) -> Optional[UUID]:
		"""Re-chain batch generation after the schedule was extended.

		Continues after the latest materialized instance, or from activation's
		starting point when nothing was materialized yet.
		"""
		latest = await self.repo.latest_instance_date(series.id)
		if latest is not None:
			return await self.schedule_next_generation(series, [ensure_utc(latest)], covered_until=ensure_utc(latest))
		now = self._clock()
		start = series.schedule.start_date
		covered_until = max(now, ensure_utc(start)) if start is not None else now
		return await self.schedule_next_generation(series, [], covered_until=covered_until)

	# --- Deactivation -------------------------------------------------------

	async def deactivate(self, series_id: UUID) -> bool:
		"""Mark an active series deactivated; any other state is left untouched."""
		async with self.repo.transaction() as conn:
			series = await self.repo.get_series(series_id, conn=conn, for_update=True)
			if series is None or series.state is not models.SeriesState.ACTIVE:
				return False
			if series.on_next_batch_function_id is not None:
				await self.jobs.cancel(series.on_next_batch_function_id, conn=conn)
			await self.repo.update_series(series_id, {"state": models.SeriesState.DEACTIVATED}, conn=conn)
		obs_metrics.inc_series_lifecycle(models.SeriesState.DEACTIVATED.value)
		_LOG.info("scheduling.series.deactivated", extra={"series_id": str(series_id)})
		return True

	# --- Job handlers -------------------------------------------------------

	async def handle_deactivate(self, job: models.ScheduledJob) -> None:
		series_id = UUID(str(job.payload["series_id"]))
		if not await self.deactivate(series_id):
			obs_metrics.inc_job_stale(HANDLER_SERIES_DEACTIVATE)
			_LOG.info("scheduling.series.deactivate_stale", extra={"series_id": str(series_id)})

	async def handle_generate_next(self, job: models.ScheduledJob) -> None:
		series_id = UUID(str(job.payload["series_id"]))
		series = await self.repo.get_series(series_id)
		if series is None or series.state is not models.SeriesState.ACTIVE:
			obs_metrics.inc_job_stale(HANDLER_SERIES_GENERATE_NEXT)
			_LOG.info("scheduling.series.generate_stale", extra={"series_id": str(series_id)})
			return
		range_start = datetime.fromisoformat(job.payload["range_start"])
		await self._run_batch(
			series,
			range_start,
			generation_end(series),
			current_job_id=job.id,
			chain=True,
		)

	def handlers(self) -> dict[str, JobHandler]:
		return {
			HANDLER_SERIES_DEACTIVATE: self.handle_deactivate,
			HANDLER_SERIES_GENERATE_NEXT: self.handle_generate_next,
			HANDLER_INSTANCE_TRANSITION: self.transitions.handle_job,
		}


__all__ = [
	"GenerationResult",
	"HANDLER_SERIES_DEACTIVATE",
	"HANDLER_SERIES_GENERATE_NEXT",
	"SeriesLifecycleController",
	"generation_end",
	"last_scheduled_day",
]
