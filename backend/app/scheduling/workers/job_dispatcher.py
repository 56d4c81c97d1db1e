"""Background worker that executes due scheduled jobs."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Mapping

from app.obs import metrics as obs_metrics
from app.scheduling.domain.models import ScheduledJob
from app.scheduling.infra.jobs import PostgresJobScheduler

_LOG = logging.getLogger(__name__)

JobHandler = Callable[[ScheduledJob], Awaitable[None]]


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class JobDispatcher:
	"""Runs pending jobs whose ``run_at`` has passed.

	A job is marked executed only after its handler returns. A failing handler
	leaves the job pending and pushes ``run_at`` back by ``retry_delay``.
	"""

	def __init__(
		self,
		*,
		jobs: PostgresJobScheduler | None = None,
		handlers: Mapping[str, JobHandler],
		batch_size: int = 50,
		retry_delay: timedelta = timedelta(minutes=1),
		clock: Callable[[], datetime] | None = None,
	) -> None:
		self.jobs = jobs or PostgresJobScheduler()
		self.handlers = dict(handlers)
		self.batch_size = batch_size
		self.retry_delay = retry_delay
		self._clock = clock or _utcnow

	async def process_once(self) -> int:
		started = time.perf_counter()
		due = await self.jobs.fetch_due(now=self._clock(), limit=self.batch_size)
		executed = 0
		for job in due:
			if await self._run(job):
				executed += 1
		obs_metrics.observe_dispatch(time.perf_counter() - started)
		return executed

	async def _run(self, job: ScheduledJob) -> bool:
		handler = self.handlers.get(job.handler)
		if handler is None:
			_LOG.error("scheduling.dispatch.unknown_handler", extra={"job_id": str(job.id), "handler": job.handler})
			await self.jobs.record_failure(
				job.id,
				error=f"unknown_handler:{job.handler}",
				retry_at=self._clock() + self.retry_delay,
			)
			obs_metrics.inc_job_executed(job.handler, result="unknown_handler")
			return False
		try:
			await handler(job)
		except Exception as exc:
			_LOG.exception("scheduling.dispatch.failed", extra={"job_id": str(job.id), "handler": job.handler})
			await self.jobs.record_failure(
				job.id,
				error=f"{type(exc).__name__}: {exc}",
				retry_at=self._clock() + self.retry_delay,
			)
			obs_metrics.inc_job_executed(job.handler, result="error")
			return False
		await self.jobs.mark_executed(job.id)
		obs_metrics.inc_job_executed(job.handler, result="ok")
		return True


__all__ = ["JobDispatcher"]
