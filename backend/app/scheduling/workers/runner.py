"""Wiring for the scheduled-job dispatcher."""

from __future__ import annotations

from app.scheduling.domain.lifecycle import SeriesLifecycleController
from app.scheduling.infra.jobs import PostgresJobScheduler
from app.scheduling.infra.scheduler import DispatchScheduler
from app.scheduling.workers.job_dispatcher import JobDispatcher
from app.settings import settings

DISPATCH_JOB_ID = "scheduling-job-dispatch"


def build_dispatcher(lifecycle: SeriesLifecycleController | None = None) -> JobDispatcher:
	"""Create a dispatcher that routes every registered handler name."""
	jobs = PostgresJobScheduler()
	controller = lifecycle or SeriesLifecycleController(jobs=jobs)
	return JobDispatcher(
		jobs=jobs,
		handlers=controller.handlers(),
		batch_size=settings.scheduling_dispatch_batch_size,
	)


def start_dispatch(dispatcher: JobDispatcher) -> DispatchScheduler:
	"""Run ``dispatcher.process_once`` on a fixed interval."""
	scheduler = DispatchScheduler()
	scheduler.start()
	scheduler.schedule_every(
		DISPATCH_JOB_ID,
		dispatcher.process_once,
		seconds=settings.scheduling_dispatch_interval_seconds,
	)
	return scheduler


__all__ = ["DISPATCH_JOB_ID", "build_dispatcher", "start_dispatch"]
