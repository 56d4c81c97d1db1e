"""Time-triggered status transitions for event instances."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from app.obs import metrics as obs_metrics
from app.scheduling.domain import models, repo as repo_module
from app.scheduling.domain.timeutils import get_utc_timestamp_for_date
from app.scheduling.infra.jobs import JobScheduler, PostgresJobScheduler

_LOG = logging.getLogger(__name__)

HANDLER_INSTANCE_TRANSITION = "instance.transition"

_ALLOWED_SOURCES = {
	models.InstanceStatus.IN_PROGRESS: frozenset({models.InstanceStatus.NOT_STARTED}),
	models.InstanceStatus.COMPLETED: frozenset(
		{models.InstanceStatus.NOT_STARTED, models.InstanceStatus.IN_PROGRESS}
	),
}


class StatusTransitionScheduler:
	"""Registers, cancels and applies the start/end jobs of an instance."""

	def __init__(
		self,
		repository: repo_module.SchedulingRepository | None = None,
		jobs: JobScheduler | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self.jobs = jobs or PostgresJobScheduler()

	@staticmethod
	def compute_window(instance: models.EventInstance) -> tuple[datetime, datetime]:
		start_at = get_utc_timestamp_for_date(instance.start_time, instance.timezone, instance.date)
		end_at = get_utc_timestamp_for_date(instance.end_time, instance.timezone, instance.date)
		return start_at, end_at

	async def schedule(self, instance: models.EventInstance, *, conn: Any = None) -> models.EventInstance:
		"""Register whichever of the two transition jobs is not yet registered."""
		start_at, end_at = self.compute_window(instance)
		updates: dict[str, UUID] = {}
		if instance.on_event_start_function_id is None:
			updates["on_event_start_function_id"] = await self.jobs.schedule_at(
				start_at,
				HANDLER_INSTANCE_TRANSITION,
				{"instance_id": str(instance.id), "status": models.InstanceStatus.IN_PROGRESS.value},
				conn=conn,
			)
		if instance.on_event_end_function_id is None:
			updates["on_event_end_function_id"] = await self.jobs.schedule_at(
				end_at,
				HANDLER_INSTANCE_TRANSITION,
				{"instance_id": str(instance.id), "status": models.InstanceStatus.COMPLETED.value},
				conn=conn,
			)
		if not updates:
			return instance
		updated = await self.repo.update_instance(instance.id, updates, conn=conn)
		return updated or instance.model_copy(update=updates)

	async def cancel(self, instance: models.EventInstance, *, conn: Any = None) -> list[UUID]:
		"""Cancel the instance's pending transition jobs and return the ids canceled."""
		canceled: list[UUID] = []
		for job_id in (instance.on_event_start_function_id, instance.on_event_end_function_id):
			if job_id is not None and await self.jobs.cancel(job_id, conn=conn):
				canceled.append(job_id)
		return canceled

	async def get_statuses(self, instance: models.EventInstance, *, conn: Any = None) -> models.ScheduleStatuses:
		start_status: Optional[models.JobStatus] = None
		end_status: Optional[models.JobStatus] = None
		if instance.on_event_start_function_id is not None:
			start_status = await self.jobs.get_status(instance.on_event_start_function_id, conn=conn)
		if instance.on_event_end_function_id is not None:
			end_status = await self.jobs.get_status(instance.on_event_end_function_id, conn=conn)
		return models.ScheduleStatuses(on_event_start=start_status, on_event_end=end_status)

	async def apply_transition(
		self,
		instance_id: UUID,
		target: models.InstanceStatus,
		*,
		conn: Any = None,
	) -> bool:
		"""Move the instance forward to ``target``; stale or backward moves are no-ops."""
		instance = await self.repo.get_instance(instance_id, conn=conn, for_update=True)
		if instance is None or instance.status not in _ALLOWED_SOURCES.get(target, frozenset()):
			obs_metrics.inc_job_stale(HANDLER_INSTANCE_TRANSITION)
			_LOG.info(
				"scheduling.transition.stale",
				extra={
					"instance_id": str(instance_id),
					"target": target.value,
					"current": instance.status.value if instance else None,
				},
			)
			return False
		await self.repo.update_instance(instance_id, {"status": target}, conn=conn)
		obs_metrics.inc_instance_transition(target.value)
		return True

	async def handle_job(self, job: models.ScheduledJob) -> None:
		instance_id = UUID(str(job.payload["instance_id"]))
		target = models.InstanceStatus(job.payload["status"])
		async with self.repo.transaction() as conn:
			await self.apply_transition(instance_id, target, conn=conn)


__all__ = ["HANDLER_INSTANCE_TRANSITION", "StatusTransitionScheduler"]
