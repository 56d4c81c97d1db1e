"""Materialization of dated instances from a series template."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

import ulid

from app.obs import metrics as obs_metrics
from app.scheduling.domain import models, repo as repo_module
from app.scheduling.domain.timeutils import ensure_utc

_LOG = logging.getLogger(__name__)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _new_slot_id() -> str:
	return ulid.new().str


class InstanceFactory:
	"""Builds instance records and inserts them at most once per (series, date)."""

	def __init__(
		self,
		repository: repo_module.SchedulingRepository | None = None,
		*,
		clock: Callable[[], datetime] | None = None,
		slot_id_factory: Callable[[], str] | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self._clock = clock or _utcnow
		self._slot_id_factory = slot_id_factory or _new_slot_id

	def build(self, series: models.EventSeries, occurrence_date: datetime) -> models.EventInstance:
		"""Return an unsaved instance for ``occurrence_date`` with snapshot timeslots."""
		now = self._clock()
		timeslots = [
			models.Timeslot(
				**template.model_dump(),
				id=self._slot_id_factory(),
				num_participants=len(template.permanent_participants),
				num_waitlisted=0,
			)
			for template in series.timeslots
		]
		return models.EventInstance(
			id=uuid4(),
			series_id=series.id,
			club_id=series.club_id,
			name=series.name,
			description=series.description,
			location=series.location.model_copy(),
			visibility=series.visibility,
			type=series.type,
			level_range=series.level_range.model_copy(),
			payment_type=series.payment_type,
			grace_time=series.grace_time.model_copy() if series.grace_time else None,
			date=ensure_utc(occurrence_date),
			start_time=series.schedule.start_time,
			end_time=series.schedule.end_time,
			timeslots=timeslots,
			status=models.InstanceStatus.NOT_STARTED,
			created_by=series.created_by,
			created_at=now,
			updated_at=now,
		)

	async def create_for_date(
		self,
		series: models.EventSeries,
		occurrence_date: datetime,
		*,
		conn: Any = None,
	) -> tuple[Optional[models.EventInstance], bool]:
		"""Insert the instance for ``occurrence_date`` unless it already exists.

		Returns the stored instance and whether this call created it. Permanent
		participants are enrolled only for newly created instances.
		"""
		candidate = self.build(series, occurrence_date)
		created = await self.repo.insert_instance_if_absent(candidate, conn=conn)
		if created is None:
			existing = await self.repo.get_instance_at_date(series.id, candidate.date, conn=conn)
			obs_metrics.inc_instance_duplicate_skipped()
			_LOG.info(
				"scheduling.instance.duplicate_skipped",
				extra={"series_id": str(series.id), "date": candidate.date.isoformat()},
			)
			return existing, False

		enrolled = [
			(slot.id, user_id)
			for slot in created.timeslots
			for user_id in slot.permanent_participants
		]
		await self.repo.insert_participants(created, enrolled, conn=conn)
		obs_metrics.inc_instances_generated()
		return created, True


__all__ = ["InstanceFactory"]
