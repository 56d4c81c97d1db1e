from __future__ import annotations

from datetime import timedelta

import pytest

from app.scheduling.domain import models
from app.scheduling.workers.job_dispatcher import JobDispatcher


@pytest.mark.asyncio
async def test_due_jobs_run_in_order_and_are_marked(jobs, clock):
	seen: list[str] = []

	async def handler(job: models.ScheduledJob) -> None:
		seen.append(job.payload["name"])

	later = await jobs.schedule_at(clock.now - timedelta(minutes=1), "test.job", {"name": "later"})
	earlier = await jobs.schedule_at(clock.now - timedelta(minutes=5), "test.job", {"name": "earlier"})
	future = await jobs.schedule_at(clock.now + timedelta(minutes=5), "test.job", {"name": "future"})
	dispatcher = JobDispatcher(jobs=jobs, handlers={"test.job": handler}, clock=clock)

	executed = await dispatcher.process_once()

	assert executed == 2
	assert seen == ["earlier", "later"]
	assert jobs.jobs[earlier].status is models.JobStatus.EXECUTED
	assert jobs.jobs[later].status is models.JobStatus.EXECUTED
	assert jobs.jobs[future].status is models.JobStatus.PENDING


@pytest.mark.asyncio
async def test_failing_handler_keeps_job_pending_for_retry(jobs, clock):
	async def handler(job: models.ScheduledJob) -> None:
		raise RuntimeError("database unavailable")

	job_id = await jobs.schedule_at(clock.now, "test.job", {})
	dispatcher = JobDispatcher(jobs=jobs, handlers={"test.job": handler}, clock=clock)

	assert await dispatcher.process_once() == 0

	job = jobs.jobs[job_id]
	assert job.status is models.JobStatus.PENDING
	assert job.attempts == 1
	assert job.last_error == "RuntimeError: database unavailable"
	assert job.run_at == clock.now + dispatcher.retry_delay
	# not due again until the retry delay passes
	assert await dispatcher.process_once() == 0
	assert jobs.jobs[job_id].attempts == 1


@pytest.mark.asyncio
async def test_unknown_handler_is_recorded_as_failure(jobs, clock):
	job_id = await jobs.schedule_at(clock.now, "nobody.listens", {})
	dispatcher = JobDispatcher(jobs=jobs, handlers={}, clock=clock)

	await dispatcher.process_once()

	job = jobs.jobs[job_id]
	assert job.status is models.JobStatus.PENDING
	assert job.last_error == "unknown_handler:nobody.listens"


@pytest.mark.asyncio
async def test_canceled_jobs_never_run(jobs, clock):
	calls = []

	async def handler(job: models.ScheduledJob) -> None:
		calls.append(job.id)

	job_id = await jobs.schedule_at(clock.now, "test.job", {})
	await jobs.cancel(job_id)
	dispatcher = JobDispatcher(jobs=jobs, handlers={"test.job": handler}, clock=clock)

	assert await dispatcher.process_once() == 0
	assert calls == []
