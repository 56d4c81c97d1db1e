"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"rally_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"rally_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SERIES_CREATED = Counter(
	"rally_series_created_total",
	"Event series created",
	["recurrence"],
)

SERIES_LIFECYCLE = Counter(
	"rally_series_lifecycle_total",
	"Event series lifecycle transitions",
	["state"],
)

INSTANCES_GENERATED = Counter(
	"rally_instances_generated_total",
	"Event instances materialized from a series",
)

INSTANCES_DUPLICATE_SKIPPED = Counter(
	"rally_instances_duplicate_skipped_total",
	"Instance generation skipped because the series date already exists",
)

INSTANCE_TRANSITIONS = Counter(
	"rally_instance_transitions_total",
	"Instance status transitions applied",
	["status"],
)

JOBS_SCHEDULED = Counter(
	"rally_jobs_scheduled_total",
	"Time-triggered jobs registered",
	["handler"],
)

JOBS_CANCELED = Counter(
	"rally_jobs_canceled_total",
	"Time-triggered jobs canceled before execution",
)

JOBS_EXECUTED = Counter(
	"rally_jobs_executed_total",
	"Time-triggered job executions",
	["handler", "result"],
)

JOBS_STALE = Counter(
	"rally_jobs_stale_total",
	"Job handlers that found stale state and did nothing",
	["handler"],
)

JOB_DISPATCH_DURATION = Histogram(
	"rally_job_dispatch_duration_seconds",
	"Duration of a dispatcher pass",
	buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 15.0),
)

TIMESLOT_PARTICIPATION = Counter(
	"rally_timeslot_participation_total",
	"Timeslot join and leave actions",
	["action"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_series_created(recurrence: str) -> None:
	SERIES_CREATED.labels(recurrence=recurrence).inc()


def inc_series_lifecycle(state: str) -> None:
	SERIES_LIFECYCLE.labels(state=state).inc()


def inc_instances_generated(count: int = 1) -> None:
	INSTANCES_GENERATED.inc(count)


def inc_instance_duplicate_skipped() -> None:
	INSTANCES_DUPLICATE_SKIPPED.inc()


def inc_instance_transition(status: str) -> None:
	INSTANCE_TRANSITIONS.labels(status=status).inc()


def inc_job_scheduled(handler: str) -> None:
	JOBS_SCHEDULED.labels(handler=handler).inc()


def inc_job_canceled(count: int = 1) -> None:
	JOBS_CANCELED.inc(count)


def inc_job_executed(handler: str, *, result: str) -> None:
	JOBS_EXECUTED.labels(handler=handler, result=result).inc()


def inc_job_stale(handler: str) -> None:
	JOBS_STALE.labels(handler=handler).inc()


def observe_dispatch(duration_seconds: float) -> None:
	JOB_DISPATCH_DURATION.observe(duration_seconds)


def inc_timeslot_participation(action: str) -> None:
	TIMESLOT_PARTICIPATION.labels(action=action).inc()
