"""Custom exceptions for scheduling services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class SchedulingError(Exception):
	"""Base class for scheduling related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "scheduling_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(SchedulingError):
	"""Raised when a club, series or instance is missing."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(SchedulingError):
	"""Raised when the caller may not perform the action."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ConflictError(SchedulingError):
	"""Raised for operations that conflict with current state."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class ValidationError(SchedulingError):
	"""Raised for validation errors not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class ScheduleValidationError(ValidationError):
	"""Schedule shape is invalid for the recurrence kind."""

	detail = "invalid_schedule"


class CapacityValidationError(ValidationError):
	"""Timeslot capacity, fee or window rules are violated."""

	detail = "invalid_timeslot"


class VisibilityError(ValidationError):
	"""Requested visibility is not allowed for the owning club."""

	detail = "invalid_visibility"


class LifecycleError(ConflictError):
	"""Operation is not allowed in the current lifecycle state."""

	detail = "invalid_lifecycle_state"


class IdempotencyConflict(ConflictError):
	"""Raised when an idempotency key is reused with a mismatched payload."""

	detail = "idempotency_conflict"


class JobSchedulingError(SchedulingError):
	"""Raised when a time-triggered job could not be registered."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "job_registration_failed"
