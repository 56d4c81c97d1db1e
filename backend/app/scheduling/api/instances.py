"""Event instance and participation API endpoints."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from app.infra.auth import AuthenticatedUser, get_current_user
from app.scheduling.api._errors import to_http_error
from app.scheduling.domain.instances_service import InstanceService
from app.scheduling.schemas import dto

router = APIRouter(tags=["scheduling:instances"])
_service = InstanceService()


@router.get("/series/{series_id}/instances/at", response_model=dto.InstanceResponse)
async def instance_at_date_endpoint(
	series_id: UUID,
	day: date = Query(..., alias="date"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InstanceResponse:
	try:
		return await _service.get_instance_at_date(auth_user, series_id, day)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/instances", response_model=dto.InstanceListResponse)
async def list_club_instances_endpoint(
	club_id: UUID,
	from_date: datetime = Query(..., alias="from"),
	to_date: datetime = Query(..., alias="to"),
	limit: int = 50,
	after: str | None = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InstanceListResponse:
	try:
		return await _service.list_instances_for_club(
			auth_user,
			club_id,
			from_date=from_date,
			to_date=to_date,
			limit=limit,
			after=after,
		)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/me/instances", response_model=dto.InstanceListResponse)
async def list_my_instances_endpoint(
	from_date: datetime = Query(..., alias="from"),
	to_date: datetime = Query(..., alias="to"),
	limit: int = 50,
	after: str | None = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InstanceListResponse:
	try:
		return await _service.list_my_instances(
			auth_user,
			from_date=from_date,
			to_date=to_date,
			limit=limit,
			after=after,
		)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/instances/{instance_id}", response_model=dto.InstanceResponse)
async def get_instance_endpoint(
	instance_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InstanceResponse:
	try:
		return await _service.get_instance(auth_user, instance_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.delete(
	"/instances/{instance_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_instance_endpoint(
	instance_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.delete_instance(auth_user, instance_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/instances/{instance_id}/schedule-statuses", response_model=dto.ScheduleStatusesResponse)
async def schedule_statuses_endpoint(
	instance_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ScheduleStatusesResponse:
	try:
		return await _service.get_schedule_statuses(auth_user, instance_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/instances/{instance_id}/timeslots/{timeslot_id}/join", response_model=dto.JoinResponse)
async def join_timeslot_endpoint(
	instance_id: UUID,
	timeslot_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinResponse:
	try:
		return await _service.join_timeslot(auth_user, instance_id, timeslot_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/instances/{instance_id}/timeslots/{timeslot_id}/leave", response_model=dto.LeaveResponse)
async def leave_timeslot_endpoint(
	instance_id: UUID,
	timeslot_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.LeaveResponse:
	try:
		return await _service.leave_timeslot(auth_user, instance_id, timeslot_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc
