"""Event series API endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Header, Response

from app.infra.auth import AuthenticatedUser, get_current_user
from app.scheduling.api._errors import to_http_error
from app.scheduling.domain.series_service import SeriesService
from app.scheduling.schemas import dto

router = APIRouter(tags=["scheduling:series"])
_service = SeriesService()


@router.post("/clubs/{club_id}/series", response_model=dto.SeriesResponse, status_code=201)
async def create_series_endpoint(
	club_id: UUID,
	payload: dto.SeriesCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> dto.SeriesResponse:
	try:
		return await _service.create_series(auth_user, club_id, payload, idempotency_key=idempotency_key)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/series", response_model=dto.SeriesListResponse)
async def list_series_endpoint(
	club_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SeriesListResponse:
	try:
		return await _service.list_series(auth_user, club_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/series/{series_id}", response_model=dto.SeriesResponse)
async def get_series_endpoint(
	series_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SeriesResponse:
	try:
		return await _service.get_series(auth_user, series_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.patch("/series/{series_id}", response_model=dto.SeriesResponse)
async def update_series_endpoint(
	series_id: UUID,
	payload: dto.SeriesUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SeriesResponse:
	try:
		return await _service.update_series(auth_user, series_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.delete(
	"/series/{series_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_series_endpoint(
	series_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.delete_series(auth_user, series_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/series/{series_id}/activate", response_model=dto.ActivationResponse)
async def activate_series_endpoint(
	series_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ActivationResponse:
	try:
		return await _service.activate_series(auth_user, series_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/series/{series_id}/generate", response_model=dto.GenerationResponse)
async def generate_instances_endpoint(
	series_id: UUID,
	payload: dto.GenerateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.GenerationResponse:
	try:
		return await _service.generate_instances(auth_user, series_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/series/{series_id}/deactivation-status", response_model=dto.DeactivationStatusResponse)
async def deactivation_status_endpoint(
	series_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.DeactivationStatusResponse:
	try:
		return await _service.get_series_deactivation_status(auth_user, series_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc
