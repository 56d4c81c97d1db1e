"""Global error handlers; every JSON error body carries the request id."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.request_id import get_request_id
from app.scheduling.domain.exceptions import SchedulingError

_LOG = logging.getLogger(__name__)


def _error_body(request: Request, detail: object, **extra: object) -> dict[str, object]:
    return {"detail": detail, **extra, "request_id": get_request_id(request)}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content=_error_body(request, "validation_error", errors=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(SchedulingError)
    async def scheduling_exc_handler(request: Request, exc: SchedulingError):  # type: ignore[override]
        # Endpoints translate domain errors themselves; this covers dependencies and middleware.
        _LOG.warning("scheduling.error.unhandled", extra={"detail": exc.detail, "status": exc.status_code})
        return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.detail))
