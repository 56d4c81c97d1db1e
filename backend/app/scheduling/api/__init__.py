"""FastAPI routers for the scheduling domain."""

from __future__ import annotations

from fastapi import APIRouter

from app.scheduling.api import instances, series

router = APIRouter(prefix="/api/scheduling/v1")

router.include_router(series.router)
router.include_router(instances.router)

__all__ = ["router"]
