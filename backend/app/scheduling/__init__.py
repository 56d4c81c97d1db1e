"""Scheduling package integration helpers exposed to the application."""

from app.scheduling.api import router
from app.scheduling.workers.runner import build_dispatcher, start_dispatch

__all__ = ["router", "build_dispatcher", "start_dispatch"]
