"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.errors import install_error_handlers
from app.api.request_id import RequestIdMiddleware
from app.infra import postgres
from app.infra.redis import close_redis
from app.obs import init as obs_init
from app.scheduling import build_dispatcher, router as scheduling_router, start_dispatch
from app.scheduling.infra.scheduler import DispatchScheduler
from app.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: DispatchScheduler | None = None
	if settings.scheduling_workers_enabled:
		dispatcher = build_dispatcher()
		scheduler = start_dispatch(dispatcher)
		app.state.scheduling_dispatcher = dispatcher
		app.state.scheduling_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Rally Scheduling", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

# Ensure every request carries an X-Request-Id and make it available on request.state
app.add_middleware(RequestIdMiddleware)

app.include_router(scheduling_router)
