"""FastAPI application entrypoint for the board automation service."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskboard.api.deps import require_automation_secret
from taskboard.api.router import api_router
from taskboard.core.config import settings
from taskboard.jobs.schedule_registry import ensure_schedules
from taskboard.services.task_queue import task_queue


@asynccontextmanager
async def _lifespan(_: FastAPI):
    """Register scheduled jobs on startup."""
    ensure_schedules()
    yield


app = FastAPI(title=settings.app_name, lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health", tags=["internal"])
@app.get(f"{settings.api_prefix}/health", tags=["internal"])
async def health() -> dict[str, Any]:
    return {"status": "ok"}


@app.get(f"{settings.api_prefix}/ops/queues", tags=["ops"], dependencies=[Depends(require_automation_secret)])
async def queue_health() -> dict[str, Any]:
    """Queue and worker state for operators; guarded by the automation secret."""
    return task_queue.snapshot()
