"""Queue monitoring endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...runtime import Runtime
from ...tasks.monitor import QueueMonitor
from ..dependencies import get_queue_monitor, get_runtime, monitored_queues, require_api_key

router = APIRouter(dependencies=[Depends(require_api_key)])


class CleanupRequest(BaseModel):
    """Optional age thresholds for a cleanup pass."""

    completed_age_seconds: int | None = Field(default=None, ge=0)
    failed_age_seconds: int | None = Field(default=None, ge=0)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/queues")
def list_queue_health(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Health of every monitored queue."""

    queues = [
        runtime.monitor_for(name).get_queue_health().model_dump()
        for name in monitored_queues(runtime)
    ]
    return {"timestamp": _now(), "queue_count": len(queues), "queues": queues}


@router.get("/queues/{queue_name}")
def queue_details(
    queue_name: str,
    monitor: QueueMonitor = Depends(get_queue_monitor),
) -> dict[str, Any]:
    """Health, job statistics and active jobs of one queue."""

    return {
        "queue": queue_name,
        "health": monitor.get_queue_health().model_dump(),
        "stats": monitor.get_job_stats().model_dump(),
        "active_jobs": [job.model_dump() for job in monitor.get_active_jobs()],
    }


@router.get("/queues/{queue_name}/failed")
def failed_jobs(
    queue_name: str,
    limit: int = Query(default=10, ge=1, le=500),
    monitor: QueueMonitor = Depends(get_queue_monitor),
) -> dict[str, Any]:
    """Most recent failed jobs of one queue."""

    jobs = monitor.get_failed_jobs(limit)
    return {
        "queue": queue_name,
        "failed_jobs": [job.model_dump() for job in jobs],
        "count": len(jobs),
    }


@router.post("/queues/{queue_name}/cleanup", dependencies=[Depends(get_queue_monitor)])
def cleanup_queue(
    queue_name: str,
    request: CleanupRequest | None = None,
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    """Purge old completed and failed jobs, and failed jobs past their retention."""

    request = request or CleanupRequest()
    result = runtime.cleanup_queue(
        completed_age_seconds=request.completed_age_seconds,
        failed_age_seconds=request.failed_age_seconds,
    )
    return {"queue": queue_name, "cleaned": result.model_dump(), "timestamp": _now()}
