"""Pydantic schemas describing queue health and job listings."""

from typing import Any

from pydantic import BaseModel, Field


class JobCounts(BaseModel):
    """Number of jobs per state."""

    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    waiting: int = 0
    paused: int = 0


class QueueHealth(BaseModel):
    """Aggregate health of one queue."""

    queue: str = Field(..., description="Queue name")
    timestamp: str = Field(..., description="ISO format timestamp of the reading")
    status: str = Field(..., description="'active' or 'paused'")
    job_counts: JobCounts
    total_pending: int = Field(..., description="Waiting plus delayed jobs")
    health: float = Field(..., ge=0, le=100, description="Derived health score")


class JobStats(BaseModel):
    """Counts and duration statistics for retained jobs."""

    completed: int
    failed: int
    delayed: int
    average_job_duration_ms: float
    timestamp: str


class FailedJobInfo(BaseModel):
    """A retained failed job."""

    id: str
    name: str
    failed_reason: str | None
    failed_at: str | None
    attempts_made: int
    data: dict[str, Any]


class ActiveJobInfo(BaseModel):
    """A job currently held by a worker."""

    id: str
    name: str
    started_at: str | None
    attempts_made: int
    progress: dict[str, Any] | None
    data: dict[str, Any]


class CleanupResult(BaseModel):
    """Number of jobs purged by a cleanup pass."""

    completed_removed: int
    failed_removed: int
    expired_failed_removed: int = 0
