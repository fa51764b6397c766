"""SQLAlchemy models for durable job queue bookkeeping."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (SQLite drops tzinfo)."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class JobState(str, Enum):
    """States a queued job moves through."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


TERMINAL_STATES = frozenset({JobState.COMPLETED.value, JobState.FAILED.value})


class QueueJob(Base):
    """One durable, retryable unit of queued work."""

    __tablename__ = "queue_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    queue_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    job_type: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    backoff_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    max_backoff_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)
    remove_on_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    failed_retention_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    progress: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    result: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    available_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<QueueJob id={self.id} queue={self.queue_name} type={self.job_type} "
            f"state={self.state} attempts={self.attempts_made}/{self.max_attempts}>"
        )


class QueueControl(Base):
    """Per-queue control flags."""

    __tablename__ = "queue_controls"

    queue_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
