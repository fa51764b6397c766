"""Read-side queue health and job listings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..models.base import Database
from ..models.queue_job import JobState, QueueControl, QueueJob, as_utc
from ..schemas.queue import (
    ActiveJobInfo,
    CleanupResult,
    FailedJobInfo,
    JobCounts,
    JobStats,
    QueueHealth,
)
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"job_type": "QueueMonitor"})

DEFAULT_COMPLETED_AGE_SECONDS = 24 * 3600
DEFAULT_FAILED_AGE_SECONDS = 48 * 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def calculate_health(counts: JobCounts) -> float:
    """
    Derive a 0-100 health score from job counts.

    ``100 - 50 * failure_rate - 20 * min(pending / 100, 1)`` where
    ``failure_rate = failed / (active + completed + failed)`` and pending is
    waiting plus delayed. A queue that has never run a job scores 100.
    """
    total = counts.active + counts.completed + counts.failed
    if total == 0:
        return 100.0

    failure_rate = counts.failed / total
    overload = min((counts.waiting + counts.delayed) / 100, 1.0)
    health = 100 - failure_rate * 50 - overload * 20
    return max(0.0, min(100.0, health))


class QueueMonitor:
    """Aggregates job metadata for one queue; never touches upload state."""

    def __init__(self, database: Database, queue_name: str):
        self._database = database
        self.queue_name = queue_name
        self._logger = logger.bind(queue=queue_name)

    def get_job_counts(self) -> JobCounts:
        with self._database.session_scope() as session:
            rows = session.execute(
                select(QueueJob.state, func.count())
                .where(QueueJob.queue_name == self.queue_name)
                .group_by(QueueJob.state)
            ).all()
        counts = {state: int(total) for state, total in rows}
        return JobCounts(**{state.value: counts.get(state.value, 0) for state in JobState})

    def is_paused(self) -> bool:
        with self._database.session_scope() as session:
            control = session.get(QueueControl, self.queue_name)
            return bool(control and control.is_paused)

    def get_queue_health(self) -> QueueHealth:
        """Return job counts by state, pause status and the derived health score."""

        counts = self.get_job_counts()
        health = QueueHealth(
            queue=self.queue_name,
            timestamp=_utcnow().isoformat(),
            status="paused" if self.is_paused() else "active",
            job_counts=counts,
            total_pending=counts.waiting + counts.delayed,
            health=calculate_health(counts),
        )
        self._logger.info("Queue health %.1f", health.health, extra={"status": health.status})
        return health

    def get_job_stats(self) -> JobStats:
        counts = self.get_job_counts()
        with self._database.session_scope() as session:
            finished = session.execute(
                select(QueueJob.processed_at, QueueJob.finished_at).where(
                    QueueJob.queue_name == self.queue_name,
                    QueueJob.state == JobState.COMPLETED.value,
                )
            ).all()

        durations = [
            (as_utc(finished_at) - as_utc(processed_at)).total_seconds() * 1000
            for processed_at, finished_at in finished
            if processed_at is not None and finished_at is not None
        ]
        average = sum(durations) / len(durations) if durations else 0.0
        return JobStats(
            completed=counts.completed,
            failed=counts.failed,
            delayed=counts.delayed,
            average_job_duration_ms=average,
            timestamp=_utcnow().isoformat(),
        )

    def get_failed_jobs(self, limit: int = 10) -> list[FailedJobInfo]:
        """Return the most recently failed jobs, newest first."""

        with self._database.session_scope() as session:
            jobs = session.scalars(
                select(QueueJob)
                .where(
                    QueueJob.queue_name == self.queue_name,
                    QueueJob.state == JobState.FAILED.value,
                )
                .order_by(QueueJob.finished_at.desc(), QueueJob.created_at.desc())
                .limit(max(limit, 0))
            ).all()
        return [
            FailedJobInfo(
                id=job.id,
                name=job.job_type,
                failed_reason=job.failed_reason,
                failed_at=_isoformat(job.finished_at),
                attempts_made=job.attempts_made,
                data=dict(job.payload),
            )
            for job in jobs
        ]

    def get_active_jobs(self) -> list[ActiveJobInfo]:
        with self._database.session_scope() as session:
            jobs = session.scalars(
                select(QueueJob)
                .where(
                    QueueJob.queue_name == self.queue_name,
                    QueueJob.state == JobState.ACTIVE.value,
                )
                .order_by(QueueJob.processed_at)
            ).all()
        return [
            ActiveJobInfo(
                id=job.id,
                name=job.job_type,
                started_at=_isoformat(job.processed_at),
                attempts_made=job.attempts_made,
                progress=job.progress,
                data=dict(job.payload),
            )
            for job in jobs
        ]

    def cleanup(
        self,
        *,
        completed_age_seconds: int | None = None,
        failed_age_seconds: int | None = None,
    ) -> CleanupResult:
        """Delete completed and failed jobs that finished longer ago than the given ages."""

        if completed_age_seconds is None:
            completed_age_seconds = DEFAULT_COMPLETED_AGE_SECONDS
        if failed_age_seconds is None:
            failed_age_seconds = DEFAULT_FAILED_AGE_SECONDS

        now = _utcnow()
        with self._database.session_scope() as session:
            completed_removed = self._purge(
                session, JobState.COMPLETED, now - timedelta(seconds=completed_age_seconds)
            )
            failed_removed = self._purge(
                session, JobState.FAILED, now - timedelta(seconds=failed_age_seconds)
            )

        result = CleanupResult(completed_removed=completed_removed, failed_removed=failed_removed)
        self._logger.info(
            "Cleaned up queue: %s completed, %s failed removed", completed_removed, failed_removed
        )
        return result

    def _purge(self, session: Session, state: JobState, cutoff: datetime) -> int:
        result = session.execute(
            delete(QueueJob)
            .where(
                QueueJob.queue_name == self.queue_name,
                QueueJob.state == state.value,
                QueueJob.finished_at.is_not(None),
                QueueJob.finished_at <= cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)
