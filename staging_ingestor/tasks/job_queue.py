"""Durable job queue backed by the relational store.

Job records in ``queue_jobs`` are the source of truth for state, attempts and
retention. A :class:`JobDispatcher` only carries job ids to workers, so a lost
or duplicated transport message never changes what a job is allowed to do.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Protocol
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..exceptions import QueueError
from ..models.base import Database
from ..models.queue_job import JobState, QueueControl, QueueJob, as_utc
from ..monitoring.metrics import record_job_enqueued
from ..schemas.progress import ProgressSnapshot
from ..utils.logging import setup_logger
from .policies import JobOptions

logger = setup_logger(__name__, context={"job_type": "JobQueue"})

# Active jobs stay claimable so a message redelivered after a worker crash can resume them.
CLAIMABLE_STATES = (JobState.WAITING.value, JobState.DELAYED.value, JobState.ACTIVE.value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobDispatcher(Protocol):
    """Transport that delivers job ids to workers."""

    def dispatch(self, job_id: str, *, queue: str, countdown: float = 0) -> None: ...


class JobQueue:
    """Submit, claim and settle jobs on one named queue."""

    def __init__(self, database: Database, dispatcher: JobDispatcher, name: str):
        self._database = database
        self._dispatcher = dispatcher
        self.name = name
        self._logger = logger.bind(queue=name)

    def _is_paused(self, session: Session) -> bool:
        control = session.get(QueueControl, self.name)
        return bool(control and control.is_paused)

    def _dispatch(self, job_id: str, countdown: float = 0) -> None:
        try:
            self._dispatcher.dispatch(job_id, queue=self.name, countdown=countdown)
        except QueueError:
            self._logger.exception(
                "Failed to dispatch job",
                extra={"job_id": job_id, "status": "error"},
            )
            raise

    def enqueue(self, job_type: str, payload: dict[str, Any], options: JobOptions) -> str:
        """
        Durably submit a job and hand it to the transport.

        Args:
            job_type: Registered job type name
            payload: JSON-serializable job data
            options: Backoff, delay and retention options

        Returns:
            The job id. Submitting an id that already exists is a no-op.

        Raises:
            QueueError: If the transport rejects the job
        """
        job_id = options.job_id or uuid4().hex
        now = _utcnow()

        with self._database.session_scope() as session:
            if session.get(QueueJob, job_id) is not None:
                self._logger.info(
                    "Job already submitted; skipping",
                    extra={"job_id": job_id, "job_type": job_type},
                )
                return job_id

            if self._is_paused(session):
                state = JobState.PAUSED.value
            elif options.delay_seconds > 0:
                state = JobState.DELAYED.value
            else:
                state = JobState.WAITING.value

            session.add(
                QueueJob(
                    id=job_id,
                    queue_name=self.name,
                    job_type=job_type,
                    payload=dict(payload),
                    state=state,
                    attempts_made=0,
                    **options.backoff.as_columns(),
                    remove_on_complete=options.remove_on_complete,
                    failed_retention_seconds=options.failed_retention_seconds,
                    available_at=now + timedelta(seconds=options.delay_seconds),
                    created_at=now,
                )
            )

        record_job_enqueued(self.name, job_type)
        self._logger.info(
            "Job enqueued",
            extra={"job_id": job_id, "job_type": job_type, "status": state},
        )
        if state != JobState.PAUSED.value:
            self._dispatch(job_id, options.delay_seconds)
        return job_id

    def get(self, job_id: str) -> QueueJob | None:
        with self._database.session_scope() as session:
            return session.get(QueueJob, job_id)

    def claim(self, job_id: str) -> QueueJob | None:
        """
        Move a job to ``active`` and count the attempt.

        Returns None when the job is unknown, already settled, or the queue is
        paused (the job is then parked in ``paused`` until :meth:`resume`).
        """
        now = _utcnow()
        with self._database.session_scope() as session:
            if self._is_paused(session):
                session.execute(
                    update(QueueJob)
                    .where(
                        QueueJob.id == job_id,
                        QueueJob.state.in_([JobState.WAITING.value, JobState.DELAYED.value]),
                    )
                    .values(state=JobState.PAUSED.value)
                    .execution_options(synchronize_session=False)
                )
                return None

            result = session.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id, QueueJob.state.in_(CLAIMABLE_STATES))
                .values(
                    state=JobState.ACTIVE.value,
                    attempts_made=QueueJob.attempts_made + 1,
                    processed_at=now,
                    finished_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return session.get(QueueJob, job_id)

    def update_progress(self, job_id: str, snapshot: ProgressSnapshot) -> None:
        """Persist the latest progress snapshot of an active job."""

        with self._database.session_scope() as session:
            session.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id, QueueJob.state == JobState.ACTIVE.value)
                .values(progress=snapshot.model_dump(mode="json"))
                .execution_options(synchronize_session=False)
            )

    def mark_completed(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        """Settle a job as completed, discarding it when ``remove_on_complete`` is set."""

        with self._database.session_scope() as session:
            job = session.get(QueueJob, job_id)
            if job is None:
                return
            if job.remove_on_complete:
                session.delete(job)
                return
            job.state = JobState.COMPLETED.value
            job.result = result
            job.finished_at = _utcnow()

    def mark_failed(self, job_id: str, reason: str, details: dict[str, Any] | None = None) -> None:
        """Settle a job as permanently failed; it is retained for its retention window."""

        with self._database.session_scope() as session:
            session.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id)
                .values(
                    state=JobState.FAILED.value,
                    failed_reason=reason,
                    error_details=details,
                    finished_at=_utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

    def schedule_retry(
        self,
        job_id: str,
        countdown: float,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Put a failed attempt back on the queue after ``countdown`` seconds."""

        with self._database.session_scope() as session:
            paused = self._is_paused(session)
            session.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id)
                .values(
                    state=JobState.PAUSED.value if paused else JobState.DELAYED.value,
                    failed_reason=reason,
                    error_details=details,
                    available_at=_utcnow() + timedelta(seconds=countdown),
                )
                .execution_options(synchronize_session=False)
            )
        if not paused:
            self._dispatch(job_id, countdown)

    def is_paused(self) -> bool:
        with self._database.session_scope() as session:
            return self._is_paused(session)

    def pause(self) -> None:
        """Stop handing new jobs to workers; in-flight jobs finish normally."""

        with self._database.session_scope() as session:
            control = session.get(QueueControl, self.name)
            if control is None:
                session.add(QueueControl(queue_name=self.name, is_paused=True))
            else:
                control.is_paused = True
        self._logger.info("Queue paused", extra={"status": "paused"})

    def resume(self) -> int:
        """Unpause the queue and dispatch every parked job. Returns the number dispatched."""

        now = _utcnow()
        with self._database.session_scope() as session:
            control = session.get(QueueControl, self.name)
            if control is None:
                session.add(QueueControl(queue_name=self.name, is_paused=False))
            else:
                control.is_paused = False
            parked = session.scalars(
                select(QueueJob)
                .where(
                    QueueJob.queue_name == self.name,
                    QueueJob.state == JobState.PAUSED.value,
                )
                .order_by(QueueJob.created_at)
            ).all()
            schedule: list[tuple[str, float]] = []
            for job in parked:
                available_at = as_utc(job.available_at) or now
                countdown = max((available_at - now).total_seconds(), 0.0)
                job.state = JobState.DELAYED.value if countdown > 0 else JobState.WAITING.value
                schedule.append((job.id, countdown))

        for job_id, countdown in schedule:
            self._dispatch(job_id, countdown)
        self._logger.info(
            "Queue resumed; dispatched %s parked jobs",
            len(schedule),
            extra={"status": "active"},
        )
        return len(schedule)

    def prune_expired(self, now: datetime | None = None) -> int:
        """Delete failed jobs whose retention window has elapsed."""

        now = now or _utcnow()
        with self._database.session_scope() as session:
            failed = session.scalars(
                select(QueueJob).where(
                    QueueJob.queue_name == self.name,
                    QueueJob.state == JobState.FAILED.value,
                )
            ).all()
            expired = [
                job.id
                for job in failed
                if job.finished_at is not None
                and as_utc(job.finished_at) + timedelta(seconds=job.failed_retention_seconds)
                <= now
            ]
            if expired:
                session.execute(
                    delete(QueueJob)
                    .where(QueueJob.id.in_(expired))
                    .execution_options(synchronize_session=False)
                )
        if expired:
            self._logger.info("Pruned %s expired failed jobs", len(expired))
        return len(expired)
