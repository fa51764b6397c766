"""Job worker executing registered job handlers with retry bookkeeping."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any, NoReturn, Protocol

from celery import Celery, Task

from ..exceptions import JobExecutionError, QueueError, UnknownJobTypeError
from ..models.queue_job import QueueJob
from ..monitoring.metrics import (
    observe_job_duration,
    record_job_attempt,
    record_job_error,
    record_job_retry,
)
from ..schemas.progress import ProgressSnapshot
from ..utils.logging import log_job_attempt, setup_logger
from .celery_app import PROCESS_JOB_TASK
from .error_handling import JobErrorReport, build_error_report
from .job_queue import JobQueue
from .policies import BackoffPolicy

logger = setup_logger(__name__, context={"job_type": "JobWorker"})


@dataclass(slots=True)
class JobContext:
    """What a handler knows about the attempt it is running."""

    job_id: str
    queue_name: str
    attempt: int
    max_attempts: int
    report_progress: Callable[[ProgressSnapshot], None]


@dataclass(slots=True)
class FailureContext:
    """Passed to a handler's failure hook after every failed attempt."""

    job_id: str
    queue_name: str
    attempt: int
    max_attempts: int
    will_retry: bool
    report: JobErrorReport
    error: Exception


class JobHandler(Protocol):
    """Capability contract implemented by each job type."""

    job_type: str

    def execute(self, payload: dict[str, Any], context: JobContext) -> dict[str, Any] | None: ...

    def on_failure(self, payload: dict[str, Any], failure: FailureContext) -> None: ...


class JobRegistry:
    """Maps job type names to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, handler: JobHandler) -> None:
        self._handlers[handler.job_type] = handler

    def get(self, job_type: str) -> JobHandler:
        """
        Return the handler for ``job_type``.

        Raises:
            UnknownJobTypeError: If no handler is registered
        """
        try:
            return self._handlers[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type, list(self._handlers)) from None

    def names(self) -> list[str]:
        return sorted(self._handlers)


class JobWorker:
    """Runs one attempt of a queued job and settles its outcome."""

    def __init__(self, queue: JobQueue, registry: JobRegistry):
        self._queue = queue
        self._registry = registry
        self._logger = logger.bind(queue=queue.name)

    def process(self, job_id: str) -> dict[str, Any] | None:
        """
        Claim and execute ``job_id``.

        Returns the handler result, or None when the delivery was a no-op
        (job unknown, already settled, or queue paused).

        Raises:
            UnknownJobTypeError: If the job's type has no handler (job is failed)
            JobExecutionError: If the attempt failed (after retry bookkeeping)
        """
        job = self._queue.claim(job_id)
        if job is None:
            self._logger.info(
                "Job not claimable; ignoring delivery",
                extra={"job_id": job_id, "status": "skipped"},
            )
            return None

        started = perf_counter()
        try:
            handler = self._registry.get(job.job_type)
        except UnknownJobTypeError as exc:
            report = build_error_report(exc, job_type=job.job_type, job_id=job.id)
            self._queue.mark_failed(job.id, report.message, report.to_dict())
            self._record_outcome(job, "failed", started, report=report)
            raise

        context = JobContext(
            job_id=job.id,
            queue_name=job.queue_name,
            attempt=job.attempts_made,
            max_attempts=job.max_attempts,
            report_progress=lambda snapshot: self._queue.update_progress(job.id, snapshot),
        )
        payload = dict(job.payload)

        try:
            result = handler.execute(payload, context)
        except Exception as exc:
            self._handle_failure(job, handler, payload, exc, started)

        self._queue.mark_completed(job.id, result)
        self._record_outcome(job, "completed", started)
        return result

    def _handle_failure(
        self,
        job: QueueJob,
        handler: JobHandler,
        payload: dict[str, Any],
        exc: Exception,
        started: float,
    ) -> NoReturn:
        report = build_error_report(exc, job_type=job.job_type, job_id=job.id)
        policy = BackoffPolicy.of_job(job)
        will_retry = report.retryable and policy.has_attempts_left(job.attempts_made)

        if will_retry:
            countdown = policy.countdown_after(job.attempts_made)
            try:
                self._queue.schedule_retry(job.id, countdown, report.message, report.to_dict())
            except QueueError as dispatch_error:
                # The retry never reached the broker, so this attempt is the last.
                will_retry = False
                report.details["retry_dispatch_error"] = str(dispatch_error)
            else:
                record_job_retry(job.job_type)
                self._record_outcome(job, "retrying", started, report=report, countdown=countdown)
        if not will_retry:
            self._queue.mark_failed(job.id, report.message, report.to_dict())
            self._record_outcome(job, "failed", started, report=report)

        failure = FailureContext(
            job_id=job.id,
            queue_name=job.queue_name,
            attempt=job.attempts_made,
            max_attempts=job.max_attempts,
            will_retry=will_retry,
            report=report,
            error=exc,
        )
        try:
            handler.on_failure(payload, failure)
        except Exception:
            self._logger.exception(
                "Failure hook raised",
                extra={"job_id": job.id, "job_type": job.job_type},
            )

        raise JobExecutionError(report, original_error=exc, will_retry=will_retry) from exc

    def _record_outcome(
        self,
        job: QueueJob,
        outcome: str,
        started: float,
        *,
        report: JobErrorReport | None = None,
        **extra: Any,
    ) -> None:
        duration = perf_counter() - started
        record_job_attempt(job.job_type, outcome)
        observe_job_duration(job.job_type, duration)
        if report is not None:
            record_job_error(report.classification)
            extra.update(error=report.message, classification=report.classification)
        log_job_attempt(
            self._logger,
            queue=job.queue_name,
            job_id=job.id,
            job_type=job.job_type,
            attempt=job.attempts_made,
            duration_ms=int(duration * 1000),
            status=outcome,
            upload_id=job.payload.get("upload_id") if isinstance(job.payload, dict) else None,
            **extra,
        )


def register_process_task(app: Celery, get_worker: Callable[[], JobWorker]) -> Task:
    """Register the Celery task that hands delivered job ids to a worker."""

    @app.task(name=PROCESS_JOB_TASK)
    def process_job(job_id: str) -> dict[str, Any] | None:
        """Run one attempt of a queued job."""

        return get_worker().process(job_id)

    return process_job
