"""Prometheus metrics definitions for Staging_Ingestor."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

JOBS_ENQUEUED = Counter(
    "staging_jobs_enqueued_total",
    "Total jobs submitted to a queue by job type.",
    labelnames=("queue", "job_type"),
)

JOB_ATTEMPTS = Counter(
    "staging_job_attempts_total",
    "Total job attempts by job type and outcome.",
    labelnames=("job_type", "outcome"),
)

JOB_RETRIES = Counter(
    "staging_job_retries_total",
    "Total job attempts rescheduled for retry.",
    labelnames=("job_type",),
)

JOB_ERRORS = Counter(
    "staging_job_errors_total",
    "Total failed job attempts grouped by error classification.",
    labelnames=("classification",),
)

JOB_DURATION = Histogram(
    "staging_job_duration_seconds",
    "Distribution of job attempt durations in seconds.",
    labelnames=("job_type",),
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600, 1800),
)

ROWS_STAGED = Counter(
    "staging_rows_staged_total",
    "Total rows written to the staging table by schema.",
    labelnames=("schema",),
)

UPLOAD_TRANSITIONS = Counter(
    "staging_upload_transitions_total",
    "Total upload status transitions by target status.",
    labelnames=("status",),
)

QUEUE_JOBS = Gauge(
    "staging_queue_jobs",
    "Retained jobs per queue and state at the last scrape.",
    labelnames=("queue", "state"),
)

QUEUE_HEALTH = Gauge(
    "staging_queue_health_score",
    "Derived 0-100 queue health score at the last scrape.",
    labelnames=("queue",),
)


def record_job_enqueued(queue: str, job_type: str) -> None:
    """Increment the enqueued jobs counter."""

    JOBS_ENQUEUED.labels(queue=queue, job_type=job_type).inc()


def record_job_attempt(job_type: str, outcome: str) -> None:
    """Increment the job attempts counter with the supplied labels."""

    JOB_ATTEMPTS.labels(job_type=job_type, outcome=outcome).inc()


def record_job_retry(job_type: str) -> None:
    JOB_RETRIES.labels(job_type=job_type).inc()


def record_job_error(classification: str) -> None:
    """Increment the job errors counter for the provided classification."""

    JOB_ERRORS.labels(classification=classification).inc()


def observe_job_duration(job_type: str, duration_seconds: float) -> None:
    """Record a job attempt duration in seconds."""

    JOB_DURATION.labels(job_type=job_type).observe(max(duration_seconds, 0.0))


def record_rows_staged(schema: str, count: int) -> None:
    """
    Record rows written to the staging table.

    Args:
        schema: Schema the rows were staged under
        count: Number of rows in the written batch
    """
    ROWS_STAGED.labels(schema=schema).inc(max(count, 0))


def record_upload_transition(status: str) -> None:
    UPLOAD_TRANSITIONS.labels(status=status).inc()


def set_queue_gauges(queue: str, job_counts: dict[str, int], health: float) -> None:
    """Publish the latest job counts and health score of ``queue``."""

    for state, count in job_counts.items():
        QUEUE_JOBS.labels(queue=queue, state=state).set(count)
    QUEUE_HEALTH.labels(queue=queue).set(health)
