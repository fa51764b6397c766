"""Retry and retention policy helpers for queued jobs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from ..utils.config import QueueSettings

if TYPE_CHECKING:
    from ..models.queue_job import QueueJob


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Exponential backoff: ``backoff_seconds * 2**n`` before retry ``n``, capped."""

    max_attempts: int
    backoff_seconds: float
    max_backoff_seconds: float

    def __post_init__(self) -> None:
        problems = []
        if self.max_attempts < 1:
            problems.append("max_attempts must be at least 1")
        if self.backoff_seconds <= 0:
            problems.append("backoff_seconds must be positive")
        if self.max_backoff_seconds < self.backoff_seconds:
            problems.append("max_backoff_seconds must not be below backoff_seconds")
        if problems:
            raise ValueError("; ".join(problems))

    @classmethod
    def of_job(cls, job: QueueJob) -> BackoffPolicy:
        """Rebuild the policy stored on a job record."""

        return cls(job.max_attempts, job.backoff_seconds, job.max_backoff_seconds)

    def has_attempts_left(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts

    def next_countdown(self, retry_number: int) -> int:
        """Seconds to wait before retry ``retry_number`` (0-based)."""

        return int(min(self.backoff_seconds * 2 ** max(retry_number, 0), self.max_backoff_seconds))

    def countdown_after(self, attempts_made: int) -> int:
        """Seconds to wait after the ``attempts_made``-th attempt failed."""

        return self.next_countdown(attempts_made - 1)

    def as_columns(self) -> dict[str, float]:
        """Column values for a ``queue_jobs`` record."""

        return asdict(self)


@dataclass(slots=True)
class JobOptions:
    """Per-job submission options."""

    backoff: BackoffPolicy
    delay_seconds: float = 0.0
    remove_on_complete: bool = True
    failed_retention_seconds: int = 2 * 24 * 3600
    job_id: str | None = field(default=None)

    def __post_init__(self) -> None:
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        if self.failed_retention_seconds < 0:
            raise ValueError("failed_retention_seconds must be non-negative")

    @classmethod
    def from_settings(
        cls,
        settings: QueueSettings,
        *,
        max_attempts: int | None = None,
        job_id: str | None = None,
    ) -> JobOptions:
        """Factory helper applying queue defaults with optional overrides."""

        return cls(
            backoff=BackoffPolicy(
                max_attempts=max_attempts if max_attempts is not None else settings.max_attempts,
                backoff_seconds=settings.backoff_seconds,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            delay_seconds=settings.initial_delay_seconds,
            remove_on_complete=settings.remove_on_complete,
            failed_retention_seconds=settings.failed_retention_seconds,
            job_id=job_id,
        )
