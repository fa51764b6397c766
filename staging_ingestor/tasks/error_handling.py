"""Failure classification for queued jobs.

Every failed attempt goes through :func:`build_error_report`, which decides
whether the job is retried. Rules are checked in order and the first match
wins, so subclasses must appear before their bases.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import DBAPIError, OperationalError

from ..exceptions import (
    ConfigurationError,
    CountMismatchError,
    ParseError,
    StagingIngestorError,
    StorageError,
    UnknownJobTypeError,
    UploadNotFoundError,
    ValidationError,
)

Retryable = bool | Callable[[Exception], bool]

CLASSIFICATION_RULES: tuple[tuple[type[BaseException], str, Retryable], ...] = (
    (UnknownJobTypeError, "unknown_job_type", False),
    (UploadNotFoundError, "upload_not_found", False),
    (CountMismatchError, "count_mismatch", False),
    (ConfigurationError, "configuration", False),
    (ValidationError, "validation", False),
    (ParseError, "parse", lambda exc: bool(getattr(exc, "retryable", False))),
    (StorageError, "storage", True),
    (OperationalError, "database", True),
    (DBAPIError, "database", lambda exc: bool(getattr(exc, "connection_invalidated", False))),
    (OSError, "transient_io", True),
    (StagingIngestorError, "application", False),
)


@dataclass(slots=True)
class JobErrorReport:
    """What went wrong in one attempt, and whether another attempt may help."""

    job_type: str
    job_id: str
    error_type: str
    message: str
    classification: str
    retryable: bool
    timestamp: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if not payload["details"]:
            del payload["details"]
        return payload


def classify_exception(exc: Exception) -> tuple[str, bool]:
    """Return ``(classification, retryable)`` for ``exc``.

    Exceptions matching no rule are treated as transient.
    """

    for exc_type, classification, retryable in CLASSIFICATION_RULES:
        if isinstance(exc, exc_type):
            return classification, retryable(exc) if callable(retryable) else retryable
    return "unexpected", True


def build_error_report(
    exc: Exception,
    *,
    job_type: str,
    job_id: str,
    retryable_override: bool | None = None,
    extra_details: dict[str, Any] | None = None,
) -> JobErrorReport:
    classification, retryable = classify_exception(exc)
    if retryable_override is not None:
        retryable = retryable_override

    return JobErrorReport(
        job_type=job_type,
        job_id=job_id,
        error_type=type(exc).__name__,
        message=str(exc) or type(exc).__name__,
        classification=classification,
        retryable=retryable,
        timestamp=datetime.now(timezone.utc).isoformat(),
        details={
            "args": [repr(arg) for arg in exc.args],
            "exception_module": type(exc).__module__,
            **(extra_details or {}),
        },
    )
