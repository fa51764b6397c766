"""Logging configuration for Staging_Ingestor."""

from __future__ import annotations

import logging
import sys
from threading import Lock
from typing import Any, Final

from .config import get_settings

# Structured fields rendered on every line, in order, as ``label=value``.
CONTEXT_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("queue", "queue"),
    ("job_id", "job_id"),
    ("job_type", "job_type"),
    ("upload_id", "upload_id"),
    ("status", "status"),
    ("duration_ms", "duration_ms"),
)

LOG_FORMAT: Final[str] = " | ".join(
    [
        "%(asctime)s",
        "%(levelname)s",
        "%(name)s",
        *(f"{label}=%({field})s" for field, label in CONTEXT_FIELDS),
        "%(message)s",
    ]
)

DEFAULT_CONTEXT: Final[dict[str, str]] = {field: "-" for field, _ in CONTEXT_FIELDS}

_LOG_CONFIGURED = False
_CONFIG_LOCK: Final = Lock()


class ContextualFormatter(logging.Formatter):
    """Formatter that fills structured context fields missing from a record."""

    def __init__(self, fmt: str = LOG_FORMAT, defaults: dict[str, str] | None = None) -> None:
        super().__init__(fmt)
        self._defaults = dict(DEFAULT_CONTEXT if defaults is None else defaults)

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        for key, value in self._defaults.items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return super().format(record)


def _configure_root_logger() -> None:
    """Attach the structured formatter to the root logger once per process."""

    global _LOG_CONFIGURED
    with _CONFIG_LOCK:
        if _LOG_CONFIGURED:
            return

        level = getattr(logging, get_settings().log_level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        formatter = ContextualFormatter()
        if root_logger.handlers:
            # Handlers installed by a host application (e.g. Celery) keep their streams.
            for handler in root_logger.handlers:
                handler.setFormatter(formatter)
        else:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)

        _LOG_CONFIGURED = True


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter carrying bound context; per-call extras win over it."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:  # type: ignore[override]
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> StructuredLoggerAdapter:
        """Return a new adapter with ``context`` added to the bound fields."""

        return StructuredLoggerAdapter(self.logger, {**(self.extra or {}), **context})


def setup_logger(
    name: str,
    *,
    level: str | None = None,
    context: dict[str, Any] | None = None,
) -> StructuredLoggerAdapter:
    """Return a logger configured with the global logging defaults.

    Args:
        name: Logger name to retrieve.
        level: Optional log level override (primarily for tests).
        context: Optional default structured context to include with every entry.
    """

    _configure_root_logger()
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO) if level else logging.NOTSET)
    return StructuredLoggerAdapter(logger, {**DEFAULT_CONTEXT, **(context or {})})


def log_job_attempt(
    logger: logging.Logger | logging.LoggerAdapter,
    *,
    queue: str,
    job_id: str,
    job_type: str,
    attempt: int,
    duration_ms: int,
    status: str,
    **extra_context: Any,
) -> None:
    """
    Log a job attempt with structured context.

    Completed attempts log at INFO, retried and failed attempts at ERROR.

    Args:
        logger: Logger instance
        queue: Queue the job was taken from
        job_id: Job identifier
        job_type: Registered job type name
        attempt: 1-based attempt number
        duration_ms: Attempt duration in milliseconds
        status: Outcome (completed, retrying, failed)
        **extra_context: Additional context appended to the message
    """
    upload_id = extra_context.pop("upload_id", None)
    structured_context: dict[str, Any] = {
        "queue": queue,
        "job_id": job_id,
        "job_type": job_type,
        "upload_id": "-" if upload_id is None else upload_id,
        "duration_ms": duration_ms,
        "status": status,
    }
    message = f"Job attempt {attempt} {status}"
    if extra_context:
        message = f"{message} | context={extra_context}"

    log_method = logger.info if status == "completed" else logger.error
    log_method(message, extra=structured_context)
