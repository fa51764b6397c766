"""Tests for structured logging helpers."""

from __future__ import annotations

import logging

import pytest

from staging_ingestor.utils.logging import (
    ContextualFormatter,
    LOG_FORMAT,
    log_job_attempt,
    setup_logger,
)


def test_log_format_lists_structured_fields() -> None:
    assert "queue=%(queue)s" in LOG_FORMAT
    assert "upload_id=%(upload_id)s" in LOG_FORMAT
    assert LOG_FORMAT.endswith("%(message)s")


def test_formatter_fills_missing_context() -> None:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    record.job_id = "job-1"

    line = ContextualFormatter().format(record)

    assert "job_id=job-1" in line
    assert "queue=-" in line
    assert line.endswith("hello")


def test_bind_adds_context_and_call_extras_win(caplog: pytest.LogCaptureFixture) -> None:
    logger = setup_logger("tests.logging.bind", context={"job_type": "Test"}).bind(queue="q1")

    with caplog.at_level(logging.INFO, logger="tests.logging.bind"):
        logger.info("first")
        logger.info("second", extra={"queue": "q2", "upload_id": 7})

    first, second = caplog.records
    assert (first.queue, first.job_type, first.upload_id) == ("q1", "Test", "-")
    assert (second.queue, second.upload_id) == ("q2", 7)


def test_log_job_attempt_levels(caplog: pytest.LogCaptureFixture) -> None:
    logger = setup_logger("tests.logging.attempts")

    with caplog.at_level(logging.INFO, logger="tests.logging.attempts"):
        log_job_attempt(
            logger, queue="q", job_id="j", job_type="t", attempt=1, duration_ms=12,
            status="completed", upload_id=3,
        )
        log_job_attempt(
            logger, queue="q", job_id="j", job_type="t", attempt=2, duration_ms=5,
            status="retrying", countdown=10,
        )

    done, retry = caplog.records
    assert done.levelno == logging.INFO
    assert done.upload_id == 3
    assert done.getMessage() == "Job attempt 1 completed"
    assert retry.levelno == logging.ERROR
    assert retry.upload_id == "-"
    assert retry.getMessage() == "Job attempt 2 retrying | context={'countdown': 10}"
