"""Custom exceptions for Staging_Ingestor."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:  # pragma: no cover - type checking only
    from staging_ingestor.tasks.error_handling import JobErrorReport


class StagingIngestorError(Exception):
    """Base exception for all Staging_Ingestor errors."""

    pass


class ValidationError(StagingIngestorError):
    """Raised when an upload or its contents fail validation."""

    pass


class MissingHeadersError(ValidationError):
    """Raised when a file lacks headers required by its schema."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing headers: {', '.join(self.missing)}")


class UnsupportedFileTypeError(ValidationError):
    """Raised when an uploaded file type is not allowed for its schema."""

    pass


class DuplicateUploadError(ValidationError):
    """Raised when a file with the same name and schema was already uploaded."""

    pass


class ConfigurationError(StagingIngestorError):
    """Raised when configuration is invalid or missing."""

    pass


class SchemaNotConfiguredError(ConfigurationError):
    """Raised when a schema requires a field mapping that is not configured."""

    def __init__(self, schema_name: str | None) -> None:
        self.schema_name = schema_name
        super().__init__(
            f"No field mapping configured for schema '{schema_name or '-'}' in strict mode"
        )


class ParseError(StagingIngestorError):
    """Raised when a source file cannot be read or parsed."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class StorageError(StagingIngestorError):
    """Raised when the object store cannot serve or accept a file."""

    pass


class UploadNotFoundError(StagingIngestorError):
    """Raised when an upload cannot be claimed for ingestion."""

    def __init__(self, upload_id: int) -> None:
        self.upload_id = upload_id
        super().__init__(f"cannot find pending file upload with id: {upload_id}")


class CountMismatchError(StagingIngestorError):
    """Raised when staged rows do not match the rows read from the source file."""

    def __init__(self, upload_id: int, parsed_rows: int, staged_rows: int) -> None:
        self.upload_id = upload_id
        self.parsed_rows = parsed_rows
        self.staged_rows = staged_rows
        super().__init__(
            f"rows in uploaded file ({parsed_rows}) and staging_rows table "
            f"({staged_rows}) do not match for upload {upload_id}"
        )


class UnknownJobTypeError(StagingIngestorError):
    """Raised when a queued job references an unregistered job type."""

    def __init__(self, job_type: str, available: Sequence[str] = ()) -> None:
        self.job_type = job_type
        available_display = ", ".join(sorted(available)) if available else "none"
        super().__init__(
            f"Job type '{job_type}' is not registered. Available job types: {available_display}."
        )


class QueueError(StagingIngestorError):
    """Raised when a job cannot be submitted to or dispatched by the queue."""

    pass


class JobExecutionError(StagingIngestorError):
    """Raised when a job attempt fails after structured reporting."""

    def __init__(
        self,
        report: JobErrorReport,
        *,
        original_error: Exception | None = None,
        will_retry: bool = False,
    ) -> None:
        super().__init__(report.message)
        self.report = report
        self.original_error = original_error
        self.will_retry = will_retry

    def as_dict(self) -> dict[str, Any]:
        """Return a serializable representation of the job error for logging/tests."""

        return {
            "message": self.report.message,
            "error_type": self.report.error_type,
            "classification": self.report.classification,
            "retryable": self.report.retryable,
            "will_retry": self.will_retry,
        }
