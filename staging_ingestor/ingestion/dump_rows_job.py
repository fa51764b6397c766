"""Job handler that streams an uploaded file into the staging table."""

from __future__ import annotations

import io
from typing import Any

from ..exceptions import UploadNotFoundError, ValidationError
from ..models.base import Database
from ..parsers import CountingReader, find_parser
from ..schemas.registry import GENERIC_SCHEMA, SchemaDescriptor, SchemaRegistry
from ..storage.object_store import ObjectStore
from ..tasks.worker import FailureContext, JobContext
from ..utils.logging import setup_logger
from .batch_writer import BatchWriter
from .lifecycle import ClaimedUpload, UploadLifecycle
from .progress import DEFAULT_MIN_INTERVAL_SECONDS, ProgressTracker

CREATE_DUMP_TABLE_JOB = "create-dump-table"

PARSE_START_PERCENT = 30.0
PARSE_END_PERCENT = 90.0

MILESTONES: tuple[tuple[str, float], ...] = (
    ("file-found", 10),
    ("file-ready", 20),
    ("parsing-started", PARSE_START_PERCENT),
    ("rows-processed", PARSE_END_PERCENT),
    ("finalizing", 95),
)

logger = setup_logger(__name__, context={"job_type": CREATE_DUMP_TABLE_JOB})


class CreateDumpTableJob:
    """
    Ingests one upload: claim, stream rows into staging, verify, complete.

    Files whose type has no row parser stage a single metadata row so that
    the staged count still equals the reported count.
    """

    job_type = CREATE_DUMP_TABLE_JOB

    def __init__(
        self,
        database: Database,
        object_store: ObjectStore,
        schemas: SchemaRegistry,
        *,
        batch_size: int = 10_000,
        progress_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
    ):
        self._database = database
        self._store = object_store
        self._schemas = schemas
        self._lifecycle = UploadLifecycle(database)
        self.batch_size = batch_size
        self.progress_interval = progress_interval

    @staticmethod
    def _upload_id(payload: dict[str, Any]) -> int:
        try:
            return int(payload["upload_id"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Job payload has no valid upload_id: {payload!r}") from None

    def execute(self, payload: dict[str, Any], context: JobContext) -> dict[str, Any]:
        upload_id = self._upload_id(payload)
        tracker = ProgressTracker(context.report_progress, min_interval=self.progress_interval)
        for name, percent in MILESTONES:
            tracker.add_milestone(name, percent)

        tracker.update("Starting file processing")
        upload = self._lifecycle.claim(upload_id, context.job_id)
        tracker.reach_milestone("file-found")

        descriptor = self._schemas.resolve(upload.schema_name)
        request_schema = upload.schema_name or upload.file_type or GENERIC_SCHEMA
        if not upload.storage_key:
            raise ValidationError(f"Upload {upload_id} has no storage key")

        parser_cls = find_parser(upload.file_type)
        if parser_cls is None:
            rows_read = self._stage_metadata_row(upload, request_schema)
            warning_count = 0
            tracker.reach_milestone("rows-processed")
        else:
            writer = BatchWriter(
                self._database,
                upload_id=upload_id,
                request_schema=request_schema,
                descriptor=descriptor,
            )
            parser = parser_cls(
                descriptor.date_fields,
                descriptor.expected_headers,
                batch_size=self.batch_size,
            )
            body = self._store.get(upload.storage_key)
            tracker.reach_milestone("file-ready")
            try:
                reader = CountingReader(body.stream, body.size)
                stream = io.BufferedReader(reader)
                tracker.reach_milestone("parsing-started")
                for batch in parser.iter_batches(stream):
                    writer.write(batch)
                    fraction = reader.fraction or 0.0
                    tracker.set_progress(
                        PARSE_START_PERCENT + (PARSE_END_PERCENT - PARSE_START_PERCENT) * fraction
                    )
                    tracker.update(
                        f"Processed {writer.batches_written} batches ({writer.rows_written} rows)"
                    )
            finally:
                body.close()
            rows_read = parser.rows_read
            warning_count = parser.warning_count
            tracker.reach_milestone("rows-processed")

        tracker.reach_milestone("finalizing")
        self._lifecycle.complete(upload_id, rows_read)
        tracker.complete(f"Successfully processed {rows_read} rows")

        logger.info(
            "Successfully processed %s rows",
            rows_read,
            extra={"upload_id": upload_id, "job_id": context.job_id, "status": "completed"},
        )
        return {
            "success": True,
            "upload_id": upload_id,
            "total_rows_processed": rows_read,
            "warnings": warning_count,
            "message": f"Processed and inserted {rows_read} rows",
        }

    def _stage_metadata_row(self, upload: ClaimedUpload, request_schema: str) -> int:
        writer = BatchWriter(
            self._database,
            upload_id=upload.id,
            request_schema=request_schema,
            descriptor=SchemaDescriptor(name=GENERIC_SCHEMA),
        )
        writer.write(
            [
                {
                    "file_name": upload.filename,
                    "storage_key": upload.storage_key,
                    "storage_location": upload.storage_location,
                    "row_num": 1,
                }
            ]
        )
        return 1

    def on_failure(self, payload: dict[str, Any], failure: FailureContext) -> None:
        """Reset the upload for another attempt, or fail it once attempts are spent."""

        if isinstance(failure.error, UploadNotFoundError):
            # Another attempt owns the upload (or it never existed); leave it alone.
            logger.warning(
                "Upload not claimable; status left unchanged",
                extra={"job_id": failure.job_id, "status": "skipped"},
            )
            return

        try:
            upload_id = self._upload_id(payload)
        except ValidationError:
            logger.error("Cannot update upload for malformed payload", extra={"job_id": failure.job_id})
            return

        if failure.will_retry:
            logger.warning(
                "Attempt %s/%s failed; upload reset for retry: %s",
                failure.attempt,
                failure.max_attempts,
                failure.report.message,
                extra={"upload_id": upload_id, "job_id": failure.job_id, "status": "retrying"},
            )
            self._lifecycle.release_for_retry(upload_id)
        else:
            self._lifecycle.mark_failed(
                upload_id, f"{failure.queue_name} job failed: {failure.report.message}"
            )
