"""End-to-end tests of the create-dump-table job through the worker."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from staging_ingestor.exceptions import JobExecutionError, QueueError, StorageError
from staging_ingestor.ingestion.lifecycle import UploadLifecycle
from staging_ingestor.models.base import Database
from staging_ingestor.models.file_upload import UploadStatus
from staging_ingestor.models.queue_job import JobState
from staging_ingestor.models.repository import FileUploadRepository, StagingRowRepository
from staging_ingestor.runtime import Runtime
from staging_ingestor.storage.object_store import LocalObjectStore, ObjectBody, StoredObject

BSC200_CSV = (
    b"BrCode,Scheme_Code,Min_Amount,Reg_Date,Extra\n"
    b"B001,S1,100,25/12/2024,x\n"
    b"B002,S2,200,2024-12-25,y\n"
    b"B003,S3,300,25-12-2024,z\n"
)


class FlakyStore:
    """Object store whose reads fail a fixed number of times."""

    def __init__(self, inner: LocalObjectStore, failures: int):
        self._inner = inner
        self.failures = failures
        self.reads = 0

    def put(self, key: str, data: bytes) -> StoredObject:
        return self._inner.put(key, data)

    def get(self, key: str) -> ObjectBody:
        self.reads += 1
        if self.reads <= self.failures:
            raise StorageError("object store unavailable")
        return self._inner.get(key)


def _upload(database: Database, upload_id: int):
    with database.session_scope() as session:
        return FileUploadRepository(session).get(upload_id)


def _staged(database: Database, upload_id: int):
    with database.session_scope() as session:
        return StagingRowRepository(session).list_for_upload(upload_id)


def test_csv_upload_is_staged_and_completed(runtime: Runtime, dispatcher, database: Database) -> None:
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, queue, countdown),) = dispatcher.pop_all()
    assert (queue, countdown) == ("create-dump-table-queue", 0)

    result = runtime.worker.process(job_id)

    assert result["success"] is True
    assert result["total_rows_processed"] == 3
    assert _upload(database, upload.id).status == UploadStatus.COMPLETED.value

    rows = _staged(database, upload.id)
    assert [row.row_num for row in rows] == [1, 2, 3]
    assert {row.request_schema for row in rows} == {"BSC200"}
    assert [row.mapped_data["reg_date"] for row in rows] == ["2024-12-25"] * 3
    assert rows[0].mapped_data["broker_code"] == "B001"
    assert rows[0].raw_data["extra"] == "x"

    # Completed jobs are removed by default.
    assert runtime.queue.get(job_id) is None


def test_completed_job_keeps_final_progress_when_retained(
    make_runtime: Callable[..., Runtime], dispatcher
) -> None:
    runtime = make_runtime(remove_on_complete=False)
    runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, _, _),) = dispatcher.pop_all()

    runtime.worker.process(job_id)

    job = runtime.queue.get(job_id)
    assert job.state == JobState.COMPLETED.value
    assert job.progress["percentage"] == 100
    assert job.result["total_rows_processed"] == 3


def test_batches_are_written_per_batch_size(
    make_runtime: Callable[..., Runtime], dispatcher, database: Database
) -> None:
    runtime = make_runtime(batch_size=2)
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, _, _),) = dispatcher.pop_all()

    runtime.worker.process(job_id)

    assert len(_staged(database, upload.id)) == 3


def test_missing_headers_fail_the_upload(runtime: Runtime, drain, database: Database) -> None:
    upload = runtime.uploads.register("a.csv", b"brcode,scheme_code\nB001,S1\n", "BSC200")

    (error,) = drain(runtime)

    assert error.will_retry is False
    assert error.report.classification == "validation"
    failed = _upload(database, upload.id)
    assert failed.status == UploadStatus.FAILED.value
    assert failed.error_message == (
        "create-dump-table-queue job failed: Missing headers: min_amount, reg_date"
    )
    assert _staged(database, upload.id) == []


def test_strict_unknown_schema_fails_after_claim(
    make_runtime: Callable[..., Runtime], drain, database: Database
) -> None:
    runtime = make_runtime(strict_schemas=True)
    upload = runtime.uploads.register("a.csv", b"id\n1\n", "UNKNOWN")

    (error,) = drain(runtime)

    assert error.report.classification == "configuration"
    failed = _upload(database, upload.id)
    assert failed.status == UploadStatus.FAILED.value
    assert "UNKNOWN" in failed.error_message


def test_count_mismatch_fails_the_upload(runtime: Runtime, dispatcher, drain, database: Database) -> None:
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    with database.session_scope() as session:
        StagingRowRepository(session).bulk_insert_ignore(
            [{"status": "pending", "request_id": upload.id, "request_schema": "LEGACY", "row_num": 1}]
        )

    (error,) = drain(runtime)

    assert error.report.classification == "count_mismatch"
    assert error.will_retry is False
    failed = _upload(database, upload.id)
    assert failed.status == UploadStatus.FAILED.value
    assert "(3)" in failed.error_message and "(4)" in failed.error_message


def test_redelivery_after_completion_is_a_no_op(runtime: Runtime, dispatcher, database: Database) -> None:
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, _, _),) = dispatcher.pop_all()

    runtime.worker.process(job_id)

    assert runtime.worker.process(job_id) is None
    assert len(_staged(database, upload.id)) == 3
    assert _upload(database, upload.id).status == UploadStatus.COMPLETED.value


def test_dbf_upload_stages_single_metadata_row(runtime: Runtime, drain, database: Database) -> None:
    upload = runtime.uploads.register("legacy.dbf", b"\x03binary-dbf-content")

    assert drain(runtime) == []

    (row,) = _staged(database, upload.id)
    assert row.row_num == 1
    assert row.request_schema == "dbf"
    assert row.raw_data["file_name"] == "legacy.dbf"
    assert row.raw_data["storage_key"] == upload.storage_key
    assert _upload(database, upload.id).status == UploadStatus.COMPLETED.value


def test_transient_storage_failure_is_retried_with_backoff(
    make_runtime: Callable[..., Runtime],
    object_store: LocalObjectStore,
    dispatcher,
    database: Database,
) -> None:
    store = FlakyStore(object_store, failures=1)
    runtime = make_runtime(object_store_override=store, max_attempts=3)
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, _, _),) = dispatcher.pop_all()

    with pytest.raises(JobExecutionError) as excinfo:
        runtime.worker.process(job_id)

    assert excinfo.value.will_retry is True
    assert _upload(database, upload.id).status == UploadStatus.PENDING.value
    assert dispatcher.pop_all() == [(job_id, "create-dump-table-queue", 5)]
    assert runtime.queue.get(job_id).state == JobState.DELAYED.value

    runtime.worker.process(job_id)

    assert _upload(database, upload.id).status == UploadStatus.COMPLETED.value
    assert len(_staged(database, upload.id)) == 3


def test_exhausted_retries_fail_the_upload(
    make_runtime: Callable[..., Runtime],
    object_store: LocalObjectStore,
    dispatcher,
    drain,
    database: Database,
) -> None:
    runtime = make_runtime(object_store_override=FlakyStore(object_store, failures=10), max_attempts=3)
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    job_id = dispatcher.dispatched[0][0]

    errors = drain(runtime)

    assert [error.will_retry for error in errors] == [True, True, False]
    job = runtime.queue.get(job_id)
    assert job.state == JobState.FAILED.value
    assert job.attempts_made == 3
    failed = _upload(database, upload.id)
    assert failed.status == UploadStatus.FAILED.value
    assert failed.error_message == "create-dump-table-queue job failed: object store unavailable"


def test_redelivery_after_worker_crash_resumes_the_upload(
    runtime: Runtime, dispatcher, database: Database
) -> None:
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, _, _),) = dispatcher.pop_all()

    # A worker claims job and upload, then dies before settling either.
    assert runtime.queue.claim(job_id) is not None
    UploadLifecycle(database).claim(upload.id, job_id)
    assert _upload(database, upload.id).status == UploadStatus.PROCESSING.value

    result = runtime.worker.process(job_id)

    assert result["total_rows_processed"] == 3
    settled = _upload(database, upload.id)
    assert (settled.status, settled.is_processing, settled.claimed_by_job) == (
        UploadStatus.COMPLETED.value,
        False,
        None,
    )
    assert len(_staged(database, upload.id)) == 3


def test_failed_retry_dispatch_fails_job_and_upload(
    make_runtime: Callable[..., Runtime],
    object_store: LocalObjectStore,
    dispatcher,
    database: Database,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    runtime = make_runtime(object_store_override=FlakyStore(object_store, failures=1), max_attempts=3)
    upload = runtime.uploads.register("a.csv", BSC200_CSV, "BSC200")
    ((job_id, _, _),) = dispatcher.pop_all()

    def broker_down(job_id: str, *, queue: str, countdown: float = 0) -> None:
        raise QueueError(f"Failed to publish job {job_id} to queue '{queue}': connection refused")

    monkeypatch.setattr(dispatcher, "dispatch", broker_down)

    with pytest.raises(JobExecutionError) as excinfo:
        runtime.worker.process(job_id)

    assert excinfo.value.will_retry is False
    job = runtime.queue.get(job_id)
    assert job.state == JobState.FAILED.value
    assert "connection refused" in job.error_details["details"]["retry_dispatch_error"]
    failed = _upload(database, upload.id)
    assert (failed.status, failed.is_processing) == (UploadStatus.FAILED.value, False)
    assert failed.error_message == "create-dump-table-queue job failed: object store unavailable"
