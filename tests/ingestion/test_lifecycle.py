"""Tests for upload status transitions."""

from __future__ import annotations

import pytest

from staging_ingestor.exceptions import CountMismatchError, UploadNotFoundError
from staging_ingestor.ingestion.batch_writer import BatchWriter
from staging_ingestor.ingestion.lifecycle import UploadLifecycle
from staging_ingestor.models.base import Database
from staging_ingestor.models.file_upload import UploadStatus
from staging_ingestor.models.repository import FileUploadCreate, FileUploadRepository
from staging_ingestor.schemas.registry import SchemaDescriptor


@pytest.fixture
def lifecycle(database: Database) -> UploadLifecycle:
    return UploadLifecycle(database)


@pytest.fixture
def upload_id(database: Database) -> int:
    with database.session_scope() as session:
        upload = FileUploadRepository(session).create(
            FileUploadCreate(
                filename="a.csv",
                file_type="csv",
                schema_name="BSC200",
                storage_key="bsc200/a.csv",
            )
        )
        return upload.id


def _status(database: Database, upload_id: int) -> tuple[str, bool, str | None]:
    with database.session_scope() as session:
        upload = FileUploadRepository(session).get(upload_id)
        return upload.status, upload.is_processing, upload.error_message


def _stage_rows(database: Database, upload_id: int, count: int) -> None:
    BatchWriter(
        database,
        upload_id=upload_id,
        request_schema="BSC200",
        descriptor=SchemaDescriptor(name="BSC200"),
    ).write([{"row_num": index} for index in range(1, count + 1)])


def test_claim_moves_pending_to_processing(database: Database, lifecycle: UploadLifecycle, upload_id: int) -> None:
    claimed = lifecycle.claim(upload_id)

    assert claimed.id == upload_id
    assert claimed.schema_name == "BSC200"
    assert claimed.storage_key == "bsc200/a.csv"
    assert _status(database, upload_id) == (UploadStatus.PROCESSING.value, True, None)


def test_second_claim_is_rejected(lifecycle: UploadLifecycle, upload_id: int) -> None:
    lifecycle.claim(upload_id)

    with pytest.raises(UploadNotFoundError, match=f"cannot find pending file upload with id: {upload_id}"):
        lifecycle.claim(upload_id)


def test_claim_unknown_upload(lifecycle: UploadLifecycle) -> None:
    with pytest.raises(UploadNotFoundError):
        lifecycle.claim(4242)


def test_complete_requires_matching_counts(database: Database, lifecycle: UploadLifecycle, upload_id: int) -> None:
    lifecycle.claim(upload_id)
    _stage_rows(database, upload_id, 3)

    with pytest.raises(CountMismatchError) as excinfo:
        lifecycle.complete(upload_id, 4)

    assert (excinfo.value.parsed_rows, excinfo.value.staged_rows) == (4, 3)
    assert _status(database, upload_id)[0] == UploadStatus.PROCESSING.value

    assert lifecycle.complete(upload_id, 3) == 3
    assert _status(database, upload_id) == (UploadStatus.COMPLETED.value, False, None)


def test_release_for_retry_returns_upload_to_pending(
    database: Database, lifecycle: UploadLifecycle, upload_id: int
) -> None:
    lifecycle.claim(upload_id)

    assert lifecycle.release_for_retry(upload_id) is True
    assert _status(database, upload_id) == (UploadStatus.PENDING.value, False, None)
    assert lifecycle.claim(upload_id).id == upload_id


def test_mark_failed_records_message(database: Database, lifecycle: UploadLifecycle, upload_id: int) -> None:
    lifecycle.claim(upload_id)

    assert lifecycle.mark_failed(upload_id, "create-dump-table-queue job failed: boom") is True
    assert _status(database, upload_id) == (
        UploadStatus.FAILED.value,
        False,
        "create-dump-table-queue job failed: boom",
    )


def test_terminal_uploads_are_not_changed(database: Database, lifecycle: UploadLifecycle, upload_id: int) -> None:
    lifecycle.claim(upload_id)
    lifecycle.complete(upload_id, 0)

    assert lifecycle.mark_failed(upload_id, "late failure") is False
    assert lifecycle.release_for_retry(upload_id) is False
    assert _status(database, upload_id)[0] == UploadStatus.COMPLETED.value


def test_owning_job_can_claim_processing_upload_again(
    database: Database, lifecycle: UploadLifecycle, upload_id: int
) -> None:
    lifecycle.claim(upload_id, "job-1")

    assert lifecycle.claim(upload_id, "job-1").id == upload_id
    assert _status(database, upload_id) == (UploadStatus.PROCESSING.value, True, None)

    with pytest.raises(UploadNotFoundError):
        lifecycle.claim(upload_id, "job-2")
    with pytest.raises(UploadNotFoundError):
        lifecycle.claim(upload_id)


def test_settled_upload_drops_its_owner(database: Database, lifecycle: UploadLifecycle, upload_id: int) -> None:
    lifecycle.claim(upload_id, "job-1")
    lifecycle.release_for_retry(upload_id)

    with database.session_scope() as session:
        assert FileUploadRepository(session).get(upload_id).claimed_by_job is None

    lifecycle.claim(upload_id, "job-2")
    lifecycle.complete(upload_id, 0)

    with pytest.raises(UploadNotFoundError):
        lifecycle.claim(upload_id, "job-2")


def test_claim_of_deleted_upload_raises_not_found(
    database: Database, lifecycle: UploadLifecycle, upload_id: int, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(FileUploadRepository, "get", lambda self, _upload_id: None)

    with pytest.raises(UploadNotFoundError):
        lifecycle.claim(upload_id, "job-1")
