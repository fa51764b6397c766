"""Tests for persistence repositories."""

from __future__ import annotations

import pytest

from staging_ingestor.models.base import Database
from staging_ingestor.models.file_upload import UploadStatus
from staging_ingestor.models.repository import (
    FileUploadCreate,
    FileUploadRepository,
    StagingRowRepository,
    UploadFilter,
    _insert_ignore,
)


def _create(database: Database, filename: str, schema_name: str | None = "BSC200") -> int:
    with database.session_scope() as session:
        upload = FileUploadRepository(session).create(
            FileUploadCreate(filename=filename, file_type="csv", schema_name=schema_name)
        )
        return upload.id


def _row(upload_id: int, row_num: int, schema: str = "BSC200") -> dict:
    return {
        "status": "pending",
        "request_id": upload_id,
        "request_schema": schema,
        "row_num": row_num,
        "raw_data": {"row_num": row_num},
    }


def test_create_persists_pending_upload(database: Database) -> None:
    upload_id = _create(database, "a.csv")

    with database.session_scope() as session:
        upload = FileUploadRepository(session).get(upload_id)
        assert upload is not None
        assert upload.status == UploadStatus.PENDING.value
        assert upload.is_processing is False
        assert upload.to_dict()["filename"] == "a.csv"


def test_find_by_name_and_schema(database: Database) -> None:
    _create(database, "a.csv", "BSC200")
    _create(database, "b.csv", None)

    with database.session_scope() as session:
        repository = FileUploadRepository(session)
        assert repository.find_by_name_and_schema("a.csv", "BSC200") is not None
        assert repository.find_by_name_and_schema("a.csv", "OTHER") is None
        assert repository.find_by_name_and_schema("b.csv", None) is not None


def test_transition_is_guarded_by_current_status(database: Database) -> None:
    upload_id = _create(database, "a.csv")

    with database.session_scope() as session:
        repository = FileUploadRepository(session)
        assert repository.transition(
            upload_id,
            from_statuses=[UploadStatus.PENDING.value],
            values={"status": UploadStatus.PROCESSING.value},
        )
        assert not repository.transition(
            upload_id,
            from_statuses=[UploadStatus.PENDING.value],
            values={"status": UploadStatus.PROCESSING.value},
        )


def test_list_filters_and_paginates(database: Database) -> None:
    for index in range(5):
        _create(database, f"file-{index}.csv", "BSC200" if index % 2 == 0 else "OTHER")

    with database.session_scope() as session:
        repository = FileUploadRepository(session)
        total, page = repository.list(UploadFilter(schema_names=["BSC200"]), offset=0, limit=2)
        assert total == 3
        assert [upload.filename for upload in page] == ["file-4.csv", "file-2.csv"]

        total, page = repository.list(UploadFilter(status="completed"))
        assert (total, page) == (0, [])


def test_bulk_insert_ignore_skips_existing_rows(database: Database) -> None:
    upload_id = _create(database, "a.csv")

    with database.session_scope() as session:
        StagingRowRepository(session).bulk_insert_ignore([_row(upload_id, 1), _row(upload_id, 2)])
    with database.session_scope() as session:
        StagingRowRepository(session).bulk_insert_ignore([_row(upload_id, 2), _row(upload_id, 3)])
        StagingRowRepository(session).bulk_insert_ignore([])

    with database.session_scope() as session:
        repository = StagingRowRepository(session)
        assert repository.count_for_upload(upload_id) == 3
        assert [row.row_num for row in repository.list_for_upload(upload_id)] == [1, 2, 3]


def test_insert_ignore_unsupported_dialect() -> None:
    with pytest.raises(NotImplementedError, match="oracle"):
        _insert_ignore("oracle")
