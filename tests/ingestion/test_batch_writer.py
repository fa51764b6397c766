"""Tests for idempotent staging batch writes."""

from __future__ import annotations

from staging_ingestor.ingestion.batch_writer import BatchWriter
from staging_ingestor.models.base import Database
from staging_ingestor.models.repository import StagingRowRepository
from staging_ingestor.schemas.registry import SchemaDescriptor, SchemaRegistry

BATCH = [
    {"brcode": "B001", "scheme_code": "S1", "min_amount": "100", "reg_date": "2024-12-25", "row_num": 1},
    {"brcode": "B002", "scheme_code": "S2", "min_amount": "200", "reg_date": None, "row_num": 2},
]


def _staged(database: Database, upload_id: int):
    with database.session_scope() as session:
        return StagingRowRepository(session).list_for_upload(upload_id)


def test_write_stages_mapped_and_raw_data(database: Database) -> None:
    writer = BatchWriter(
        database,
        upload_id=7,
        request_schema="BSC200",
        descriptor=SchemaRegistry().resolve("BSC200"),
    )

    assert writer.write(BATCH) == 2

    rows = _staged(database, 7)
    assert [row.row_num for row in rows] == [1, 2]
    assert rows[0].status == "pending"
    assert rows[0].request_schema == "BSC200"
    assert rows[0].mapped_data == {
        "broker_code": "B001",
        "bsc_scheme_code": "S1",
        "min_amount": "100",
        "reg_date": "2024-12-25",
    }
    assert rows[0].raw_data == BATCH[0]


def test_replaying_a_batch_stages_nothing_twice(database: Database) -> None:
    writer = BatchWriter(
        database,
        upload_id=7,
        request_schema="BSC200",
        descriptor=SchemaRegistry().resolve("BSC200"),
    )

    writer.write(BATCH)
    writer.write(BATCH)

    assert len(_staged(database, 7)) == 2
    assert writer.batches_written == 2


def test_rows_without_mapping_keep_only_raw_data(database: Database) -> None:
    writer = BatchWriter(
        database,
        upload_id=9,
        request_schema="csv",
        descriptor=SchemaDescriptor(name="generic"),
    )

    writer.write([{"anything": "goes", "row_num": 1}])
    assert writer.write([]) == 0

    (row,) = _staged(database, 9)
    assert row.mapped_data is None
    assert row.raw_data == {"anything": "goes", "row_num": 1}
