"""Idempotent bulk writes of parsed rows into the staging table."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from ..models.base import Database
from ..models.repository import StagingRowRepository
from ..models.staging_row import StagingRowStatus
from ..monitoring.metrics import record_rows_staged
from ..schemas.registry import SchemaDescriptor
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"job_type": "BatchWriter"})


class BatchWriter:
    """
    Writes batches of normalized rows for one upload.

    Every batch is a single insert-or-ignore statement in its own
    transaction, so replaying a batch after redelivery stages nothing twice.
    Write failures propagate.
    """

    def __init__(
        self,
        database: Database,
        *,
        upload_id: int,
        request_schema: str,
        descriptor: SchemaDescriptor,
    ):
        self._database = database
        self.upload_id = upload_id
        self.request_schema = request_schema
        self._descriptor = descriptor
        self.rows_written = 0
        self.batches_written = 0

    def _to_record(self, row: dict[str, Any], now: datetime) -> dict[str, Any]:
        return {
            "status": StagingRowStatus.PENDING.value,
            "request_id": self.upload_id,
            "request_schema": self.request_schema,
            "row_num": int(row["row_num"]),
            "mapped_data": self._descriptor.map_row(row) if self._descriptor.has_mapping else None,
            "raw_data": dict(row),
            "created_at": now,
            "updated_at": now,
        }

    def write(self, batch: Sequence[dict[str, Any]]) -> int:
        """Stage ``batch`` and return the number of rows submitted."""

        if not batch:
            return 0
        now = datetime.now(timezone.utc)
        records = [self._to_record(row, now) for row in batch]

        with self._database.session_scope() as session:
            StagingRowRepository(session).bulk_insert_ignore(records)

        self.rows_written += len(records)
        self.batches_written += 1
        record_rows_staged(self.request_schema, len(records))
        logger.info(
            "Staged batch %s: %s rows (total: %s)",
            self.batches_written,
            len(records),
            self.rows_written,
            extra={"upload_id": self.upload_id},
        )
        return len(records)
