"""Status transitions of a :class:`FileUpload` during ingestion.

Every transition is a single conditional update guarded on the current
status, so two workers cannot both claim one pending upload.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import CountMismatchError, UploadNotFoundError
from ..models.base import Database
from ..models.file_upload import UploadStatus
from ..models.repository import FileUploadRepository, StagingRowRepository
from ..monitoring.metrics import record_upload_transition
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"job_type": "UploadLifecycle"})

_OPEN_STATUSES = (UploadStatus.PENDING.value, UploadStatus.PROCESSING.value)


@dataclass(slots=True, frozen=True)
class ClaimedUpload:
    """Snapshot of an upload taken when it was claimed for processing."""

    id: int
    filename: str
    schema_name: str | None
    file_type: str
    storage_key: str | None
    storage_location: str | None


class UploadLifecycle:
    """Owns every status change an ingestion job makes to an upload."""

    def __init__(self, database: Database):
        self._database = database

    def claim(self, upload_id: int, job_id: str | None = None) -> ClaimedUpload:
        """
        Move a pending upload to ``processing`` and record ``job_id`` as its owner.

        The owning job may claim its upload again while it is still processing,
        so a delivery repeated after a worker crash resumes the ingestion.

        Raises:
            UploadNotFoundError: If the upload is missing or held by another job
        """
        with self._database.session_scope() as session:
            repository = FileUploadRepository(session)
            if not repository.claim(upload_id, job_id):
                raise UploadNotFoundError(upload_id)
            upload = repository.get(upload_id)
            if upload is None:
                raise UploadNotFoundError(upload_id)
            snapshot = ClaimedUpload(
                id=upload.id,
                filename=upload.filename,
                schema_name=upload.schema_name,
                file_type=upload.file_type,
                storage_key=upload.storage_key,
                storage_location=upload.storage_location,
            )

        record_upload_transition(UploadStatus.PROCESSING.value)
        logger.info(
            "Claimed upload %s (%s)",
            snapshot.filename,
            snapshot.schema_name or "-",
            extra={"upload_id": upload_id, "status": UploadStatus.PROCESSING.value},
        )
        return snapshot

    def complete(self, upload_id: int, parsed_rows: int) -> int:
        """
        Verify the staged row count and mark the upload ``completed``.

        Returns the number of staged rows.

        Raises:
            CountMismatchError: If staged rows differ from ``parsed_rows``
            UploadNotFoundError: If the upload is no longer processing
        """
        with self._database.session_scope() as session:
            staged_rows = StagingRowRepository(session).count_for_upload(upload_id)
            if staged_rows != parsed_rows:
                raise CountMismatchError(upload_id, parsed_rows, staged_rows)

            completed = FileUploadRepository(session).transition(
                upload_id,
                from_statuses=(UploadStatus.PROCESSING.value,),
                values={
                    "status": UploadStatus.COMPLETED.value,
                    "is_processing": False,
                    "claimed_by_job": None,
                },
            )
            if not completed:
                raise UploadNotFoundError(upload_id)

        record_upload_transition(UploadStatus.COMPLETED.value)
        logger.info(
            "Upload completed with %s staged rows",
            staged_rows,
            extra={"upload_id": upload_id, "status": UploadStatus.COMPLETED.value},
        )
        return staged_rows

    def release_for_retry(self, upload_id: int) -> bool:
        """Put the upload back to ``pending`` so the next attempt can claim it."""

        with self._database.session_scope() as session:
            released = FileUploadRepository(session).transition(
                upload_id,
                from_statuses=_OPEN_STATUSES,
                values={
                    "status": UploadStatus.PENDING.value,
                    "is_processing": False,
                    "claimed_by_job": None,
                },
            )
        if released:
            record_upload_transition(UploadStatus.PENDING.value)
            logger.info(
                "Upload released for retry",
                extra={"upload_id": upload_id, "status": UploadStatus.PENDING.value},
            )
        return released

    def mark_failed(self, upload_id: int, error_message: str) -> bool:
        """Mark the upload ``failed`` with ``error_message``."""

        with self._database.session_scope() as session:
            failed = FileUploadRepository(session).transition(
                upload_id,
                from_statuses=_OPEN_STATUSES,
                values={
                    "status": UploadStatus.FAILED.value,
                    "is_processing": False,
                    "claimed_by_job": None,
                    "error_message": error_message,
                },
            )
        if failed:
            record_upload_transition(UploadStatus.FAILED.value)
            logger.error(
                "Upload failed: %s",
                error_message,
                extra={"upload_id": upload_id, "status": UploadStatus.FAILED.value},
            )
        return failed
