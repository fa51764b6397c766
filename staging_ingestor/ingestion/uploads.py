"""Registration and listing of uploaded files."""

from __future__ import annotations

from pathlib import Path

from ..exceptions import DuplicateUploadError, UnsupportedFileTypeError
from ..models.base import Database
from ..models.file_upload import FileUpload
from ..models.repository import FileUploadCreate, FileUploadRepository, UploadFilter
from ..schemas.registry import SchemaRegistry
from ..storage.object_store import ObjectStore, build_object_key
from ..tasks.job_queue import JobQueue
from ..tasks.policies import JobOptions
from ..utils.config import QueueSettings
from ..utils.logging import setup_logger
from .dump_rows_job import CREATE_DUMP_TABLE_JOB

logger = setup_logger(__name__, context={"job_type": "UploadService"})

FILE_TYPES_BY_EXTENSION: dict[str, str] = {
    ".csv": "csv",
    ".xlsx": "excel",
    ".dbf": "dbf",
}


def detect_file_type(filename: str) -> str | None:
    """Return the file type for ``filename`` from its extension, or None."""

    return FILE_TYPES_BY_EXTENSION.get(Path(filename).suffix.lower())


class UploadService:
    """Stores uploaded files, records them as pending, and queues their ingestion."""

    def __init__(
        self,
        database: Database,
        object_store: ObjectStore,
        queue: JobQueue,
        schemas: SchemaRegistry,
        queue_settings: QueueSettings,
    ):
        self._database = database
        self._store = object_store
        self._queue = queue
        self._schemas = schemas
        self._queue_settings = queue_settings

    def register(self, filename: str, data: bytes, schema_name: str | None = None) -> FileUpload:
        """
        Register a new upload and enqueue its ingestion job.

        Args:
            filename: Original file name; its extension decides the file type
            data: File contents
            schema_name: Declared upload schema, if any

        Returns:
            The persisted upload in ``pending``

        Raises:
            UnsupportedFileTypeError: If the file type is not allowed for the schema
            DuplicateUploadError: If the same file was already uploaded for the schema
            StorageError: If the object store rejects the file
            QueueError: If the ingestion job cannot be submitted
        """
        file_type = detect_file_type(filename)
        allowed = self._schemas.allowed_file_types(schema_name)
        if file_type is None or file_type not in allowed:
            raise UnsupportedFileTypeError(
                f"File type of '{filename}' is not allowed for schema "
                f"'{schema_name or '-'}'; allowed: {', '.join(allowed)}"
            )

        with self._database.session_scope() as session:
            existing = FileUploadRepository(session).find_by_name_and_schema(filename, schema_name)
        if existing is not None:
            raise DuplicateUploadError(
                f"File {filename} with upload type {schema_name or '-'} already exists"
            )

        stored = self._store.put(build_object_key(filename, schema_name or file_type), data)

        with self._database.session_scope() as session:
            upload = FileUploadRepository(session).create(
                FileUploadCreate(
                    filename=filename,
                    file_type=file_type,
                    schema_name=schema_name,
                    storage_location=stored.location,
                    storage_key=stored.key,
                )
            )

        job_id = self._queue.enqueue(
            CREATE_DUMP_TABLE_JOB,
            {"upload_id": upload.id},
            JobOptions.from_settings(self._queue_settings),
        )
        logger.info(
            "Registered upload %s",
            filename,
            extra={"upload_id": upload.id, "job_id": job_id, "status": upload.status},
        )
        return upload

    def get(self, upload_id: int) -> FileUpload | None:
        with self._database.session_scope() as session:
            return FileUploadRepository(session).get(upload_id)

    def list(
        self,
        filters: UploadFilter | None = None,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[int, list[FileUpload]]:
        """Return the total match count and one page of uploads, newest first."""

        page = max(page, 1)
        page_size = max(page_size, 1)
        with self._database.session_scope() as session:
            return FileUploadRepository(session).list(
                filters, offset=(page - 1) * page_size, limit=page_size
            )
