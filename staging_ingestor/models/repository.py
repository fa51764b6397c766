"""Repository helpers for persistence models."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Insert, and_, func, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .file_upload import FileUpload, UploadStatus
from .staging_row import StagingRow

_CONFLICT_COLUMNS = ("request_id", "request_schema", "row_num")


@dataclass(slots=True)
class FileUploadCreate:
    """Value object capturing required fields to persist a file upload."""

    filename: str
    file_type: str
    schema_name: str | None = None
    storage_location: str | None = None
    storage_key: str | None = None


@dataclass(slots=True)
class UploadFilter:
    """Filter predicates for listing uploads."""

    status: str | None = None
    schema_names: Sequence[str] | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class FileUploadRepository:
    """Data access helpers for :class:`FileUpload`."""

    def __init__(self, session: Session):
        self._session = session

    def create(self, data: FileUploadCreate) -> FileUpload:
        """Persist a new upload in ``pending`` and return the mapped instance."""

        upload = FileUpload(
            filename=data.filename,
            file_type=data.file_type,
            schema_name=data.schema_name,
            storage_location=data.storage_location,
            storage_key=data.storage_key,
            status=UploadStatus.PENDING.value,
            is_processing=False,
        )
        self._session.add(upload)
        self._session.flush()
        return upload

    def get(self, upload_id: int) -> FileUpload | None:
        return self._session.get(FileUpload, upload_id)

    def find_by_name_and_schema(self, filename: str, schema_name: str | None) -> FileUpload | None:
        statement = select(FileUpload).where(FileUpload.filename == filename)
        if schema_name is None:
            statement = statement.where(FileUpload.schema_name.is_(None))
        else:
            statement = statement.where(FileUpload.schema_name == schema_name)
        return self._session.scalars(statement.limit(1)).first()

    def list(
        self,
        filters: UploadFilter | None = None,
        *,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[int, list[FileUpload]]:
        """Return the total match count and one page of uploads, newest first."""

        filters = filters or UploadFilter()
        conditions: list[Any] = []
        if filters.status:
            conditions.append(FileUpload.status == filters.status)
        if filters.schema_names:
            conditions.append(FileUpload.schema_name.in_(list(filters.schema_names)))
        if filters.created_from is not None:
            conditions.append(FileUpload.created_at >= filters.created_from)
        if filters.created_to is not None:
            conditions.append(FileUpload.created_at <= filters.created_to)

        total = self._session.scalar(
            select(func.count()).select_from(FileUpload).where(*conditions)
        )
        rows = self._session.scalars(
            select(FileUpload)
            .where(*conditions)
            .order_by(FileUpload.created_at.desc(), FileUpload.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return int(total or 0), list(rows)

    def transition(
        self,
        upload_id: int,
        *,
        from_statuses: Iterable[str],
        values: dict[str, Any],
    ) -> bool:
        """Apply ``values`` only while the upload is in one of ``from_statuses``.

        Returns True when exactly one row was updated.
        """

        statement = (
            update(FileUpload)
            .where(FileUpload.id == upload_id, FileUpload.status.in_(list(from_statuses)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        return result.rowcount == 1

    def claim(self, upload_id: int, job_id: str | None) -> bool:
        """Move an upload to ``processing`` on behalf of ``job_id``.

        A pending upload can always be claimed. One already processing can be
        claimed again only by the job holding it, which is how a job redelivered
        after a worker crash picks its upload back up.
        """

        claimable = FileUpload.status == UploadStatus.PENDING.value
        if job_id is not None:
            claimable = or_(
                claimable,
                and_(
                    FileUpload.status == UploadStatus.PROCESSING.value,
                    FileUpload.claimed_by_job == job_id,
                ),
            )
        statement = (
            update(FileUpload)
            .where(FileUpload.id == upload_id, claimable)
            .values(
                status=UploadStatus.PROCESSING.value,
                is_processing=True,
                claimed_by_job=job_id,
                error_message=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(statement).rowcount == 1


def _insert_ignore(dialect_name: str) -> Insert:
    table = StagingRow.__table__
    if dialect_name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
    if dialect_name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
    if dialect_name in {"mysql", "mariadb"}:
        return insert(table).prefix_with("IGNORE")
    raise NotImplementedError(f"insert-or-ignore is not supported for dialect '{dialect_name}'")


class StagingRowRepository:
    """Data access helpers for :class:`StagingRow`."""

    def __init__(self, session: Session):
        self._session = session

    def bulk_insert_ignore(self, rows: Sequence[dict[str, Any]]) -> None:
        """Insert ``rows`` in one statement, skipping rows that already exist."""

        if not rows:
            return
        dialect_name = self._session.get_bind().dialect.name
        self._session.execute(_insert_ignore(dialect_name), list(rows))

    def count_for_upload(self, upload_id: int) -> int:
        total = self._session.scalar(
            select(func.count()).select_from(StagingRow).where(StagingRow.request_id == upload_id)
        )
        return int(total or 0)

    def list_for_upload(self, upload_id: int) -> list[StagingRow]:
        return list(
            self._session.scalars(
                select(StagingRow)
                .where(StagingRow.request_id == upload_id)
                .order_by(StagingRow.row_num)
            ).all()
        )
