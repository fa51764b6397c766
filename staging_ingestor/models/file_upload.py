"""SQLAlchemy model for uploaded source files."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadStatus(str, Enum):
    """Lifecycle states of an uploaded file."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileUpload(Base):
    """Database representation of one uploaded file and its ingestion status."""

    __tablename__ = "file_uploads"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=UploadStatus.PENDING.value, index=True
    )
    schema_name: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    file_type: Mapped[str] = mapped_column(String(32), nullable=False)
    storage_location: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    storage_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed_by_job: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""

        return {
            "id": self.id,
            "filename": self.filename,
            "status": self.status,
            "schema_name": self.schema_name,
            "file_type": self.file_type,
            "storage_location": self.storage_location,
            "storage_key": self.storage_key,
            "error_message": self.error_message,
            "is_processing": self.is_processing,
            "claimed_by_job": self.claimed_by_job,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<FileUpload id={self.id} filename={self.filename} "
            f"schema={self.schema_name} status={self.status}>"
        )
