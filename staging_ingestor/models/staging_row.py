"""SQLAlchemy model for staged (dump) rows."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StagingRowStatus(str, Enum):
    """Per-row processing states, reserved for downstream reprocessing."""

    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"
    SUCCESS = "success"


class StagingRow(Base):
    """One normalized record derived from one data row of an uploaded file."""

    __tablename__ = "staging_rows"
    __table_args__ = (
        UniqueConstraint(
            "request_id", "request_schema", "row_num", name="uq_staging_rows_request_row"
        ),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=StagingRowStatus.PENDING.value
    )
    request_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    request_schema: Mapped[str] = mapped_column(String(128), nullable=False)
    row_num: Mapped[int] = mapped_column(Integer, nullable=False)
    mapped_data: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    raw_data: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<StagingRow id={self.id} request_id={self.request_id} "
            f"schema={self.request_schema} row_num={self.row_num}>"
        )
