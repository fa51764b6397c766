"""Create upload, staging row and job queue tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op as alembic_op  # type: ignore[import-untyped]

revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create ingestion tables and supporting indexes."""

    alembic_op.create_table(
        "file_uploads",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("schema_name", sa.String(length=128), nullable=True),
        sa.Column("file_type", sa.String(length=32), nullable=False),
        sa.Column("storage_location", sa.String(length=1024), nullable=True),
        sa.Column("storage_key", sa.String(length=1024), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("is_processing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_by_job", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    alembic_op.create_index("ix_file_uploads_status", "file_uploads", ["status"])
    alembic_op.create_index("ix_file_uploads_schema_name", "file_uploads", ["schema_name"])

    alembic_op.create_table(
        "staging_rows",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("request_id", sa.BigInteger(), nullable=False),
        sa.Column("request_schema", sa.String(length=128), nullable=False),
        sa.Column("row_num", sa.Integer(), nullable=False),
        sa.Column("mapped_data", sa.JSON(), nullable=True),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "request_id", "request_schema", "row_num", name="uq_staging_rows_request_row"
        ),
    )
    alembic_op.create_index("ix_staging_rows_request_id", "staging_rows", ["request_id"])

    alembic_op.create_table(
        "queue_jobs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("queue_name", sa.String(length=128), nullable=False),
        sa.Column("job_type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("attempts_made", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("backoff_seconds", sa.Float(), nullable=False),
        sa.Column("max_backoff_seconds", sa.Float(), nullable=False),
        sa.Column("remove_on_complete", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("failed_retention_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_reason", sa.Text(), nullable=True),
        sa.Column("error_details", sa.JSON(), nullable=True),
        sa.Column("progress", sa.JSON(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    alembic_op.create_index("ix_queue_jobs_queue_name", "queue_jobs", ["queue_name"])
    alembic_op.create_index("ix_queue_jobs_state", "queue_jobs", ["state"])
    alembic_op.create_index("ix_queue_jobs_finished_at", "queue_jobs", ["finished_at"])

    alembic_op.create_table(
        "queue_controls",
        sa.Column("queue_name", sa.String(length=128), primary_key=True),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )


def downgrade() -> None:
    """Drop ingestion tables and related indexes."""

    alembic_op.drop_table("queue_controls")
    alembic_op.drop_index("ix_queue_jobs_finished_at", table_name="queue_jobs")
    alembic_op.drop_index("ix_queue_jobs_state", table_name="queue_jobs")
    alembic_op.drop_index("ix_queue_jobs_queue_name", table_name="queue_jobs")
    alembic_op.drop_table("queue_jobs")
    alembic_op.drop_index("ix_staging_rows_request_id", table_name="staging_rows")
    alembic_op.drop_table("staging_rows")
    alembic_op.drop_index("ix_file_uploads_schema_name", table_name="file_uploads")
    alembic_op.drop_index("ix_file_uploads_status", table_name="file_uploads")
    alembic_op.drop_table("file_uploads")
