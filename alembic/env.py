"""Alembic migrations for the upload, staging row and queue job tables.

The target database comes from ``STAGING_DATABASE_URL`` unless overridden on
the command line with ``alembic -x database_url=... upgrade head``.
"""

from __future__ import annotations

import logging
from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context  # type: ignore[import-untyped]
from staging_ingestor.models.base import Base, load_models
from staging_ingestor.utils.config import ensure_runtime_configuration, get_settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")

load_models()
target_metadata = Base.metadata

MIGRATION_OPTIONS = {"compare_type": True, "transaction_per_migration": True}


def resolve_database_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("database_url")
    if override:
        logger.info("Using database URL from -x database_url")
        return override
    return ensure_runtime_configuration(get_settings()).resolved_database_url()


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without connecting."""

    context.configure(
        url=resolve_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(resolve_database_url(), poolclass=pool.NullPool)

    with engine.connect() as connection:
        # SQLite cannot ALTER most constraints in place.
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
            **MIGRATION_OPTIONS,
        )
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
