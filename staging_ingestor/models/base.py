"""SQLAlchemy base declarations and session helpers."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from importlib import import_module
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ..utils.config import DatabasePoolSettings, GlobalSettings

_MODEL_MODULES = (
    "staging_ingestor.models.file_upload",
    "staging_ingestor.models.staging_row",
    "staging_ingestor.models.queue_job",
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def load_models() -> None:
    """Import model modules so metadata is aware of mapped classes."""

    for module in _MODEL_MODULES:
        import_module(module)


def _create_engine(database_url: str, pool_config: DatabasePoolSettings | None) -> Engine:
    # SQLite takes no pool sizing; connections cross threads.
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    pool_kwargs: dict[str, Any] = {}
    if pool_config is not None:
        pool_kwargs = {
            "pool_size": pool_config.pool_size,
            "max_overflow": pool_config.max_overflow,
            "pool_timeout": pool_config.timeout,
            "pool_pre_ping": pool_config.pre_ping,
        }
        if pool_config.recycle_seconds > 0:
            pool_kwargs["pool_recycle"] = pool_config.recycle_seconds

    return create_engine(database_url, **pool_kwargs)


class Database:
    """Owns one engine and session factory for the lifetime of a process."""

    def __init__(self, database_url: str, pool_config: DatabasePoolSettings | None = None):
        self.url = database_url
        self.engine = _create_engine(database_url, pool_config)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: GlobalSettings) -> Database:
        """Build a database handle from global settings."""

        return cls(settings.resolved_database_url(), settings.database)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def create_all(self) -> None:
        """Create all mapped tables (development and tests; production uses Alembic)."""

        load_models()
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session inside one transaction; commit on exit, roll back on error."""

        with self._session_factory.begin() as session:
            yield session

    def dispose(self) -> None:
        """Close pooled connections."""

        self.engine.dispose()
