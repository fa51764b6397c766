"""Pytest configuration - no path manipulation, rely on proper package installation."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from staging_ingestor.exceptions import JobExecutionError
from staging_ingestor.models.base import Database
from staging_ingestor.runtime import Runtime
from staging_ingestor.schemas.registry import SchemaRegistry
from staging_ingestor.storage.object_store import LocalObjectStore
from staging_ingestor.utils.config import GlobalSettings, IngestionSettings, QueueSettings, get_settings


@pytest.fixture(autouse=True)
def _ensure_database_url(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Guarantee STAGING_DATABASE_URL is available for runtime validation."""

    if os.getenv("STAGING_DATABASE_URL") is None:
        db_path = tmp_path_factory.mktemp("sqlite-db") / "staging.sqlite"
        monkeypatch.setenv("STAGING_DATABASE_URL", f"sqlite:///{db_path}")
    if os.getenv("STAGING_API_KEYS") is None:
        monkeypatch.setenv("STAGING_API_KEYS", '["test-key"]')

    get_settings(reload=True)
    yield
    get_settings(reload=True)


class RecordingDispatcher:
    """Dispatcher that records deliveries instead of publishing them."""

    def __init__(self) -> None:
        self.dispatched: list[tuple[str, str, float]] = []

    def dispatch(self, job_id: str, *, queue: str, countdown: float = 0) -> None:
        self.dispatched.append((job_id, queue, countdown))

    def pop_all(self) -> list[tuple[str, str, float]]:
        pending, self.dispatched = self.dispatched, []
        return pending


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    """SQLite database with every table created."""

    db = Database(f"sqlite:///{tmp_path / 'pipeline.sqlite'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_settings() -> Callable[..., GlobalSettings]:
    """Factory for settings with queue overrides and unthrottled progress."""

    def _make(*, strict_schemas: bool = False, batch_size: int = 10_000, **queue_overrides) -> GlobalSettings:
        return GlobalSettings(
            queue=QueueSettings(**queue_overrides),
            ingestion=IngestionSettings(
                progress_interval_seconds=0,
                strict_schemas=strict_schemas,
                batch_size=batch_size,
            ),
        )

    return _make


@pytest.fixture
def make_runtime(
    database: Database,
    object_store: LocalObjectStore,
    dispatcher: RecordingDispatcher,
    make_settings: Callable[..., GlobalSettings],
) -> Callable[..., Runtime]:
    """Factory for a runtime wired to the test database, store and dispatcher."""

    def _make(*, object_store_override=None, **settings_overrides) -> Runtime:
        settings = make_settings(**settings_overrides)
        return Runtime(
            settings,
            database=database,
            object_store=object_store_override or object_store,
            dispatcher=dispatcher,
            schemas=SchemaRegistry(strict=settings.ingestion.strict_schemas),
        )

    return _make


@pytest.fixture
def runtime(make_runtime: Callable[..., Runtime]) -> Runtime:
    return make_runtime()


@pytest.fixture
def drain(dispatcher: RecordingDispatcher) -> Callable[[Runtime], list[JobExecutionError]]:
    """Deliver every dispatched job to the runtime's worker until none remain."""

    def _drain(runtime: Runtime) -> list[JobExecutionError]:
        errors: list[JobExecutionError] = []
        while dispatcher.dispatched:
            for job_id, _queue, _countdown in dispatcher.pop_all():
                try:
                    runtime.worker.process(job_id)
                except JobExecutionError as exc:
                    errors.append(exc)
        return errors

    return _drain
