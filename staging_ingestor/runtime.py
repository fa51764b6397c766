"""Process-level wiring of the ingestion components."""

from __future__ import annotations

from threading import Lock

from celery import Celery

from .ingestion.dump_rows_job import CreateDumpTableJob
from .ingestion.uploads import UploadService
from .models.base import Database
from .schemas.queue import CleanupResult
from .schemas.registry import SchemaRegistry
from .storage.object_store import ObjectStore, build_object_store
from .tasks.celery_app import CeleryDispatcher, build_celery_app
from .tasks.job_queue import JobDispatcher, JobQueue
from .tasks.monitor import QueueMonitor
from .tasks.worker import JobRegistry, JobWorker
from .utils.config import GlobalSettings, IngestionSettings
from .utils.logging import setup_logger

logger = setup_logger(__name__)


def build_schema_registry(settings: IngestionSettings) -> SchemaRegistry:
    """Build the schema registry from the optional YAML file plus built-in schemas."""

    if settings.schemas_file is not None:
        return SchemaRegistry.from_yaml(
            settings.schemas_file,
            strict=settings.strict_schemas,
            generic_file_types=settings.generic_file_types,
        )
    return SchemaRegistry(
        strict=settings.strict_schemas,
        generic_file_types=settings.generic_file_types,
    )


class Runtime:
    """
    Explicitly constructed set of collaborators for one process.

    Anything not supplied is built from ``settings``; :meth:`close` releases
    the database pool.
    """

    def __init__(
        self,
        settings: GlobalSettings,
        *,
        database: Database | None = None,
        object_store: ObjectStore | None = None,
        dispatcher: JobDispatcher | None = None,
        schemas: SchemaRegistry | None = None,
        celery_app: Celery | None = None,
    ):
        self.settings = settings
        self.database = database or Database.from_settings(settings)
        self.object_store = object_store or build_object_store(settings.storage)
        self.schemas = schemas or build_schema_registry(settings.ingestion)

        self.celery_app = celery_app
        if dispatcher is None:
            if self.celery_app is None:
                self.celery_app = build_celery_app(settings)
            dispatcher = CeleryDispatcher(self.celery_app)

        self.queue = JobQueue(self.database, dispatcher, settings.queue.name)
        self.registry = JobRegistry()
        self.registry.register(
            CreateDumpTableJob(
                self.database,
                self.object_store,
                self.schemas,
                batch_size=settings.ingestion.batch_size,
                progress_interval=settings.ingestion.progress_interval_seconds,
            )
        )
        self.worker = JobWorker(self.queue, self.registry)
        self.monitor = QueueMonitor(self.database, settings.queue.name)
        self.uploads = UploadService(
            self.database,
            self.object_store,
            self.queue,
            self.schemas,
            settings.queue,
        )

    def monitor_for(self, queue_name: str) -> QueueMonitor:
        if queue_name == self.monitor.queue_name:
            return self.monitor
        return QueueMonitor(self.database, queue_name)

    def cleanup_queue(
        self,
        *,
        completed_age_seconds: int | None = None,
        failed_age_seconds: int | None = None,
    ) -> CleanupResult:
        """
        Purge finished jobs older than the given ages, then failed jobs past their retention.

        Ages left as None fall back to the configured cleanup defaults.
        """
        defaults = self.settings.queue
        result = self.monitor.cleanup(
            completed_age_seconds=(
                completed_age_seconds
                if completed_age_seconds is not None
                else defaults.cleanup_completed_age_seconds
            ),
            failed_age_seconds=(
                failed_age_seconds if failed_age_seconds is not None else defaults.cleanup_failed_age_seconds
            ),
        )
        result.expired_failed_removed = self.queue.prune_expired()
        return result

    def close(self) -> None:
        logger.info("Closing runtime resources")
        self.database.dispose()


class LazyRuntime:
    """Builds a :class:`Runtime` on first use in the current process."""

    def __init__(self, settings: GlobalSettings, **overrides: object):
        self._settings = settings
        self._overrides = overrides
        self._runtime: Runtime | None = None
        self._lock = Lock()

    def get(self) -> Runtime:
        with self._lock:
            if self._runtime is None:
                self._runtime = Runtime(self._settings, **self._overrides)  # type: ignore[arg-type]
            return self._runtime

    def close(self) -> None:
        with self._lock:
            if self._runtime is not None:
                self._runtime.close()
                self._runtime = None
