"""Celery application configuration for Staging_Ingestor."""

from __future__ import annotations

from celery import Celery
from kombu.exceptions import KombuError

from ..exceptions import QueueError
from ..utils.config import GlobalSettings, get_settings

PROCESS_JOB_TASK = "staging_ingestor.process_job"


def build_celery_app(settings: GlobalSettings | None = None) -> Celery:
    """Create a Celery app using Redis as broker and result backend."""

    settings = settings or get_settings()
    redis_url = settings.resolved_redis_url()

    app = Celery("staging_ingestor", broker=redis_url, backend=redis_url)
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        worker_hijack_root_logger=False,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_ignore_result=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=settings.queue.concurrency,
        task_default_queue=settings.queue.name,
        broker_transport_options={
            "visibility_timeout": settings.queue.visibility_timeout_seconds,
        },
    )
    return app


class CeleryDispatcher:
    """Delivers job ids to workers as Celery messages."""

    def __init__(self, app: Celery, task_name: str = PROCESS_JOB_TASK):
        self._app = app
        self._task_name = task_name

    def dispatch(self, job_id: str, *, queue: str, countdown: float = 0) -> None:
        try:
            self._app.send_task(
                self._task_name,
                args=[job_id],
                queue=queue,
                countdown=countdown if countdown > 0 else None,
            )
        except KombuError as exc:
            raise QueueError(f"Failed to publish job {job_id} to queue '{queue}': {exc}") from exc
