"""Tests for the Celery transport wiring."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from kombu.exceptions import OperationalError

from staging_ingestor.exceptions import QueueError
from staging_ingestor.tasks.celery_app import PROCESS_JOB_TASK, CeleryDispatcher, build_celery_app
from staging_ingestor.tasks.worker import register_process_task
from staging_ingestor.utils.config import GlobalSettings, QueueSettings


def test_build_celery_app_applies_delivery_guarantees() -> None:
    settings = GlobalSettings(
        redis_url="redis://cache:6379/2",
        queue=QueueSettings(name="dumps", concurrency=4, visibility_timeout_seconds=600),
    )

    app = build_celery_app(settings)

    assert app.conf.broker_url == "redis://cache:6379/2"
    assert app.conf.task_acks_late is True
    assert app.conf.task_reject_on_worker_lost is True
    assert app.conf.worker_prefetch_multiplier == 1
    assert app.conf.worker_concurrency == 4
    assert app.conf.task_default_queue == "dumps"
    assert app.conf.broker_transport_options == {"visibility_timeout": 600}


def test_dispatcher_sends_job_id_to_named_queue() -> None:
    app = MagicMock()
    dispatcher = CeleryDispatcher(app)

    dispatcher.dispatch("job-1", queue="dumps")
    dispatcher.dispatch("job-2", queue="dumps", countdown=10)

    assert app.send_task.call_args_list[0].args == (PROCESS_JOB_TASK,)
    assert app.send_task.call_args_list[0].kwargs == {
        "args": ["job-1"],
        "queue": "dumps",
        "countdown": None,
    }
    assert app.send_task.call_args_list[1].kwargs["countdown"] == 10


def test_dispatcher_wraps_broker_errors() -> None:
    app = MagicMock()
    app.send_task.side_effect = OperationalError("connection refused")

    with pytest.raises(QueueError, match="job-1"):
        CeleryDispatcher(app).dispatch("job-1", queue="dumps")


def test_registered_task_delegates_to_worker() -> None:
    app = build_celery_app(GlobalSettings())
    worker = MagicMock()
    worker.process.return_value = {"success": True}

    task = register_process_task(app, lambda: worker)

    assert task.name == PROCESS_JOB_TASK
    assert task("job-1") == {"success": True}
    worker.process.assert_called_once_with("job-1")
