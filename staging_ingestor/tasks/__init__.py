"""Job queue package exposing the queue, worker and monitor."""

from __future__ import annotations

from .celery_app import PROCESS_JOB_TASK, CeleryDispatcher, build_celery_app
from .job_queue import JobDispatcher, JobQueue
from .monitor import QueueMonitor, calculate_health
from .policies import BackoffPolicy, JobOptions
from .worker import FailureContext, JobContext, JobRegistry, JobWorker, register_process_task

__all__ = [
    "PROCESS_JOB_TASK",
    "BackoffPolicy",
    "CeleryDispatcher",
    "FailureContext",
    "JobContext",
    "JobDispatcher",
    "JobOptions",
    "JobQueue",
    "JobRegistry",
    "JobWorker",
    "QueueMonitor",
    "build_celery_app",
    "calculate_health",
    "register_process_task",
]
