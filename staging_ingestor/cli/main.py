"""Command-line entrypoints for Staging_Ingestor."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from ..exceptions import StagingIngestorError
from ..runtime import LazyRuntime, Runtime
from ..tasks.celery_app import build_celery_app
from ..tasks.worker import register_process_task
from ..utils.config import ensure_runtime_configuration, get_settings
from ..utils.logging import setup_logger
from ..utils.signals import GracefulShutdown

logger = setup_logger(__name__, context={"job_type": "CLI"})


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _runtime(ctx: click.Context) -> Runtime:
    if ctx.obj is None:
        settings = ensure_runtime_configuration(get_settings())
        ctx.obj = Runtime(settings)
        ctx.call_on_close(ctx.obj.close)
    return ctx.obj


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Staging ingestion pipeline: uploads, worker and queue administration."""


@cli.command()
@click.option("--concurrency", type=int, default=None, help="Worker processes (defaults to queue setting)")
@click.option("--loglevel", default=None, help="Celery log level (defaults to STAGING_LOG_LEVEL)")
def worker(concurrency: int | None, loglevel: str | None) -> None:
    """
    Run the ingestion worker.

    The worker finishes in-flight jobs on SIGTERM/SIGINT, then releases each
    process's database pool.
    """
    settings = ensure_runtime_configuration(get_settings())
    app = build_celery_app(settings)
    runtime = LazyRuntime(settings, celery_app=app)
    register_process_task(app, lambda: runtime.get().worker)

    shutdown = GracefulShutdown(default_timeout=30)
    shutdown.register_handler(runtime.close)
    shutdown.connect_celery_signals()

    logger.info("Starting worker for queue %s", settings.queue.name, extra={"queue": settings.queue.name})
    app.worker_main(
        argv=[
            "worker",
            f"--loglevel={(loglevel or settings.log_level).upper()}",
            f"--concurrency={concurrency or settings.queue.concurrency}",
            f"--queues={settings.queue.name}",
        ]
    )


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--schema", "schema_name", default=None, help="Declared upload schema (e.g. BSC200)")
@click.pass_context
def upload(ctx: click.Context, file_path: Path, schema_name: str | None) -> None:
    """Store FILE_PATH, register it as a pending upload and queue its ingestion."""

    try:
        record = _runtime(ctx).uploads.register(file_path.name, file_path.read_bytes(), schema_name)
    except StagingIngestorError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(record.to_dict())


@cli.command("queue-health")
@click.pass_context
def queue_health(ctx: click.Context) -> None:
    """Show job counts and the health score of the ingestion queue."""

    runtime = _runtime(ctx)
    _echo_json(
        {
            "health": runtime.monitor.get_queue_health().model_dump(),
            "stats": runtime.monitor.get_job_stats().model_dump(),
        }
    )


@cli.command("failed-jobs")
@click.option("--limit", type=click.IntRange(min=1), default=10, show_default=True)
@click.pass_context
def failed_jobs(ctx: click.Context, limit: int) -> None:
    """List the most recent failed jobs."""

    jobs = _runtime(ctx).monitor.get_failed_jobs(limit)
    _echo_json([job.model_dump() for job in jobs])


@cli.command()
@click.option("--completed-age", type=click.IntRange(min=0), default=None, help="Seconds (default 24h)")
@click.option("--failed-age", type=click.IntRange(min=0), default=None, help="Seconds (default 48h)")
@click.pass_context
def cleanup(ctx: click.Context, completed_age: int | None, failed_age: int | None) -> None:
    """Purge old finished jobs and failed jobs past their retention."""

    result = _runtime(ctx).cleanup_queue(completed_age_seconds=completed_age, failed_age_seconds=failed_age)
    _echo_json(result.model_dump())


@cli.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Stop dispatching jobs; new jobs are held until resumed."""

    runtime = _runtime(ctx)
    runtime.queue.pause()
    click.echo(f"Queue {runtime.queue.name} paused")


@cli.command()
@click.pass_context
def resume(ctx: click.Context) -> None:
    """Resume dispatching and release held jobs."""

    runtime = _runtime(ctx)
    try:
        dispatched = runtime.queue.resume()
    except StagingIngestorError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Queue {runtime.queue.name} resumed; {dispatched} held jobs dispatched")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
