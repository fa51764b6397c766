"""Graceful shutdown for worker processes."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from celery.signals import worker_process_shutdown, worker_shutdown

from ..utils.logging import setup_logger

logger = setup_logger(__name__)

ShutdownHandler = Callable[[], Any]


class GracefulShutdown:
    """
    Runs cleanup handlers once when a worker process stops.

    Handlers run in reverse registration order so resources opened last are
    released first. Sync handlers run on a private thread pool; each handler
    may carry its own timeout, after which shutdown moves on to the next one.
    A failing or slow handler never prevents the remaining handlers from running.
    """

    def __init__(self, *, default_timeout: float | None = None) -> None:
        self._handlers: list[tuple[ShutdownHandler, float | None]] = []
        self._default_timeout = default_timeout
        self._is_shutting_down = False
        self._shutdown_event = asyncio.Event()
        self._executor = ThreadPoolExecutor(thread_name_prefix="staging-ingestor-shutdown")

    def register_handler(
        self, handler: ShutdownHandler, *, timeout: float | None = None
    ) -> ShutdownHandler:
        """Register ``handler`` and return it unchanged, so this also works as a decorator."""

        self._handlers.append((handler, timeout if timeout is not None else self._default_timeout))
        logger.info("Registered shutdown handler: %s", _handler_name(handler))
        return handler

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def _invoke(self, handler: ShutdownHandler) -> Awaitable[Any]:
        if inspect.iscoroutinefunction(handler):
            return handler()
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, handler)

    async def shutdown(self) -> None:
        """Run every registered handler once, newest first."""

        if self._is_shutting_down:
            logger.warning("Shutdown already in progress")
            return

        self._is_shutting_down = True
        logger.info("Starting graceful shutdown (%d handlers)", len(self._handlers))

        for handler, timeout in reversed(self._handlers):
            name = _handler_name(handler)
            try:
                await asyncio.wait_for(self._invoke(handler), timeout=timeout)
            except asyncio.TimeoutError:
                logger.error("Shutdown handler %s timed out after %ss", name, timeout)
            except Exception as exc:
                logger.error("Error in shutdown handler %s: %s", name, exc, exc_info=True)
            else:
                logger.info("Completed shutdown handler: %s", name)

        self._executor.shutdown(wait=False)
        self._shutdown_event.set()
        logger.info("Graceful shutdown complete")

    def run(self) -> None:
        """Run :meth:`shutdown` from synchronous code such as Celery signal receivers."""

        asyncio.run(self.shutdown())

    def connect_celery_signals(self) -> Callable[..., None]:
        """Run the handlers when the Celery worker (or one of its pool processes) stops.

        Returns the connected receiver so callers can disconnect it.
        """

        def _on_worker_stop(**_: Any) -> None:
            self.run()

        worker_process_shutdown.connect(_on_worker_stop, weak=False)
        worker_shutdown.connect(_on_worker_stop, weak=False)
        return _on_worker_stop

    def is_shutting_down(self) -> bool:
        return self._is_shutting_down

    async def wait_for_shutdown(self) -> None:
        """Block until :meth:`shutdown` has finished."""

        await self._shutdown_event.wait()


def _handler_name(handler: ShutdownHandler) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))
