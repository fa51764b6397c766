"""Shared FastAPI dependencies."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..runtime import Runtime
from ..tasks.monitor import QueueMonitor

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_runtime(request: Request) -> Runtime:
    """Return the runtime attached to the application at startup."""

    return request.app.state.runtime


async def require_api_key(
    x_api_key: str | None = Security(api_key_header),
    runtime: Runtime = Depends(get_runtime),
) -> str:
    """Validate the provided API key against the keys configured for this runtime."""

    configured_keys = runtime.settings.api_keys
    if not configured_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API authentication is not configured.",
        )

    if x_api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key.",
        )

    if not any(secrets.compare_digest(x_api_key, candidate) for candidate in configured_keys):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key.",
        )
    return x_api_key


def monitored_queues(runtime: Runtime) -> list[str]:
    """Names of the queues this process can report on."""

    return [runtime.settings.queue.name]


def get_queue_monitor(queue_name: str, runtime: Runtime = Depends(get_runtime)) -> QueueMonitor:
    """Resolve the ``queue_name`` path parameter to a monitor, or answer 400."""

    available = monitored_queues(runtime)
    if queue_name not in available:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": f"Unknown queue: {queue_name}", "available_queues": available},
        )
    return runtime.monitor_for(queue_name)
