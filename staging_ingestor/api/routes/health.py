"""Health check endpoint."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ...runtime import Runtime
from ..dependencies import get_runtime

router = APIRouter()


@router.get("/health")
def health_check(response: Response, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Health check endpoint including database connectivity."""

    try:
        with runtime.database.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        database_status = "connected"
    except SQLAlchemyError:
        database_status = "disconnected"

    overall_status = "ok" if database_status == "connected" else "error"
    if overall_status == "error":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": overall_status,
        "service": "staging_ingestor",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {"database": database_status},
    }
