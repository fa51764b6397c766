"""FastAPI monitoring application for Staging_Ingestor."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..exceptions import StagingIngestorError
from ..runtime import Runtime
from ..utils.config import ensure_runtime_configuration, get_settings
from ..utils.logging import setup_logger
from .routes import health, metrics, monitoring

logger = setup_logger(__name__, context={"job_type": "MonitoringAPI"})


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """
    Build the monitoring API.

    Args:
        runtime: Pre-built runtime (tests); built from settings at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
        owned = runtime is None
        if owned:
            settings = ensure_runtime_configuration(get_settings())
            app.state.runtime = Runtime(settings)
        else:
            app.state.runtime = runtime
        logger.info("Staging_Ingestor monitoring API starting up...")
        yield
        logger.info("Staging_Ingestor monitoring API shutting down...")
        if owned:
            app.state.runtime.close()

    app = FastAPI(
        title="Staging_Ingestor Monitoring API",
        description="Queue health, failed jobs and metrics for the staging ingestion pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(StagingIngestorError)
    async def staging_exception_handler(request: Request, exc: StagingIngestorError) -> JSONResponse:
        """Handle custom Staging_Ingestor exceptions."""
        logger.error("StagingIngestorError on %s: %s", request.url.path, exc, extra={"status": "error"})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": str(exc), "error_type": exc.__class__.__name__},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(metrics.router, tags=["monitoring"])
    app.include_router(monitoring.router, prefix="/monitoring", tags=["monitoring"])
    return app


app = create_app()
