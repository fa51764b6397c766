"""Prometheus metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ...monitoring.metrics import set_queue_gauges
from ...runtime import Runtime
from ..dependencies import get_runtime

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
def metrics(runtime: Runtime = Depends(get_runtime)) -> Response:
    """Refresh queue gauges and expose Prometheus metrics collected by the service."""

    health = runtime.monitor.get_queue_health()
    set_queue_gauges(health.queue, health.job_counts.model_dump(), health.health)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
