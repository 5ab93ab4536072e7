"""Prometheus scrape endpoint for the in-process counters."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from coredna.core.metrics import METRICS

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=PlainTextResponse)
def metrics_endpoint():
    return PlainTextResponse(METRICS.export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
