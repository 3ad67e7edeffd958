"""API router for the notebook controller."""

import logging

from fastapi import APIRouter, Response

from notebook_controller.api.models import HealthResponse
from notebook_controller.metrics import CONTENT_TYPE, metrics

# Set up logger
logger = logging.getLogger("notebook-controller")

# Probes live at the root, everything else is versioned
health_router = APIRouter()
api_router = APIRouter(prefix="/api/v1")


@health_router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Report that the controller process is alive."""
    return HealthResponse()


@api_router.get("/metrics")
async def get_metrics() -> Response:
    """Return the notebook lifecycle metrics for Prometheus to scrape."""
    logger.debug("Received request for metrics")
    return Response(content=metrics.render(), media_type=CONTENT_TYPE)
