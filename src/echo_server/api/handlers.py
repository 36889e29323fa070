"""Echo, health and metrics endpoints."""

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from .errors import error_body
from .metrics import RequestMetrics

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
JSON_MEDIA_TYPE = "application/json"
HEALTH_BODY = b'{"healthy":true}\n'

router = APIRouter()


@router.post(f"{API_PREFIX}/echo")
async def echo(request: Request) -> Response:
    """Return the request body unchanged."""
    try:
        body = await request.body()
    except Exception as e:
        logger.error(f"Failed to read request body: {e}")
        return JSONResponse(status_code=500, content=error_body(str(e)))

    return Response(content=body, status_code=200, media_type=JSON_MEDIA_TYPE)


@router.get("/health")
async def health() -> Response:
    """Liveness check."""
    return Response(content=HEALTH_BODY, status_code=200, media_type=JSON_MEDIA_TYPE)


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Prometheus text exposition of the request metrics."""
    request_metrics: RequestMetrics = request.app.state.metrics
    return Response(content=request_metrics.render(), media_type=request_metrics.content_type)
