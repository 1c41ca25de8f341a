"""
Operational endpoints: liveness, readiness and Prometheus metrics.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sync_avito.db.engine import check_engine_health

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check() -> JSONResponse:
    """
    Liveness check endpoint. Returns 200 while the process is serving requests.

    Example:
        >>> GET /health
        {"status": "ok"}
    """
    return JSONResponse(content={"status": "ok"})


@router.get("/ready")
def readiness_check() -> JSONResponse:
    """
    Readiness check endpoint.

    Returns 200 when the database is reachable, 503 otherwise.

    Example:
        >>> GET /ready
        {"status": "ready", "checks": {"database": "ok"}}
    """
    if check_engine_health():
        return JSONResponse(content={"status": "ready", "checks": {"database": "ok"}})

    logger.error("readiness_check_failed", reason="database_not_accessible")
    return JSONResponse(
        status_code=503,
        content={"status": "not ready", "checks": {"database": "failed"}},
    )


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """Prometheus metrics in text exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
