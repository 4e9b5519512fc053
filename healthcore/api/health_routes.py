"""API routes for readiness and liveness.

Endpoints:
  GET  /health         — readiness: fresh probe pass, 200 (healthy/degraded) or 503
  GET  /health/simple  — liveness: no probing, always 200 while the process responds
  GET  /health/last    — last known result per probe, from the result cache
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from healthcore.health.metrics import process_uptime
from healthcore.health.models import Status, utc_now

logger = logging.getLogger(__name__)

health_router = APIRouter()


def _error_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"status": Status.UNHEALTHY.value, "error": "Health check failed", "timestamp": utc_now()},
    )


@health_router.get("/health")
async def readiness(request: Request) -> JSONResponse:
    """Run every enabled probe now and return the full snapshot."""
    try:
        engine = request.app.state.health_engine
        snapshot = await engine.run_all()
        body = jsonable_encoder(snapshot.to_dict())
    except Exception:
        logger.exception("Readiness check failed")
        return _error_response()

    status_code = 503 if snapshot.status == Status.UNHEALTHY else 200
    return JSONResponse(status_code=status_code, content=body)


@health_router.get("/health/simple")
def liveness() -> JSONResponse:
    """Process is up and answering. Touches no dependency."""
    try:
        uptime = process_uptime()
    except Exception:
        logger.exception("Liveness check failed")
        return _error_response()
    return JSONResponse(
        status_code=200,
        content={"status": Status.HEALTHY.value, "uptime": uptime, "timestamp": utc_now()},
    )


@health_router.get("/health/last")
def last_results(request: Request) -> dict[str, Any]:
    """Most recent result per probe, without probing."""
    engine = request.app.state.health_engine
    results = engine.last_results()
    return jsonable_encoder({
        "results": {name: r.to_dict() for name, r in results.items()},
        "timestamp": utc_now(),
    })
