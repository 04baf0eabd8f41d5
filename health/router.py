# ============================================================================
# HEALTH CHECK ROUTER
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - FastAPI health check endpoints
# PURPOSE: Liveness, readiness and full health endpoints
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Router

Endpoints:
    GET /livez               - Process alive. No dependencies.
    GET /readyz              - Required checks pass (database, worker pool).
    GET /health              - All checks with details and a per-category summary.
    GET /health/{check_name} - One check.

Response codes:
    200 - Healthy
    206 - Degraded
    503 - Unhealthy
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from health.core import HealthStatus
from health.executor import HealthCheckExecutor
from health.registry import get_registry
from __version__ import __version__, BUILD_DATE

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])

READY_TIMEOUT_SECONDS = 10.0
FULL_TIMEOUT_SECONDS = 30.0

_HTTP_CODES = {
    HealthStatus.HEALTHY: 200,
    HealthStatus.DEGRADED: 206,
    HealthStatus.UNHEALTHY: 503,
}


@health_router.get("/livez")
async def liveness_probe():
    """Instant liveness probe."""
    return {"status": "alive", "version": __version__, "build_date": BUILD_DATE}


@health_router.get("/readyz")
async def readiness_probe():
    """Ready when every required check is not unhealthy."""
    registry = get_registry()
    if len(registry) == 0:
        return {"status": "ready", "message": "No checks registered"}

    result = await HealthCheckExecutor(registry, overall_timeout=READY_TIMEOUT_SECONDS).execute_required()

    if result.status == HealthStatus.UNHEALTHY:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "checks": {
                    name: check.to_dict()
                    for name, check in result.checks.items()
                    if check.status == HealthStatus.UNHEALTHY
                },
                "total_duration_ms": round(result.total_duration_ms, 2),
            },
        )

    return {
        "status": "ready",
        "checks_passed": len(result.checks),
        "total_duration_ms": round(result.total_duration_ms, 2),
    }


@health_router.get("/health")
async def full_health_check():
    """All registered checks with a per-category summary."""
    registry = get_registry()
    if len(registry) == 0:
        return {"status": "healthy", "message": "No checks registered", "checks": {}}

    result = await HealthCheckExecutor(registry, overall_timeout=FULL_TIMEOUT_SECONDS).execute_all()

    body = result.to_dict()
    body["version"] = __version__
    body["build_date"] = BUILD_DATE

    summary = {}
    for name, check_result in result.checks.items():
        check = registry.get(name)
        if check is None:
            continue
        counts = summary.setdefault(
            check.category.value, {"healthy": 0, "degraded": 0, "unhealthy": 0}
        )
        counts[check_result.status.value] += 1
    body["summary"] = summary

    return JSONResponse(status_code=_HTTP_CODES[result.status], content=body)


@health_router.get("/health/{check_name}")
async def single_health_check(check_name: str):
    result = await HealthCheckExecutor().execute_single(check_name)

    if result is None:
        return JSONResponse(
            status_code=404,
            content={"error": f"Health check not found: {check_name}"},
        )

    return JSONResponse(status_code=_HTTP_CODES[result.status], content=result.to_dict())


__all__ = ["health_router"]
