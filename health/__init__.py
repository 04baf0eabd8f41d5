# ============================================================================
# HEALTH CHECK MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Health check plugin system
# PURPOSE: Kubernetes probes and component health reporting
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Module

- /livez: process alive (instant)
- /readyz: required checks pass (database, worker pool)
- /health: every check with details

Usage:
    from health import health_router
    from health.checks import register_engine_checks

    register_engine_checks(pool, worker_pool, scheduler)
    app.include_router(health_router)
"""

from health.core import (
    HealthStatus,
    HealthCheckResult,
    HealthCheckPlugin,
    HealthCheckCategory,
)
from health.registry import (
    HealthCheckRegistry,
    get_registry,
    reset_registry,
)
from health.executor import HealthCheckExecutor
from health.router import health_router

__all__ = [
    "HealthStatus",
    "HealthCheckResult",
    "HealthCheckPlugin",
    "HealthCheckCategory",
    "HealthCheckRegistry",
    "get_registry",
    "reset_registry",
    "HealthCheckExecutor",
    "health_router",
]
