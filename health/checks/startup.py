# ============================================================================
# STARTUP HEALTH CHECKS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Startup health checks
# PURPOSE: Process and environment checks
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Startup Health Checks

Run first (priority 10):
- ProcessCheck: always healthy if the process answers
- EnvironmentCheck: database settings are present
"""

import os
import platform
import sys
import logging

from health.core import (
    HealthCheckPlugin,
    HealthCheckResult,
    HealthCheckCategory,
)

logger = logging.getLogger(__name__)


class ProcessCheck(HealthCheckPlugin):
    """Proves the event loop is responsive."""

    name = "process"
    category = HealthCheckCategory.STARTUP
    timeout_seconds = 1.0
    required_for_ready = False

    async def check(self) -> HealthCheckResult:
        return HealthCheckResult.healthy(
            message="Process running",
            python_version=sys.version.split()[0],
            platform=platform.platform(),
            pid=os.getpid(),
        )


class EnvironmentCheck(HealthCheckPlugin):
    """
    Database settings come from DATABASE_URL or POSTGRES_HOST/POSTGRES_DB.

    Missing settings fall back to a local default, which is rarely what a
    deployment wants, so they report degraded rather than unhealthy.
    """

    name = "environment"
    category = HealthCheckCategory.STARTUP
    timeout_seconds = 1.0
    required_for_ready = False

    POSTGRES_VARS = ["POSTGRES_HOST", "POSTGRES_DB"]

    async def check(self) -> HealthCheckResult:
        if os.environ.get("DATABASE_URL"):
            return HealthCheckResult.healthy(message="DATABASE_URL set", source="DATABASE_URL")

        missing = [var for var in self.POSTGRES_VARS if not os.environ.get(var)]
        if missing:
            return HealthCheckResult.degraded(
                message=f"Using default database settings, missing: {', '.join(missing)}",
                missing=missing,
            )

        return HealthCheckResult.healthy(message="Database settings present", source="POSTGRES_*")


__all__ = [
    "ProcessCheck",
    "EnvironmentCheck",
]
