# ============================================================================
# ENGINE HEALTH CHECKS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Worker pool and scheduler checks
# PURPOSE: Confirm probes are being dispatched and runs are scheduled
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Engine Health Checks

Priority 30:
- WorkerPoolCheck: dispatch loop is running and not stalled
- TriggerSchedulerCheck: timer is running and has a next fire time
"""

import logging
from datetime import datetime, timezone

from health.core import (
    HealthCheckPlugin,
    HealthCheckResult,
    HealthCheckCategory,
)

logger = logging.getLogger(__name__)


class WorkerPoolCheck(HealthCheckPlugin):
    """
    Dispatch loop health.

    A loop that has not cycled for STALL_SECONDS while jobs are pending is
    reported degraded.
    """

    name = "worker_pool"
    category = HealthCheckCategory.ENGINE
    timeout_seconds = 2.0

    STALL_SECONDS = 300

    def __init__(self, worker_pool):
        self.worker_pool = worker_pool

    async def check(self) -> HealthCheckResult:
        stats = self.worker_pool.get_stats()
        details = {
            "active": stats["active"],
            "dispatched": stats["dispatched"],
            "errors": stats["errors"],
            "pending": stats["queue"]["pending"],
            "limits": {
                "channel": stats["limits"]["channel_limit"],
                "global": stats["limits"]["global_limit"],
            },
        }

        if not self.worker_pool.is_running:
            return HealthCheckResult.unhealthy(message="Worker pool not running", **details)

        last_cycle = stats.get("last_cycle_at")
        if last_cycle and details["pending"]:
            idle = (datetime.now(timezone.utc) - datetime.fromisoformat(last_cycle)).total_seconds()
            if idle > self.STALL_SECONDS:
                return HealthCheckResult.degraded(
                    message=f"Dispatch loop idle for {int(idle)}s with pending jobs",
                    idle_seconds=int(idle),
                    **details,
                )

        return HealthCheckResult.healthy(message="Worker pool dispatching", **details)


class TriggerSchedulerCheck(HealthCheckPlugin):
    """Timer is running. A disabled schedule is healthy but has no next run."""

    name = "scheduler"
    category = HealthCheckCategory.ENGINE
    timeout_seconds = 2.0
    required_for_ready = False

    def __init__(self, scheduler):
        self.scheduler = scheduler

    async def check(self) -> HealthCheckResult:
        stats = self.scheduler.get_stats()

        if not self.scheduler.running:
            return HealthCheckResult.unhealthy(message="Trigger scheduler not running", **stats)

        if not stats["enabled"]:
            return HealthCheckResult.healthy(message="Scheduled detection disabled", **stats)

        if stats["next_run"] is None:
            return HealthCheckResult.degraded(
                message="Schedule enabled but has no upcoming fire time", **stats
            )

        return HealthCheckResult.healthy(message=f"Next run at {stats['next_run']}", **stats)


__all__ = [
    "WorkerPoolCheck",
    "TriggerSchedulerCheck",
]
