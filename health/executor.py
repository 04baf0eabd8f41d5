# ============================================================================
# HEALTH CHECK EXECUTOR
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Health check execution
# PURPOSE: Run checks tier by tier with per-check timeouts
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Executor

Checks are grouped into tiers by priority. Tiers run in order so that a
database outage shows up before the engine checks that depend on it;
checks inside a tier run concurrently. Each check has its own timeout and
the whole run has an overall budget.
"""

import asyncio
import logging
import time
from itertools import groupby
from typing import Dict, List, Optional

from health.core import (
    AggregatedHealthResult,
    HealthCheckPlugin,
    HealthCheckResult,
    HealthStatus,
)
from health.registry import HealthCheckRegistry, get_registry

logger = logging.getLogger(__name__)


class HealthCheckExecutor:
    """Executes registered checks and aggregates their results."""

    def __init__(
        self,
        registry: Optional[HealthCheckRegistry] = None,
        overall_timeout: float = 30.0,
    ):
        self.registry = registry or get_registry()
        self.overall_timeout = overall_timeout

    async def execute_all(self, early_terminate: bool = False) -> AggregatedHealthResult:
        """
        Execute every registered check.

        Args:
            early_terminate: Skip later tiers once a tier reports unhealthy
        """
        start = time.monotonic()
        results: Dict[str, HealthCheckResult] = {}
        checks = self.registry.get_checks_by_priority()

        for priority, tier in groupby(checks, key=lambda c: c.priority):
            tier = list(tier)
            remaining = self.overall_timeout - (time.monotonic() - start)

            if remaining <= 0:
                logger.warning(f"Health check budget ({self.overall_timeout}s) exhausted")
                for check in tier:
                    results[check.name] = HealthCheckResult.unhealthy(
                        "Skipped: overall timeout exceeded"
                    )
                continue

            tier_results = await self._execute_tier(tier, remaining)
            results.update(tier_results)

            if early_terminate and any(
                r.status == HealthStatus.UNHEALTHY for r in tier_results.values()
            ):
                logger.info(f"Health checks stopped after tier {priority}: unhealthy result")
                break

        return self._aggregate(results, start)

    async def execute_required(self) -> AggregatedHealthResult:
        """Execute only the checks that gate readiness, all at once."""
        start = time.monotonic()
        results = await self._execute_tier(
            self.registry.get_required_checks(), self.overall_timeout
        )
        return self._aggregate(results, start)

    async def execute_single(self, name: str) -> Optional[HealthCheckResult]:
        check = self.registry.get(name)
        if check is None:
            return None
        return await self._execute_check(check)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _execute_tier(
        self,
        checks: List[HealthCheckPlugin],
        remaining_timeout: float,
    ) -> Dict[str, HealthCheckResult]:
        if not checks:
            return {}

        tasks = {
            check.name: asyncio.create_task(self._execute_check(check))
            for check in checks
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=remaining_timeout)

        for task in pending:
            task.cancel()

        results = {}
        for name, task in tasks.items():
            if task in done:
                results[name] = task.result()
            else:
                results[name] = HealthCheckResult.unhealthy(
                    f"Skipped: overall timeout ({self.overall_timeout}s) exceeded"
                )
        return results

    async def _execute_check(self, check: HealthCheckPlugin) -> HealthCheckResult:
        """Run one check; timeouts and exceptions become unhealthy results."""
        start = time.monotonic()

        try:
            result = await asyncio.wait_for(check.check(), timeout=check.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Health check {check.name} timed out after {check.timeout_seconds}s")
            result = HealthCheckResult.unhealthy(f"Timeout after {check.timeout_seconds}s")
        except Exception as e:
            logger.error(f"Health check {check.name} failed: {e}")
            result = HealthCheckResult.from_exception(e)

        result.duration_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Health check {check.name}: {result.status.value} ({result.duration_ms:.1f}ms)")
        return result

    @staticmethod
    def _aggregate(results: Dict[str, HealthCheckResult], start: float) -> AggregatedHealthResult:
        return AggregatedHealthResult(
            status=HealthStatus.aggregate([r.status for r in results.values()]),
            checks=results,
            total_duration_ms=(time.monotonic() - start) * 1000,
        )


__all__ = ["HealthCheckExecutor"]
