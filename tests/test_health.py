# ============================================================================
# HEALTH CHECK TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - Health plugins, executor and endpoints
# PURPOSE: Verify tiered execution, timeouts and /livez /readyz /health
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Tests

Covers:
1. Status aggregation (worst wins) and category priorities
2. Executor: timeouts and exceptions become unhealthy
3. Engine checks over worker pool / scheduler stats
4. /livez, /readyz, /health, /health/{name} status codes

Run with:
    pytest tests/test_health.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from health import (
    HealthCheckCategory,
    HealthCheckExecutor,
    HealthCheckPlugin,
    HealthCheckResult,
    HealthStatus,
    get_registry,
    health_router,
    reset_registry,
)
from health.checks.engine import TriggerSchedulerCheck, WorkerPoolCheck


# ============================================================================
# FIXTURES
# ============================================================================

class StaticCheck(HealthCheckPlugin):
    """Returns a fixed result."""

    category = HealthCheckCategory.ENGINE

    def __init__(self, name, result, required=True):
        self.name = name
        self.result = result
        self.required_for_ready = required

    async def check(self) -> HealthCheckResult:
        return self.result


class SlowCheck(HealthCheckPlugin):
    name = "slow"
    category = HealthCheckCategory.DATABASE
    timeout_seconds = 0.05

    async def check(self) -> HealthCheckResult:
        await asyncio.sleep(1)
        return HealthCheckResult.healthy()


class BrokenCheck(HealthCheckPlugin):
    name = "broken"
    category = HealthCheckCategory.STARTUP

    async def check(self) -> HealthCheckResult:
        raise RuntimeError("connection refused")


@pytest.fixture(autouse=True)
def clean_registry():
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(health_router)
    return TestClient(app)


def _pool_stats(pending=0, last_cycle_at=None):
    return {
        "active": 1,
        "dispatched": 10,
        "errors": 0,
        "last_cycle_at": last_cycle_at,
        "queue": {"pending": pending},
        "limits": {"channel_limit": 5, "global_limit": 30},
    }


# ============================================================================
# CORE
# ============================================================================

class TestCore:

    def test_aggregate_worst_wins(self):
        assert HealthStatus.aggregate([]) == HealthStatus.HEALTHY
        assert HealthStatus.aggregate([HealthStatus.HEALTHY, HealthStatus.DEGRADED]) == HealthStatus.DEGRADED
        assert HealthStatus.aggregate([HealthStatus.DEGRADED, HealthStatus.UNHEALTHY]) == HealthStatus.UNHEALTHY

    def test_default_priority_from_category(self):
        assert SlowCheck.priority == HealthCheckCategory.DATABASE.default_priority
        assert BrokenCheck.priority < SlowCheck.priority

    def test_from_exception(self):
        result = HealthCheckResult.from_exception(ValueError("nope"))
        assert result.status == HealthStatus.UNHEALTHY
        assert result.details == {"exception_type": "ValueError"}


# ============================================================================
# EXECUTOR
# ============================================================================

class TestExecutor:

    def test_timeout_and_exception_are_unhealthy(self):
        registry = get_registry()
        registry.register(SlowCheck())
        registry.register(BrokenCheck())
        registry.register(StaticCheck("ok", HealthCheckResult.healthy("fine")))

        result = asyncio.run(HealthCheckExecutor(registry, overall_timeout=5).execute_all())

        assert result.status == HealthStatus.UNHEALTHY
        assert result.checks["slow"].status == HealthStatus.UNHEALTHY
        assert result.checks["broken"].message == "connection refused"
        assert result.checks["ok"].status == HealthStatus.HEALTHY

    def test_required_only(self):
        registry = get_registry()
        registry.register(StaticCheck("db", HealthCheckResult.healthy()))
        registry.register(StaticCheck("extra", HealthCheckResult.unhealthy("down"), required=False))

        result = asyncio.run(HealthCheckExecutor(registry).execute_required())

        assert result.status == HealthStatus.HEALTHY
        assert list(result.checks) == ["db"]

    def test_single_unknown(self):
        assert asyncio.run(HealthCheckExecutor(get_registry()).execute_single("nope")) is None


# ============================================================================
# ENGINE CHECKS
# ============================================================================

class TestEngineChecks:

    def test_worker_pool_not_running(self):
        pool = MagicMock(is_running=False)
        pool.get_stats.return_value = _pool_stats()

        result = asyncio.run(WorkerPoolCheck(pool).check())

        assert result.status == HealthStatus.UNHEALTHY

    def test_worker_pool_stalled_with_pending(self):
        stale = (datetime.now(timezone.utc) - timedelta(minutes=10)).isoformat()
        pool = MagicMock(is_running=True)
        pool.get_stats.return_value = _pool_stats(pending=4, last_cycle_at=stale)

        result = asyncio.run(WorkerPoolCheck(pool).check())

        assert result.status == HealthStatus.DEGRADED
        assert result.details["pending"] == 4

    def test_worker_pool_idle_without_work_is_healthy(self):
        stale = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()
        pool = MagicMock(is_running=True)
        pool.get_stats.return_value = _pool_stats(pending=0, last_cycle_at=stale)

        assert asyncio.run(WorkerPoolCheck(pool).check()).status == HealthStatus.HEALTHY

    @pytest.mark.parametrize("running,enabled,next_run,expected", [
        (False, True, "2026-10-18T08:00:00+00:00", HealthStatus.UNHEALTHY),
        (True, False, None, HealthStatus.HEALTHY),
        (True, True, None, HealthStatus.DEGRADED),
        (True, True, "2026-10-18T08:00:00+00:00", HealthStatus.HEALTHY),
    ])
    def test_scheduler(self, running, enabled, next_run, expected):
        scheduler = MagicMock(running=running)
        scheduler.get_stats.return_value = {"running": running, "enabled": enabled, "next_run": next_run}

        assert asyncio.run(TriggerSchedulerCheck(scheduler).check()).status == expected


# ============================================================================
# ENDPOINTS
# ============================================================================

class TestEndpoints:

    def test_livez(self, client):
        body = client.get("/livez").json()
        assert body["status"] == "alive"
        assert "version" in body

    def test_readyz_no_checks(self, client):
        assert client.get("/readyz").json()["status"] == "ready"

    def test_readyz_not_ready(self, client):
        get_registry().register(StaticCheck("postgres", HealthCheckResult.unhealthy("no pool")))
        get_registry().register(StaticCheck("worker_pool", HealthCheckResult.healthy()))

        response = client.get("/readyz")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"
        assert list(response.json()["checks"]) == ["postgres"]

    def test_health_degraded_is_206(self, client):
        get_registry().register(StaticCheck("worker_pool", HealthCheckResult.degraded("stalled")))
        get_registry().register(StaticCheck("scheduler", HealthCheckResult.healthy()))

        response = client.get("/health")

        assert response.status_code == 206
        body = response.json()
        assert body["status"] == "degraded"
        assert body["summary"] == {"engine": {"healthy": 1, "degraded": 1, "unhealthy": 0}}

    def test_single_check(self, client):
        get_registry().register(StaticCheck("scheduler", HealthCheckResult.healthy("ok")))

        assert client.get("/health/scheduler").status_code == 200
        missing = client.get("/health/nope")
        assert missing.status_code == 404
        assert "nope" in missing.json()["error"]
