# ============================================================================
# HEALTH CHECK PLUGINS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Health check implementations
# PURPOSE: Checks for the detection engine's components
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Plugins

Startup (priority 10):
- process, environment

Database (priority 20):
- postgres, schema

Engine (priority 30):
- worker_pool, scheduler

register_engine_checks() wires all of them into a registry once the
components exist.
"""

from typing import Optional

from health.checks.startup import ProcessCheck, EnvironmentCheck
from health.checks.database import PostgresCheck, SchemaCheck
from health.checks.engine import WorkerPoolCheck, TriggerSchedulerCheck
from health.registry import HealthCheckRegistry, get_registry


def register_engine_checks(
    pool,
    worker_pool,
    scheduler,
    registry: Optional[HealthCheckRegistry] = None,
) -> HealthCheckRegistry:
    registry = registry or get_registry()
    registry.register(ProcessCheck())
    registry.register(EnvironmentCheck())
    registry.register(PostgresCheck(pool))
    registry.register(SchemaCheck(pool))
    registry.register(WorkerPoolCheck(worker_pool))
    registry.register(TriggerSchedulerCheck(scheduler))
    return registry


__all__ = [
    "register_engine_checks",
    "ProcessCheck",
    "EnvironmentCheck",
    "PostgresCheck",
    "SchemaCheck",
    "WorkerPoolCheck",
    "TriggerSchedulerCheck",
]
