# ============================================================================
# HEALTH CHECK REGISTRY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Health check plugin registration
# PURPOSE: Hold the checks the health endpoints execute
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Registry

Checks are registered as instances during application startup, once the
components they inspect exist:

    registry = get_registry()
    registry.register(PostgresCheck(pool))
    registry.register(WorkerPoolCheck(worker_pool))
"""

import logging
from typing import Dict, List, Optional

from health.core import HealthCheckPlugin

logger = logging.getLogger(__name__)


class HealthCheckRegistry:
    """Named collection of health checks, ordered by priority on read."""

    def __init__(self):
        self._checks: Dict[str, HealthCheckPlugin] = {}

    def register(self, check: HealthCheckPlugin) -> None:
        if check.name in self._checks:
            logger.warning(f"Overwriting health check: {check.name}")

        self._checks[check.name] = check
        logger.debug(
            f"Registered health check: {check.name} "
            f"(category={check.category.value}, priority={check.priority})"
        )

    def unregister(self, name: str) -> bool:
        return self._checks.pop(name, None) is not None

    def get(self, name: str) -> Optional[HealthCheckPlugin]:
        return self._checks.get(name)

    def get_checks_by_priority(self) -> List[HealthCheckPlugin]:
        """All checks, lower priority first."""
        return sorted(self._checks.values(), key=lambda c: c.priority)

    def get_required_checks(self) -> List[HealthCheckPlugin]:
        """Checks that gate /readyz."""
        return [c for c in self.get_checks_by_priority() if c.required_for_ready]

    def clear(self) -> None:
        self._checks.clear()

    def __len__(self) -> int:
        return len(self._checks)

    def __contains__(self, name: str) -> bool:
        return name in self._checks


# ============================================================================
# GLOBAL REGISTRY
# ============================================================================

_registry: Optional[HealthCheckRegistry] = None


def get_registry() -> HealthCheckRegistry:
    """Get the global health check registry."""
    global _registry
    if _registry is None:
        _registry = HealthCheckRegistry()
    return _registry


def reset_registry() -> None:
    """Drop the global registry (tests, shutdown)."""
    global _registry
    _registry = None


__all__ = [
    "HealthCheckRegistry",
    "get_registry",
    "reset_registry",
]
