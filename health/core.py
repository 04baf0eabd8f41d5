# ============================================================================
# HEALTH CHECK CORE TYPES
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Base classes for health checks
# PURPOSE: Health check plugin interface and result types
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Health Check Core Types

Status hierarchy (worst wins):
- healthy: engine fully operational
- degraded: probes still run but something needs attention
- unhealthy: detection cannot make progress

Categories run in priority order:
1. Startup (10): process and environment
2. Database (20): connection pool and schema
3. Engine (30): worker pool and trigger scheduler
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Health check status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def __lt__(self, other: "HealthStatus") -> bool:
        return self.severity < other.severity

    @classmethod
    def aggregate(cls, statuses: List["HealthStatus"]) -> "HealthStatus":
        """Worst status wins; no statuses is healthy."""
        if not statuses:
            return cls.HEALTHY
        return max(statuses, key=lambda s: s.severity)


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


class HealthCheckCategory(str, Enum):
    """Health check categories with default priorities."""
    STARTUP = "startup"
    DATABASE = "database"
    ENGINE = "engine"

    @property
    def default_priority(self) -> int:
        return {
            HealthCheckCategory.STARTUP: 10,
            HealthCheckCategory.DATABASE: 20,
            HealthCheckCategory.ENGINE: 30,
        }[self]


@dataclass
class HealthCheckResult:
    """Result from a single health check."""
    status: HealthStatus
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0
    checked_at: datetime = field(default_factory=_now)

    @classmethod
    def healthy(cls, message: str = None, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.HEALTHY, message=message, details=details)

    @classmethod
    def degraded(cls, message: str, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.DEGRADED, message=message, details=details)

    @classmethod
    def unhealthy(cls, message: str, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.UNHEALTHY, message=message, details=details)

    @classmethod
    def from_exception(cls, e: Exception) -> "HealthCheckResult":
        return cls(
            status=HealthStatus.UNHEALTHY,
            message=str(e) or type(e).__name__,
            details={"exception_type": type(e).__name__},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result = {
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class AggregatedHealthResult:
    """Aggregated result from multiple health checks."""
    status: HealthStatus
    checks: Dict[str, HealthCheckResult]
    total_duration_ms: float
    checked_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": {
                name: result.to_dict()
                for name, result in self.checks.items()
            },
            "total_duration_ms": round(self.total_duration_ms, 2),
            "checked_at": self.checked_at.isoformat(),
        }


class HealthCheckPlugin(ABC):
    """
    Base class for health check plugins.

    Subclass, set the class attributes and implement check(). Checks that
    need engine components take them in __init__ and are registered as
    instances at startup.

    Attributes:
        name: Unique identifier for the check
        category: Check category (determines default priority)
        priority: Execution priority (lower runs first)
        timeout_seconds: Max execution time before the check counts as failed
        required_for_ready: If True, failure blocks /readyz

    Example:
        class PostgresCheck(HealthCheckPlugin):
            name = "postgres"
            category = HealthCheckCategory.DATABASE

            def __init__(self, pool):
                self.pool = pool

            async def check(self) -> HealthCheckResult:
                async with self.pool.connection() as conn:
                    await conn.execute("SELECT 1")
                return HealthCheckResult.healthy()
    """

    name: str = "unnamed"
    category: HealthCheckCategory = HealthCheckCategory.ENGINE
    priority: Optional[int] = None
    timeout_seconds: float = 10.0
    required_for_ready: bool = True

    @abstractmethod
    async def check(self) -> HealthCheckResult:
        """Execute the check."""

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.priority is None:
            cls.priority = cls.category.default_priority


__all__ = [
    "HealthStatus",
    "HealthCheckCategory",
    "HealthCheckResult",
    "AggregatedHealthResult",
    "HealthCheckPlugin",
]
