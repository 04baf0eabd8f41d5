# ============================================================================
# DATABASE HEALTH CHECKS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - PostgreSQL and schema checks
# PURPOSE: Database connectivity and schema availability
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Database Health Checks

Priority 20:
- PostgresCheck: a pooled connection answers SELECT 1
- SchemaCheck: every engine table exists in the configured schema
"""

import logging
from typing import List

from psycopg.rows import dict_row

from health.core import (
    HealthCheckPlugin,
    HealthCheckResult,
    HealthCheckCategory,
)
from repositories.database import SCHEMA

logger = logging.getLogger(__name__)

ENGINE_TABLES = [
    "channels",
    "channel_keys",
    "models",
    "check_logs",
    "scheduler_config",
    "probe_runs",
    "probe_jobs",
]


class PostgresCheck(HealthCheckPlugin):
    """Connection pool can hand out a working connection."""

    name = "postgres"
    category = HealthCheckCategory.DATABASE
    timeout_seconds = 5.0

    def __init__(self, pool):
        self.pool = pool

    async def check(self) -> HealthCheckResult:
        async with self.pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute("SELECT 1 AS health_check")
                row = await cur.fetchone()

        if not row or row.get("health_check") != 1:
            return HealthCheckResult.unhealthy(message="PostgreSQL query returned unexpected result")

        stats = self.pool.get_stats()
        return HealthCheckResult.healthy(
            message="PostgreSQL connected",
            pool_size=stats.get("pool_size"),
            pool_available=stats.get("pool_available"),
            requests_waiting=stats.get("requests_waiting", 0),
        )


class SchemaCheck(HealthCheckPlugin):
    """Engine tables exist. Missing tables mean the schema was never deployed."""

    name = "schema"
    category = HealthCheckCategory.DATABASE
    timeout_seconds = 5.0

    def __init__(self, pool, schema: str = SCHEMA):
        self.pool = pool
        self.schema = schema

    async def check(self) -> HealthCheckResult:
        async with self.pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT table_name FROM information_schema.tables
                    WHERE table_schema = %s AND table_name = ANY(%s)
                    """,
                    (self.schema, ENGINE_TABLES),
                )
                rows = await cur.fetchall()

        found = {row["table_name"] for row in rows}
        missing: List[str] = [t for t in ENGINE_TABLES if t not in found]

        if missing:
            return HealthCheckResult.unhealthy(
                message=f"Schema {self.schema} is missing tables: {', '.join(missing)}",
                schema=self.schema,
                missing=missing,
                hint="Set AUTO_BOOTSTRAP_SCHEMA=true or deploy the schema manually",
            )

        return HealthCheckResult.healthy(
            message=f"Schema {self.schema} available",
            schema=self.schema,
            tables=len(found),
        )


__all__ = [
    "PostgresCheck",
    "SchemaCheck",
    "ENGINE_TABLES",
]
