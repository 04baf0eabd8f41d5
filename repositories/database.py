# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: Provide connection pooling for psycopg3 async
# LAST_REVIEWED: 22 SEP 2026
# ============================================================================
"""
Database Connection Pool

Manages async PostgreSQL connections using psycopg3 and psycopg_pool.
Singleton pattern ensures one pool per application.

Connection settings come from DATABASE_URL, or from POSTGRES_* variables
when DATABASE_URL is not set.

Usage:
    from repositories.database import get_pool

    pool = await get_pool()
    async with pool.connection() as conn:
        result = await conn.execute("SELECT 1")
"""

import os
import logging
from typing import Optional

from psycopg import sql as psycopg_sql
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

# Global pool instance
_pool: Optional[AsyncConnectionPool] = None


def get_connection_string() -> str:
    """
    Get database connection string from environment.

    Priority:
    1. DATABASE_URL environment variable
    2. Individual POSTGRES_* components

    Returns:
        PostgreSQL connection string
    """
    if url := os.environ.get("DATABASE_URL"):
        return url

    host = os.environ.get("POSTGRES_HOST", "localhost")
    port = os.environ.get("POSTGRES_PORT", "5432")
    name = os.environ.get("POSTGRES_DB", "postgres")
    user = os.environ.get("POSTGRES_USER", "postgres")
    password = os.environ.get("POSTGRES_PASSWORD", "")
    sslmode = os.environ.get("POSTGRES_SSLMODE", "prefer")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def _safe_conninfo(conninfo: str) -> str:
    """Strip credentials for logging."""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        return conninfo.split("password=")[0] + "password=***"
    return conninfo


async def init_pool(
    min_size: int = 2,
    max_size: int = 10,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Initialize the global connection pool.

    Args:
        min_size: Minimum connections to maintain
        max_size: Maximum connections allowed
        connection_string: Override connection string (defaults to env)

    Returns:
        AsyncConnectionPool instance
    """
    global _pool

    if _pool is not None:
        logger.warning("Pool already initialized, returning existing pool")
        return _pool

    conninfo = connection_string or get_connection_string()
    logger.info(f"Initializing connection pool: {_safe_conninfo(conninfo)}")

    _pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        open=False,
    )

    await _pool.open()
    logger.info(f"Connection pool opened (min={min_size}, max={max_size})")

    return _pool


async def get_pool() -> AsyncConnectionPool:
    """
    Get the global connection pool, initializing if needed.

    Returns:
        AsyncConnectionPool instance
    """
    global _pool

    if _pool is None:
        await init_pool()

    return _pool


async def close_pool() -> None:
    """Close the global connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")


# ============================================================================
# SCHEMA CONSTANTS
# ============================================================================

SCHEMA = os.environ.get("DB_SCHEMA", "modelcheck")

# Table identifiers - use with psycopg sql.SQL().format() for injection-safe queries
TABLE_CHANNELS = psycopg_sql.Identifier(SCHEMA, "channels")
TABLE_CHANNEL_KEYS = psycopg_sql.Identifier(SCHEMA, "channel_keys")
TABLE_MODELS = psycopg_sql.Identifier(SCHEMA, "models")
TABLE_CHECK_LOGS = psycopg_sql.Identifier(SCHEMA, "check_logs")
TABLE_SCHEDULER_CONFIG = psycopg_sql.Identifier(SCHEMA, "scheduler_config")
TABLE_PROBE_RUNS = psycopg_sql.Identifier(SCHEMA, "probe_runs")
TABLE_PROBE_JOBS = psycopg_sql.Identifier(SCHEMA, "probe_jobs")


__all__ = [
    "get_connection_string",
    "init_pool",
    "get_pool",
    "close_pool",
    "SCHEMA",
    "TABLE_CHANNELS",
    "TABLE_CHANNEL_KEYS",
    "TABLE_MODELS",
    "TABLE_CHECK_LOGS",
    "TABLE_SCHEDULER_CONFIG",
    "TABLE_PROBE_RUNS",
    "TABLE_PROBE_JOBS",
]
