# ============================================================================
# SCHEMA DDL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Infrastructure - Idempotent schema deployment
# PURPOSE: CREATE IF NOT EXISTS for every table the engine touches
# LAST_REVIEWED: 22 SEP 2026
# ============================================================================
"""
Schema DDL

All statements are idempotent (IF NOT EXISTS) and safe to run on every
startup. Applied by main.py when AUTO_BOOTSTRAP_SCHEMA=true.

Notable constraints:
    models(channel_id, model_name)            UNIQUE - model sync is insert-only
    probe_runs(run_key)                       UNIQUE - scheduled run dedup
    probe_jobs(run_id, model_id, endpoint_type) UNIQUE - enqueue idempotency
"""

import logging
from typing import List

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from .database import (
    SCHEMA,
    TABLE_CHANNELS,
    TABLE_CHANNEL_KEYS,
    TABLE_MODELS,
    TABLE_CHECK_LOGS,
    TABLE_SCHEDULER_CONFIG,
    TABLE_PROBE_RUNS,
    TABLE_PROBE_JOBS,
)

logger = logging.getLogger(__name__)


def _idx(name: str) -> sql.Identifier:
    return sql.Identifier(name)


def get_schema_statements() -> List[sql.Composed]:
    """Ordered DDL statements (tables before the tables that reference them)."""
    return [
        sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(SCHEMA)),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id TEXT PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            base_url VARCHAR(500) NOT NULL,
            api_key TEXT NOT NULL,
            proxy VARCHAR(500),
            enabled BOOLEAN NOT NULL DEFAULT TRUE,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """).format(TABLE_CHANNELS),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id TEXT PRIMARY KEY,
            channel_id TEXT NOT NULL REFERENCES {}(id) ON DELETE CASCADE,
            api_key TEXT NOT NULL,
            last_valid BOOLEAN,
            last_checked_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """).format(TABLE_CHANNEL_KEYS, TABLE_CHANNELS),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id TEXT PRIMARY KEY,
            channel_id TEXT NOT NULL REFERENCES {}(id) ON DELETE CASCADE,
            model_name VARCHAR(256) NOT NULL,
            detected_endpoints JSONB NOT NULL DEFAULT '[]'::jsonb,
            last_status BOOLEAN,
            last_latency INTEGER,
            last_checked_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (channel_id, model_name)
        )
        """).format(TABLE_MODELS, TABLE_CHANNELS),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id BIGSERIAL PRIMARY KEY,
            model_id TEXT NOT NULL REFERENCES {}(id) ON DELETE CASCADE,
            endpoint_type VARCHAR(16) NOT NULL,
            status VARCHAR(16) NOT NULL,
            latency INTEGER NOT NULL,
            status_code INTEGER,
            error_msg TEXT,
            response_content TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """).format(TABLE_CHECK_LOGS, TABLE_MODELS),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (model_id, created_at DESC)").format(
            _idx("idx_check_logs_model_created"), TABLE_CHECK_LOGS
        ),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (created_at)").format(
            _idx("idx_check_logs_created"), TABLE_CHECK_LOGS
        ),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id TEXT PRIMARY KEY,
            enabled BOOLEAN NOT NULL,
            cron_schedule TEXT NOT NULL,
            timezone VARCHAR(64) NOT NULL,
            channel_concurrency INTEGER NOT NULL,
            max_global_concurrency INTEGER NOT NULL,
            min_delay_ms INTEGER NOT NULL,
            max_delay_ms INTEGER NOT NULL,
            detect_all_channels BOOLEAN NOT NULL,
            selected_channel_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
            selected_model_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """).format(TABLE_SCHEDULER_CONFIG),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            run_id VARCHAR(64) PRIMARY KEY,
            run_key VARCHAR(128) NOT NULL UNIQUE,
            trigger VARCHAR(16) NOT NULL,
            job_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """).format(TABLE_PROBE_RUNS),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            job_id VARCHAR(64) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL REFERENCES {}(run_id) ON DELETE CASCADE,
            channel_id TEXT NOT NULL,
            model_id TEXT NOT NULL,
            model_name VARCHAR(256) NOT NULL,
            endpoint_type VARCHAR(16) NOT NULL,
            state VARCHAR(16) NOT NULL DEFAULT 'pending',
            seq BIGINT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            started_at TIMESTAMPTZ,
            finished_at TIMESTAMPTZ,
            UNIQUE (run_id, model_id, endpoint_type)
        )
        """).format(TABLE_PROBE_JOBS, TABLE_PROBE_RUNS),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (state, seq)").format(
            _idx("idx_probe_jobs_state_seq"), TABLE_PROBE_JOBS
        ),
    ]


async def deploy_schema(pool: AsyncConnectionPool) -> int:
    """
    Apply all DDL in one transaction.

    Returns:
        Number of statements executed
    """
    statements = get_schema_statements()
    async with pool.connection() as conn:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
    logger.info(f"Schema '{SCHEMA}' deployed ({len(statements)} statements)")
    return len(statements)


__all__ = ["get_schema_statements", "deploy_schema"]
