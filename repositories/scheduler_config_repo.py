# ============================================================================
# SCHEDULER CONFIG REPOSITORY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Singleton config persistence
# PURPOSE: Database access for the scheduler_config table
# LAST_REVIEWED: 24 SEP 2026
# ============================================================================
"""
Scheduler Config Repository

One row, id="default". get() returns None until the first save; the config
service seeds it from environment defaults.
"""

import logging
from typing import Any, Dict, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.models import SchedulerConfig, SCHEDULER_CONFIG_ID
from .database import TABLE_SCHEDULER_CONFIG

logger = logging.getLogger(__name__)


class SchedulerConfigRepository:
    """Repository for the SchedulerConfig singleton."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def get(self) -> Optional[SchedulerConfig]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_SCHEDULER_CONFIG),
                (SCHEDULER_CONFIG_ID,),
            )
            row = await result.fetchone()
            return self._row_to_config(row) if row else None

    async def save(self, config: SchedulerConfig) -> SchedulerConfig:
        """Upsert the singleton row."""
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    id, enabled, cron_schedule, timezone, channel_concurrency,
                    max_global_concurrency, min_delay_ms, max_delay_ms,
                    detect_all_channels, selected_channel_ids, selected_model_ids, updated_at
                ) VALUES (
                    %(id)s, %(enabled)s, %(cron_schedule)s, %(timezone)s, %(channel_concurrency)s,
                    %(max_global_concurrency)s, %(min_delay_ms)s, %(max_delay_ms)s,
                    %(detect_all_channels)s, %(selected_channel_ids)s, %(selected_model_ids)s, %(updated_at)s
                )
                ON CONFLICT (id) DO UPDATE SET
                    enabled = EXCLUDED.enabled,
                    cron_schedule = EXCLUDED.cron_schedule,
                    timezone = EXCLUDED.timezone,
                    channel_concurrency = EXCLUDED.channel_concurrency,
                    max_global_concurrency = EXCLUDED.max_global_concurrency,
                    min_delay_ms = EXCLUDED.min_delay_ms,
                    max_delay_ms = EXCLUDED.max_delay_ms,
                    detect_all_channels = EXCLUDED.detect_all_channels,
                    selected_channel_ids = EXCLUDED.selected_channel_ids,
                    selected_model_ids = EXCLUDED.selected_model_ids,
                    updated_at = EXCLUDED.updated_at
                """).format(TABLE_SCHEDULER_CONFIG),
                {
                    "id": config.id,
                    "enabled": config.enabled,
                    "cron_schedule": config.cron_schedule,
                    "timezone": config.timezone,
                    "channel_concurrency": config.channel_concurrency,
                    "max_global_concurrency": config.max_global_concurrency,
                    "min_delay_ms": config.min_delay_ms,
                    "max_delay_ms": config.max_delay_ms,
                    "detect_all_channels": config.detect_all_channels,
                    "selected_channel_ids": Json(list(config.selected_channel_ids)),
                    "selected_model_ids": Json(list(config.selected_model_ids)),
                    "updated_at": config.updated_at,
                },
            )
        logger.info(f"Saved scheduler config (schedule={config.cron_schedule!r}, enabled={config.enabled})")
        return config

    def _row_to_config(self, row: Dict[str, Any]) -> SchedulerConfig:
        return SchedulerConfig(
            id=row["id"],
            enabled=row["enabled"],
            cron_schedule=row["cron_schedule"],
            timezone=row["timezone"],
            channel_concurrency=row["channel_concurrency"],
            max_global_concurrency=row["max_global_concurrency"],
            min_delay_ms=row["min_delay_ms"],
            max_delay_ms=row["max_delay_ms"],
            detect_all_channels=row["detect_all_channels"],
            selected_channel_ids=row.get("selected_channel_ids") or [],
            selected_model_ids=row.get("selected_model_ids") or [],
            updated_at=row.get("updated_at"),
        )
