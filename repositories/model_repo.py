# ============================================================================
# MODEL REPOSITORY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Model reads and sync inserts
# PURPOSE: Database access for the models table
# LAST_REVIEWED: 23 SEP 2026
# ============================================================================
"""
Model Repository

Reads models for run selection and dashboards. The only write here is the
insert-only sync path; summary fields are written by CheckLogRepository
inside the result transaction.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from core.contracts import EndpointType
from core.models import ChannelModel
from .database import TABLE_MODELS

logger = logging.getLogger(__name__)

_ENDPOINT_VALUES = {e.value for e in EndpointType}


def row_to_model(row: Dict[str, Any]) -> ChannelModel:
    endpoints = row.get("detected_endpoints") or []
    return ChannelModel(
        id=row["id"],
        channel_id=row["channel_id"],
        model_name=row["model_name"],
        detected_endpoints=[EndpointType(e) for e in endpoints if e in _ENDPOINT_VALUES],
        last_status=row.get("last_status"),
        last_latency=row.get("last_latency"),
        last_checked_at=row.get("last_checked_at"),
    )


class ModelRepository:
    """Repository for ChannelModel entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def get(self, model_id: str) -> Optional[ChannelModel]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_MODELS),
                (model_id,),
            )
            row = await result.fetchone()
            return row_to_model(row) if row else None

    async def list_for_channels(self, channel_ids: List[str]) -> List[ChannelModel]:
        """Models of the given channels, ordered by channel then name."""
        if not channel_ids:
            return []
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE channel_id = ANY(%s)
                ORDER BY channel_id, model_name
                """).format(TABLE_MODELS),
                (list(channel_ids),),
            )
            return [row_to_model(row) for row in await result.fetchall()]

    async def list_by_ids(self, model_ids: List[str]) -> List[ChannelModel]:
        if not model_ids:
            return []
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = ANY(%s) ORDER BY channel_id, model_name").format(
                    TABLE_MODELS
                ),
                (list(model_ids),),
            )
            return [row_to_model(row) for row in await result.fetchall()]

    async def list_names(self, channel_id: str) -> List[str]:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT model_name FROM {} WHERE channel_id = %s").format(TABLE_MODELS),
                (channel_id,),
            )
            return [row[0] for row in await result.fetchall()]

    async def insert_missing(self, channel_id: str, model_names: List[str]) -> int:
        """
        Insert models not yet known for a channel, with empty health state.

        Existing rows are never modified or removed (history is kept).

        Returns:
            Number of rows inserted
        """
        if not model_names:
            return 0

        inserted = 0
        async with self.pool.connection() as conn:
            async with conn.transaction():
                for name in model_names:
                    result = await conn.execute(
                        sql.SQL("""
                        INSERT INTO {} (id, channel_id, model_name)
                        VALUES (%s, %s, %s)
                        ON CONFLICT (channel_id, model_name) DO NOTHING
                        """).format(TABLE_MODELS),
                        (uuid.uuid4().hex, channel_id, name),
                    )
                    inserted += result.rowcount
        logger.info(f"Inserted {inserted} new models for channel {channel_id}")
        return inserted
