# ============================================================================
# CHANNEL REPOSITORY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Channel reads and credential validity updates
# PURPOSE: Database access for channels and channel_keys tables
# LAST_REVIEWED: 23 SEP 2026
# ============================================================================
"""
Channel Repository

Channels are read-only to the engine. The single write path updates the
validity columns of secondary credentials after a validate-keys call.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from core.models import Channel, ChannelKey
from .database import TABLE_CHANNELS, TABLE_CHANNEL_KEYS

logger = logging.getLogger(__name__)


class ChannelRepository:
    """Repository for Channel entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def get(self, channel_id: str) -> Optional[Channel]:
        """
        Get a channel (with its secondary keys) by ID.

        Args:
            channel_id: Channel identifier

        Returns:
            Channel instance or None if not found
        """
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_CHANNELS),
                (channel_id,),
            )
            row = await result.fetchone()
            if row is None:
                return None

            keys = await self._load_keys(conn, [channel_id])
            return self._row_to_channel(row, keys.get(channel_id, []))

    async def list_enabled(self) -> List[Channel]:
        """All enabled channels in display order."""
        return await self._list(
            sql.SQL("SELECT * FROM {} WHERE enabled = TRUE ORDER BY sort_order ASC, created_at DESC").format(
                TABLE_CHANNELS
            ),
            (),
        )

    async def list_by_ids(self, channel_ids: List[str]) -> List[Channel]:
        """Channels matching the given IDs (enabled or not), in display order."""
        if not channel_ids:
            return []
        return await self._list(
            sql.SQL("SELECT * FROM {} WHERE id = ANY(%s) ORDER BY sort_order ASC, created_at DESC").format(
                TABLE_CHANNELS
            ),
            (list(channel_ids),),
        )

    async def _list(self, query: sql.Composed, params: tuple) -> List[Channel]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(query, params)
            rows = await result.fetchall()
            keys = await self._load_keys(conn, [row["id"] for row in rows])
            return [self._row_to_channel(row, keys.get(row["id"], [])) for row in rows]

    async def _load_keys(self, conn, channel_ids: List[str]) -> Dict[str, List[ChannelKey]]:
        if not channel_ids:
            return {}
        result = await conn.execute(
            sql.SQL("SELECT * FROM {} WHERE channel_id = ANY(%s) ORDER BY created_at ASC").format(
                TABLE_CHANNEL_KEYS
            ),
            (channel_ids,),
        )
        grouped: Dict[str, List[ChannelKey]] = defaultdict(list)
        for row in await result.fetchall():
            grouped[row["channel_id"]].append(
                ChannelKey(
                    id=row["id"],
                    channel_id=row["channel_id"],
                    api_key=row["api_key"],
                    last_valid=row["last_valid"],
                    last_checked_at=row["last_checked_at"],
                )
            )
        return grouped

    async def update_key_validity(self, key_id: str, valid: bool, checked_at: datetime) -> bool:
        """
        Record the result of validating one secondary credential.

        Returns:
            True if the key existed and was updated
        """
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET last_valid = %s, last_checked_at = %s
                WHERE id = %s
                """).format(TABLE_CHANNEL_KEYS),
                (valid, checked_at, key_id),
            )
            return result.rowcount > 0

    def _row_to_channel(self, row: Dict[str, Any], keys: List[ChannelKey]) -> Channel:
        return Channel(
            id=row["id"],
            name=row["name"],
            base_url=row["base_url"],
            api_key=row["api_key"],
            proxy=row.get("proxy"),
            enabled=row["enabled"],
            sort_order=row.get("sort_order") or 0,
            keys=keys,
            created_at=row["created_at"],
        )
