# ============================================================================
# CHECK LOG REPOSITORY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Probe history and model summary writes
# PURPOSE: Database access for check_logs; transactional summary update
# LAST_REVIEWED: 24 SEP 2026
# ============================================================================
"""
Check Log Repository

record() is the single write path for health state. In one transaction it:

    1. locks the model row (SELECT ... FOR UPDATE)
    2. appends the CheckLog
    3. reads the model's most recent `window` logs
    4. calls recompute(model_name, logs) and writes the summary back

Locking the model row serializes concurrent results for the same model (two
endpoint types finishing at once), so last-write-wins per endpoint type
holds without lost updates.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import CheckStatus, EndpointType
from core.errors import NotFoundError
from core.models import CheckLog, ModelSummary
from .database import TABLE_CHECK_LOGS, TABLE_MODELS

logger = logging.getLogger(__name__)

Recompute = Callable[[str, List[CheckLog]], ModelSummary]


class CheckLogRepository:
    """Repository for CheckLog entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def record(self, log: CheckLog, recompute: Recompute, window: int = 7) -> ModelSummary:
        """
        Append a check log and recompute the model summary atomically.

        Args:
            log: The probe result to append
            recompute: Pure function (model_name, latest logs newest-first) -> summary
            window: Number of recent logs to consider

        Returns:
            The summary written to the model row

        Raises:
            NotFoundError: the model no longer exists
        """
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            async with conn.transaction():
                result = await conn.execute(
                    sql.SQL("SELECT model_name FROM {} WHERE id = %s FOR UPDATE").format(TABLE_MODELS),
                    (log.model_id,),
                )
                model_row = await result.fetchone()
                if model_row is None:
                    raise NotFoundError("Model", log.model_id)

                result = await conn.execute(
                    sql.SQL("""
                    INSERT INTO {} (
                        model_id, endpoint_type, status, latency, status_code,
                        error_msg, response_content, created_at
                    ) VALUES (
                        %(model_id)s, %(endpoint_type)s, %(status)s, %(latency)s,
                        %(status_code)s, %(error_msg)s, %(response_content)s, %(created_at)s
                    )
                    RETURNING id
                    """).format(TABLE_CHECK_LOGS),
                    {
                        "model_id": log.model_id,
                        "endpoint_type": log.endpoint_type.value,
                        "status": log.status.value,
                        "latency": log.latency,
                        "status_code": log.status_code,
                        "error_msg": log.error_msg,
                        "response_content": log.response_content,
                        "created_at": log.created_at,
                    },
                )
                inserted = await result.fetchone()
                log.id = inserted["id"]

                latest = await self._latest(conn, log.model_id, window)
                summary = recompute(model_row["model_name"], latest)

                await conn.execute(
                    sql.SQL("""
                    UPDATE {} SET
                        detected_endpoints = %(detected_endpoints)s,
                        last_status = %(last_status)s,
                        last_latency = %(last_latency)s,
                        last_checked_at = %(last_checked_at)s
                    WHERE id = %(model_id)s
                    """).format(TABLE_MODELS),
                    {
                        "model_id": log.model_id,
                        "detected_endpoints": Json([e.value for e in summary.detected_endpoints]),
                        "last_status": summary.last_status,
                        "last_latency": summary.last_latency,
                        "last_checked_at": summary.last_checked_at,
                    },
                )

        logger.debug(f"Recorded {log.status.value} for model {log.model_id} [{log.endpoint_type.value}]")
        return summary

    async def _latest(self, conn, model_id: str, window: int) -> List[CheckLog]:
        result = await conn.execute(
            sql.SQL("""
            SELECT * FROM {}
            WHERE model_id = %s
            ORDER BY created_at DESC, id DESC
            LIMIT %s
            """).format(TABLE_CHECK_LOGS),
            (model_id, window),
        )
        return [self._row_to_log(row) for row in await result.fetchall()]

    async def latest_for_model(self, model_id: str, window: int = 7) -> List[CheckLog]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            return await self._latest(conn, model_id, window)

    async def latest_for_models(self, model_ids: List[str], window: int = 7) -> Dict[str, List[CheckLog]]:
        """
        Most recent `window` logs per model, newest first.

        Returns:
            Dict of model_id -> logs (models without logs are absent)
        """
        if not model_ids:
            return {}
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM (
                    SELECT l.*, ROW_NUMBER() OVER (
                        PARTITION BY l.model_id ORDER BY l.created_at DESC, l.id DESC
                    ) AS rn
                    FROM {} l
                    WHERE l.model_id = ANY(%s)
                ) ranked
                WHERE rn <= %s
                ORDER BY model_id, rn
                """).format(TABLE_CHECK_LOGS),
                (list(model_ids), window),
            )
            grouped: Dict[str, List[CheckLog]] = {}
            for row in await result.fetchall():
                grouped.setdefault(row["model_id"], []).append(self._row_to_log(row))
            return grouped

    async def delete_older_than(self, cutoff: datetime) -> int:
        """
        Delete logs created before cutoff.

        Returns:
            Number of rows deleted
        """
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("DELETE FROM {} WHERE created_at < %s").format(TABLE_CHECK_LOGS),
                (cutoff,),
            )
            deleted = result.rowcount
        logger.info(f"Deleted {deleted} check logs older than {cutoff.isoformat()}")
        return deleted

    def _row_to_log(self, row: Dict[str, Any]) -> CheckLog:
        return CheckLog(
            id=row["id"],
            model_id=row["model_id"],
            endpoint_type=EndpointType(row["endpoint_type"]),
            status=CheckStatus(row["status"]),
            latency=row["latency"] or 0,
            status_code=row.get("status_code"),
            error_msg=row.get("error_msg"),
            response_content=row.get("response_content"),
            created_at=row["created_at"],
        )
