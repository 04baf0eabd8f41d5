# ============================================================================
# PROBE JOB QUEUE REPOSITORY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Durable store behind the in-memory job queue
# PURPOSE: Database access for probe_runs and probe_jobs tables
# LAST_REVIEWED: 25 SEP 2026
# PATTERNS: Store interface consumed by worker.queue.JobQueue
# ============================================================================
"""
Probe Job Queue Repository

System of record for pending work:

    create_run()     run + jobs in one transaction; False if run_key exists
    mark_running()   pending -> running
    mark_finished()  running -> success / failed
    mark_cancelled() pending -> cancelled
    load_pending()   restart recovery: running -> pending, then all pending

Restart policy:
    A job left "running" by a crash is probed again (at most once more);
    jobs already in a terminal state are never re-probed. The run resumes
    with the remainder rather than starting over.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from core.contracts import EndpointType, JobState
from core.models import ProbeJob, ProbeRun
from .database import TABLE_PROBE_JOBS, TABLE_PROBE_RUNS

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProbeJobRepository:
    """Durable storage for probe runs and jobs."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def create_run(self, run: ProbeRun, jobs: List[ProbeJob]) -> bool:
        """
        Persist a run and its jobs atomically.

        Returns:
            True if created, False if a run with the same run_key exists
        """
        async with self.pool.connection() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    sql.SQL("""
                    INSERT INTO {} (run_id, run_key, trigger, job_count, created_at)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (run_key) DO NOTHING
                    """).format(TABLE_PROBE_RUNS),
                    (run.run_id, run.run_key, run.trigger.value, run.job_count, run.created_at),
                )
                if result.rowcount == 0:
                    return False

                if jobs:
                    async with conn.cursor() as cur:
                        await cur.executemany(
                            sql.SQL("""
                            INSERT INTO {} (
                                job_id, run_id, channel_id, model_id, model_name,
                                endpoint_type, state, seq, created_at
                            ) VALUES (
                                %(job_id)s, %(run_id)s, %(channel_id)s, %(model_id)s, %(model_name)s,
                                %(endpoint_type)s, %(state)s, %(seq)s, %(created_at)s
                            )
                            ON CONFLICT (run_id, model_id, endpoint_type) DO NOTHING
                            """).format(TABLE_PROBE_JOBS),
                            [
                                {
                                    "job_id": job.job_id,
                                    "run_id": run.run_id,
                                    "channel_id": job.channel_id,
                                    "model_id": job.model_id,
                                    "model_name": job.model_name,
                                    "endpoint_type": job.endpoint_type.value,
                                    "state": JobState.PENDING.value,
                                    "seq": job.seq,
                                    "created_at": job.created_at,
                                }
                                for job in jobs
                            ],
                        )

        logger.info(f"Persisted run {run.run_id} ({run.trigger.value}, {len(jobs)} jobs)")
        return True

    async def mark_running(self, job_id: str) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                UPDATE {} SET state = %s, started_at = %s
                WHERE job_id = %s AND state = %s
                """).format(TABLE_PROBE_JOBS),
                (JobState.RUNNING.value, _utc_now(), job_id, JobState.PENDING.value),
            )

    async def mark_finished(self, job_id: str, state: JobState) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                UPDATE {} SET state = %s, finished_at = %s
                WHERE job_id = %s
                """).format(TABLE_PROBE_JOBS),
                (state.value, _utc_now(), job_id),
            )

    async def mark_cancelled(self, job_ids: List[str]) -> int:
        if not job_ids:
            return 0
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET state = %s, finished_at = %s
                WHERE job_id = ANY(%s) AND state = %s
                """).format(TABLE_PROBE_JOBS),
                (JobState.CANCELLED.value, _utc_now(), list(job_ids), JobState.PENDING.value),
            )
            return result.rowcount

    async def load_pending(self) -> List[ProbeJob]:
        """
        Reset interrupted jobs and return all pending jobs in seq order.
        """
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            async with conn.transaction():
                reset = await conn.execute(
                    sql.SQL("""
                    UPDATE {} SET state = %s, started_at = NULL
                    WHERE state = %s
                    """).format(TABLE_PROBE_JOBS),
                    (JobState.PENDING.value, JobState.RUNNING.value),
                )
                if reset.rowcount:
                    logger.warning(f"Reset {reset.rowcount} interrupted probe jobs to pending")

                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} WHERE state = %s ORDER BY seq ASC").format(TABLE_PROBE_JOBS),
                    (JobState.PENDING.value,),
                )
                rows = await result.fetchall()

        return [self._row_to_job(row) for row in rows]

    async def delete_finished_before(self, cutoff: datetime) -> int:
        """Drop runs whose jobs are all terminal and older than cutoff."""
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                DELETE FROM {runs} r
                WHERE r.created_at < %s
                  AND NOT EXISTS (
                      SELECT 1 FROM {jobs} j
                      WHERE j.run_id = r.run_id AND j.state IN (%s, %s)
                  )
                """).format(runs=TABLE_PROBE_RUNS, jobs=TABLE_PROBE_JOBS),
                (cutoff, JobState.PENDING.value, JobState.RUNNING.value),
            )
            return result.rowcount

    def _row_to_job(self, row: Dict[str, Any]) -> ProbeJob:
        return ProbeJob(
            job_id=row["job_id"],
            run_id=row["run_id"],
            channel_id=row["channel_id"],
            model_id=row["model_id"],
            model_name=row["model_name"],
            endpoint_type=EndpointType(row["endpoint_type"]),
            state=JobState(row["state"]),
            seq=row["seq"],
            created_at=row["created_at"],
            started_at=row.get("started_at"),
            finished_at=row.get("finished_at"),
        )
