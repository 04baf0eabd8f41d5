# ============================================================================
# RETENTION SERVICE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Service - History cleanup
# PURPOSE: Delete old check logs and finished probe runs
# LAST_REVIEWED: 03 OCT 2026
# ============================================================================
"""
Retention Service

Runs on CLEANUP_SCHEDULE (and on demand via the maintenance route).
Health only ever looks at the latest 7 logs per model, so dropping logs
older than LOG_RETENTION_DAYS does not change any model's status unless the
model has not been probed for that long.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from core.config import get_defaults

logger = logging.getLogger(__name__)


class RetentionService:

    def __init__(self, check_log_repo, job_repo=None, retention_days: Optional[int] = None):
        self.check_log_repo = check_log_repo
        self.job_repo = job_repo
        self.retention_days = retention_days or get_defaults().retention.log_retention_days
        self.last_run_at: Optional[datetime] = None

    async def cleanup(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.retention_days)

        deleted_logs = await self.check_log_repo.delete_older_than(cutoff)
        deleted_runs = 0
        if self.job_repo is not None:
            deleted_runs = await self.job_repo.delete_finished_before(cutoff)

        self.last_run_at = now
        logger.info(
            f"Retention cleanup: {deleted_logs} logs, {deleted_runs} runs "
            f"older than {self.retention_days} days"
        )
        return {
            "cutoff": cutoff.isoformat(),
            "deleted_logs": deleted_logs,
            "deleted_runs": deleted_runs,
        }


__all__ = ["RetentionService"]
