# ============================================================================
# TRIGGER SCHEDULER
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Timer driving scheduled detection and retention
# PURPOSE: Own the APScheduler instance; idempotent reload on config change
# LAST_REVIEWED: 29 SEP 2026
# EXPORTS: TriggerScheduler
# DEPENDENCIES: apscheduler
# ============================================================================
"""
Trigger Scheduler

Two jobs on one AsyncIOScheduler:

    detection   schedule from SchedulerConfig.cron_schedule / timezone
    cleanup     CLEANUP_SCHEDULE (retention of check logs)

reload(config) replaces only the detection timer. A run that is already
executing keeps going; the queue and worker pool are untouched. Reloading
with the same schedule, timezone and enabled flag is a no-op, so the
next-run timestamp does not move.

Usage:
    scheduler = TriggerScheduler(on_detect=service.run_scheduled,
                                 on_cleanup=retention.cleanup)
    scheduler.start(config)
    scheduler.reload(new_config)
    scheduler.next_run
    scheduler.stop()
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

from core.config import get_defaults
from core.models import SchedulerConfig
from scheduler.schedule import build_trigger

logger = logging.getLogger(__name__)

DETECTION_JOB_ID = "detection"
CLEANUP_JOB_ID = "cleanup"


class TriggerScheduler:
    """
    Wraps AsyncIOScheduler with the two timers the engine needs.

    on_detect receives the fire time (UTC) so the run can be keyed by
    schedule slot.
    """

    def __init__(
        self,
        on_detect: Callable[[datetime], Awaitable[Any]],
        on_cleanup: Optional[Callable[[], Awaitable[Any]]] = None,
        cleanup_schedule: Optional[str] = None,
    ):
        self._on_detect = on_detect
        self._on_cleanup = on_cleanup
        self._cleanup_schedule = cleanup_schedule or get_defaults().retention.cleanup_schedule

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._trigger: Optional[BaseTrigger] = None
        self._fingerprint: Optional[tuple] = None
        self._config: Optional[SchedulerConfig] = None

        self._running = False
        self._fires = 0
        self._errors = 0
        self._reloads = 0
        self._last_fire_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, config: SchedulerConfig) -> None:
        """Start timers. Must be called from within the event loop."""
        if self._running:
            logger.warning("Trigger scheduler already running")
            return

        self._scheduler.start()
        self._running = True
        self._fingerprint = None
        self.reload(config)

        if self._on_cleanup is not None:
            self._scheduler.add_job(
                self._fire_cleanup,
                trigger=build_trigger(self._cleanup_schedule, config.timezone),
                id=CLEANUP_JOB_ID,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )

        logger.info(
            f"Trigger scheduler started (schedule={config.cron_schedule!r}, "
            f"tz={config.timezone}, enabled={config.enabled}, next_run={self.next_run})"
        )

    def stop(self) -> None:
        if not self._running:
            return
        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Trigger scheduler stopped")

    # =========================================================================
    # RELOAD
    # =========================================================================

    def reload(self, config: SchedulerConfig) -> Optional[datetime]:
        """
        Apply a (validated) config to the detection timer.

        Returns:
            Next run time, or None when disabled
        """
        fingerprint = config.schedule_fingerprint()
        self._config = config

        if fingerprint == self._fingerprint:
            logger.debug("Schedule unchanged, keeping current timer")
            return self.next_run

        self._remove_detection_job()
        self._trigger = None

        if config.enabled:
            self._trigger = build_trigger(config.cron_schedule, config.timezone)
            if self._running:
                self._scheduler.add_job(
                    self._fire_detection,
                    trigger=self._trigger,
                    id=DETECTION_JOB_ID,
                    replace_existing=True,
                    coalesce=True,
                    max_instances=1,
                    misfire_grace_time=60,
                )

        self._fingerprint = fingerprint
        self._reloads += 1
        next_run = self.next_run
        logger.info(f"Detection schedule reloaded (enabled={config.enabled}, next_run={next_run})")
        return next_run

    def _remove_detection_job(self) -> None:
        if self._running and self._scheduler.get_job(DETECTION_JOB_ID) is not None:
            self._scheduler.remove_job(DETECTION_JOB_ID)

    @property
    def next_run(self) -> Optional[datetime]:
        """Next detection fire time, or None when disabled."""
        if self._trigger is None:
            return None
        if self._running:
            job = self._scheduler.get_job(DETECTION_JOB_ID)
            if job is not None and job.next_run_time is not None:
                return job.next_run_time
        return self._trigger.get_next_fire_time(None, datetime.now(timezone.utc))

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    async def _fire_detection(self) -> None:
        fire_time = datetime.now(timezone.utc)
        self._fires += 1
        self._last_fire_at = fire_time
        logger.info(f"Scheduled detection fired at {fire_time.isoformat()}")
        try:
            await self._on_detect(fire_time)
        except Exception as e:
            self._errors += 1
            logger.exception(f"Scheduled detection failed: {e}")

    async def _fire_cleanup(self) -> None:
        try:
            await self._on_cleanup()
        except Exception as e:
            self._errors += 1
            logger.exception(f"Scheduled cleanup failed: {e}")

    # =========================================================================
    # STATS
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        next_run = self.next_run
        return {
            "running": self._running,
            "enabled": self._config.enabled if self._config else False,
            "cron_schedule": self._config.cron_schedule if self._config else None,
            "timezone": self._config.timezone if self._config else None,
            "next_run": next_run.isoformat() if next_run else None,
            "fires": self._fires,
            "errors": self._errors,
            "reloads": self._reloads,
            "last_fire_at": self._last_fire_at.isoformat() if self._last_fire_at else None,
        }


__all__ = ["TriggerScheduler", "DETECTION_JOB_ID", "CLEANUP_JOB_ID"]
