# ============================================================================
# WORKER POOL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Worker - Dispatch loop under two-level concurrency ceilings
# PURPOSE: Pull eligible jobs from the queue and run them as asyncio tasks
# LAST_REVIEWED: 01 OCT 2026
# EXPORTS: WorkerPool
# ============================================================================
"""
Worker Pool

One dispatch loop per process. Each cycle:

    1. Pop the lowest-seq job whose channel has a free slot and no cooldown
    2. Acquire the channel + global slot, emit "started", spawn the task
    3. Repeat until the global ceiling is hit or nothing is eligible
    4. Sleep until woken (new work, a completion, config change) or until
       the nearest channel cooldown expires

Steps 1-3 never await, so slot counts cannot race. A finishing job releases
its slot and starts its channel's random cooldown in the same synchronous
section, then wakes the loop.

Limits and delay bounds from a new config apply to the next dispatch;
running probes are not interrupted.

Usage:
    pool = WorkerPool(queue, executor, broadcaster, config)
    await pool.start()
    pool.apply_limits(new_config)
    await pool.stop()
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.models import ProbeJob, SchedulerConfig
from worker.limits import ConcurrencyLimiter
from worker.rate_control import DelayController

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Concurrency-bounded probe dispatcher.

    Jobs are dispatched from the JobQueue, executed by the ProbeExecutor,
    and tracked in _active_tasks until they finish.
    """

    IDLE_POLL_SECONDS = float(os.environ.get("WORKER_IDLE_POLL_SECONDS", "5"))
    SHUTDOWN_TIMEOUT_SECONDS = float(os.environ.get("WORKER_SHUTDOWN_TIMEOUT_SECONDS", "30"))

    def __init__(
        self,
        queue,
        executor,
        broadcaster,
        config: SchedulerConfig,
        limiter: Optional[ConcurrencyLimiter] = None,
        delays: Optional[DelayController] = None,
    ):
        self.queue = queue
        self.executor = executor
        self.broadcaster = broadcaster
        self.limiter = limiter or ConcurrencyLimiter(
            config.channel_concurrency, config.max_global_concurrency
        )
        self.delays = delays or DelayController(config.min_delay_ms, config.max_delay_ms)

        self._wakeup = asyncio.Event()
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._active_tasks: Dict[str, asyncio.Task] = {}

        # Metrics
        self._started_at: Optional[datetime] = None
        self._last_cycle_at: Optional[datetime] = None
        self._cycles = 0
        self._dispatched = 0
        self._errors = 0

        queue.add_listener(self.wake)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Worker pool already running")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._loop_task = asyncio.create_task(self._dispatch_loop(), name="worker-pool-dispatch")
        logger.info(
            f"Worker pool started (channel={self.limiter.channel_limit}, "
            f"global={self.limiter.global_limit}, "
            f"delay={self.delays.min_delay_ms}-{self.delays.max_delay_ms}ms)"
        )

    async def stop(self) -> None:
        """Stop dispatching, then wait for in-flight probes."""
        if not self._running:
            return

        logger.info("Stopping worker pool...")
        self._running = False
        self.wake()

        if self._loop_task:
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._active_tasks:
            logger.info(f"Waiting for {len(self._active_tasks)} active probes...")
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._active_tasks.values(), return_exceptions=True),
                    timeout=self.SHUTDOWN_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                # Interrupted jobs stay "running" in the store and are re-queued on restart
                logger.warning("Shutdown timeout - cancelling remaining probes")
                for task in list(self._active_tasks.values()):
                    task.cancel()

        logger.info(
            f"Worker pool stopped. Stats: dispatched={self._dispatched}, "
            f"peak_total={self.limiter.peak_total}, errors={self._errors}"
        )

    def wake(self) -> None:
        self._wakeup.set()

    def apply_limits(self, config: SchedulerConfig) -> None:
        """Apply ceilings and delay bounds from a new (validated) config."""
        self.limiter.set_limits(config.channel_concurrency, config.max_global_concurrency)
        self.delays.set_bounds(config.min_delay_ms, config.max_delay_ms)
        logger.info(
            f"Worker pool limits updated (channel={config.channel_concurrency}, "
            f"global={config.max_global_concurrency}, "
            f"delay={config.min_delay_ms}-{config.max_delay_ms}ms)"
        )
        self.wake()

    # =========================================================================
    # DISPATCH LOOP
    # =========================================================================

    async def _dispatch_loop(self) -> None:
        logger.info("Dispatch loop running")

        while self._running:
            try:
                self._wakeup.clear()
                self.dispatch_ready()
                self._cycles += 1
                self._last_cycle_at = datetime.now(timezone.utc)
            except Exception as e:
                self._errors += 1
                logger.exception(f"Error in dispatch cycle: {e}")

            timeout = self.delays.next_ready_in(self.queue.channels_with_pending())
            if timeout is None:
                timeout = self.IDLE_POLL_SECONDS

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

        logger.info("Dispatch loop exited")

    def _eligible(self, channel_id: str) -> bool:
        return self.limiter.has_capacity(channel_id) and self.delays.is_ready(channel_id)

    def dispatch_ready(self) -> int:
        """
        Start every job that fits under the ceilings right now.

        Returns:
            Number of jobs dispatched
        """
        dispatched = 0
        while self.limiter.global_headroom():
            job = self.queue.pop_next(self._eligible)
            if job is None:
                break
            if not self.limiter.try_acquire(job.channel_id):
                # has_capacity held a moment ago with no await in between
                logger.error(f"Slot vanished for channel {job.channel_id}; job {job.job_id} requeued")
                self.queue.requeue_front(job)
                break

            self.broadcaster.job_started(job)
            task = asyncio.create_task(self._run_job(job), name=f"probe-{job.job_id[:8]}")
            self._active_tasks[job.job_id] = task
            task.add_done_callback(lambda t, jid=job.job_id: self._active_tasks.pop(jid, None))
            dispatched += 1

        self._dispatched += dispatched
        if dispatched:
            logger.debug(
                f"Dispatched {dispatched} probes (running={self.limiter.running_total}, "
                f"pending={self.queue.pending_count})"
            )
        return dispatched

    async def _run_job(self, job: ProbeJob) -> None:
        try:
            await self.executor.execute(job)
        except Exception as e:
            self._errors += 1
            logger.exception(f"Executor failed for job {job.job_id}: {e}")
            if not job.is_terminal:
                await self.queue.complete(job, False)
                self.broadcaster.job_finished(job)
        finally:
            self.limiter.release(job.channel_id)
            self.delays.start_cooldown(job.channel_id)
            self.wake()

    # =========================================================================
    # STATS
    # =========================================================================

    @property
    def active_count(self) -> int:
        return len(self._active_tasks)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "last_cycle_at": self._last_cycle_at.isoformat() if self._last_cycle_at else None,
            "cycles": self._cycles,
            "dispatched": self._dispatched,
            "active": self.active_count,
            "errors": self._errors,
            "limits": self.limiter.stats,
            "queue": self.queue.stats,
            "executor": self.executor.get_stats() if hasattr(self.executor, "get_stats") else {},
        }


__all__ = ["WorkerPool"]
