# ============================================================================
# PROBE JOB QUEUE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Worker - Channel-aware dispatch queue
# PURPOSE: Ordered pending jobs per channel over a durable store
# LAST_REVIEWED: 18 SEP 2026
# EXPORTS: JobQueue
# ============================================================================
"""
Probe Job Queue

In-memory dispatch order over the probe_jobs table (the system of record).

Ordering:
    Every job gets a global seq at enqueue. Within a channel jobs leave in
    seq order; across channels the eligible channel head with the lowest
    seq goes first.

Idempotency:
    - Duplicate (model_id, endpoint_type) keys within one enqueue collapse
    - A key already pending from any run is coalesced (not enqueued again)
    - Scheduled runs carry a run_key; the store rejects a second run with
      the same key so a re-fired slot after restart does not duplicate

Durability:
    Jobs are persisted before they become visible to the dispatcher. If the
    store write fails nothing is enqueued and QueueFailure is raised. On
    startup, restore() reloads pending jobs (the store resets jobs left
    running by a crash back to pending) in their original seq order.

Mutations of the in-memory structures happen in synchronous sections only.

Usage:
    queue = JobQueue(store=ProbeJobRepository(pool))
    await queue.restore()
    accepted = await queue.enqueue_run(run, jobs)
"""

import logging
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set

from core.contracts import JobState
from core.errors import QueueFailure
from core.models.probe_job import JobKey, ProbeJob, ProbeRun

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Channel-aware FIFO of pending probe jobs.

    store is optional: None keeps everything in memory (tests, ad-hoc use).
    """

    def __init__(self, store=None):
        self._store = store
        self._channels: "OrderedDict[str, Deque[ProbeJob]]" = OrderedDict()
        self._pending: Dict[JobKey, ProbeJob] = {}
        self._running: Dict[str, ProbeJob] = {}
        self._seq = 0
        self._listeners: List[Callable[[], None]] = []

        self.total_enqueued = 0
        self.total_completed = 0
        self.total_cancelled = 0

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a synchronous callback fired when new work becomes available."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Queue listener failed: {e}")

    # =========================================================================
    # ENQUEUE
    # =========================================================================

    async def enqueue_run(
        self,
        run: ProbeRun,
        jobs: Iterable[ProbeJob],
        on_reserved: Optional[Callable[[List[ProbeJob]], None]] = None,
        on_released: Optional[Callable[[List[ProbeJob]], None]] = None,
    ) -> List[ProbeJob]:
        """
        Enqueue the jobs of one run.

        on_reserved is called synchronously with the reserved jobs before the
        store write, so a cancel_models during the write never sees a job its
        owner does not know about. on_released gets the reserved jobs that are
        dropped again (store failure, duplicate run_key) and were not
        cancelled in the meantime.

        Returns:
            The accepted jobs (after coalescing), in seq order. Empty if the
            run_key was already recorded by the store.

        Raises:
            QueueFailure: the store could not persist the run
        """
        accepted: List[ProbeJob] = []
        for job in jobs:
            if job.key in self._pending:
                continue
            job.run_id = run.run_id
            job.state = JobState.PENDING
            self._seq += 1
            job.seq = self._seq
            # Reserve before the await so a concurrent enqueue coalesces too
            self._pending[job.key] = job
            accepted.append(job)

        run.job_count = len(accepted)
        if on_reserved is not None and accepted:
            on_reserved(accepted)

        if self._store is not None:
            try:
                created = await self._store.create_run(run, accepted)
            except Exception as e:
                self._release(accepted, on_released)
                logger.error(f"Failed to persist run {run.run_id} ({len(accepted)} jobs): {e}")
                raise QueueFailure(f"Failed to persist probe jobs: {e}", run_id=run.run_id) from e

            if not created:
                self._release(accepted, on_released)
                logger.info(f"Run key already recorded, skipping: {run.run_key}")
                return []

        # Jobs cancelled while the write was in flight stay out of the queue
        cancelled = [job for job in accepted if job.state == JobState.CANCELLED]
        visible = [job for job in accepted if job.state == JobState.PENDING]
        for job in visible:
            self._channels.setdefault(job.channel_id, deque()).append(job)
        self.total_enqueued += len(visible)

        if cancelled and self._store is not None:
            await self._persist_cancelled(cancelled)

        if visible:
            self._notify()
        return visible

    def _unreserve(self, jobs: List[ProbeJob]) -> None:
        for job in jobs:
            if self._pending.get(job.key) is job:
                del self._pending[job.key]

    def _release(self, jobs: List[ProbeJob], on_released) -> None:
        self._unreserve(jobs)
        # Jobs cancelled during the write were already reported as finished
        released = [job for job in jobs if job.state == JobState.PENDING]
        if on_released is not None and released:
            on_released(released)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def pop_next(self, eligible: Callable[[str], bool]) -> Optional[ProbeJob]:
        """
        Remove and return the lowest-seq channel head whose channel is eligible.

        The job is marked RUNNING. Returns None if no channel is eligible.
        """
        best: Optional[ProbeJob] = None
        for channel_id, jobs in self._channels.items():
            if not jobs or not eligible(channel_id):
                continue
            head = jobs[0]
            if best is None or head.seq < best.seq:
                best = head

        if best is None:
            return None

        channel_jobs = self._channels[best.channel_id]
        channel_jobs.popleft()
        if not channel_jobs:
            del self._channels[best.channel_id]

        self._pending.pop(best.key, None)
        best.mark_running()
        self._running[best.job_id] = best
        return best

    def requeue_front(self, job: ProbeJob) -> None:
        """Undo pop_next: the job goes back to the head of its channel as PENDING."""
        self._running.pop(job.job_id, None)
        job.state = JobState.PENDING
        job.started_at = None
        self._pending[job.key] = job
        self._channels.setdefault(job.channel_id, deque()).appendleft(job)

    def channels_with_pending(self) -> List[str]:
        return [channel_id for channel_id, jobs in self._channels.items() if jobs]

    # =========================================================================
    # COMPLETION / CANCELLATION
    # =========================================================================

    async def mark_started(self, job: ProbeJob) -> None:
        """Persist the RUNNING transition. Failures are logged, not raised."""
        if self._store is None:
            return
        try:
            await self._store.mark_running(job.job_id)
        except Exception as e:
            logger.warning(f"Failed to persist running state for {job.job_id}: {e}")

    async def complete(self, job: ProbeJob, success: bool) -> None:
        """Record the terminal state of a dispatched job."""
        self._running.pop(job.job_id, None)
        job.mark_finished(success)
        self.total_completed += 1

        if self._store is None:
            return
        try:
            await self._store.mark_finished(job.job_id, job.state)
        except Exception as e:
            # Restart would re-probe this one job; the result is already recorded
            logger.warning(f"Failed to persist terminal state for {job.job_id}: {e}")

    async def cancel_models(self, model_ids: Iterable[str]) -> List[ProbeJob]:
        """
        Remove pending jobs for the given models.

        Running jobs are left alone and finish normally.

        Returns:
            The cancelled jobs (state CANCELLED)

        Raises:
            QueueFailure: the store could not record the cancellation;
                the in-memory queue is left unchanged
        """
        targets: Set[str] = set(model_ids)
        candidates = [job for job in self._pending.values() if job.model_id in targets]
        if not candidates:
            return []

        if self._store is not None:
            try:
                await self._store.mark_cancelled([job.job_id for job in candidates])
            except Exception as e:
                logger.error(f"Failed to persist cancellation of {len(candidates)} jobs: {e}")
                raise QueueFailure(f"Failed to cancel probe jobs: {e}") from e

        cancelled: List[ProbeJob] = []
        for job in candidates:
            # Dispatched while the store write was in flight
            if job.state != JobState.PENDING:
                continue
            self._pending.pop(job.key, None)
            channel_jobs = self._channels.get(job.channel_id)
            if channel_jobs is not None:
                try:
                    channel_jobs.remove(job)
                except ValueError:
                    pass
                if not channel_jobs:
                    del self._channels[job.channel_id]
            job.mark_cancelled()
            cancelled.append(job)

        self.total_cancelled += len(cancelled)
        logger.info(f"Cancelled {len(cancelled)} pending jobs for {len(targets)} models")
        return cancelled

    async def _persist_cancelled(self, jobs: List[ProbeJob]) -> None:
        try:
            await self._store.mark_cancelled([job.job_id for job in jobs])
        except Exception as e:
            logger.warning(f"Failed to persist late cancellation of {len(jobs)} jobs: {e}")

    # =========================================================================
    # RESTORE
    # =========================================================================

    async def restore(self) -> List[ProbeJob]:
        """
        Reload pending work from the store after a restart.

        Jobs the store reports are re-queued in seq order; the global seq
        continues after the highest restored value.
        """
        if self._store is None:
            return []

        jobs = await self._store.load_pending()
        restored: List[ProbeJob] = []
        for job in sorted(jobs, key=lambda j: j.seq):
            if job.key in self._pending:
                continue
            self._pending[job.key] = job
            self._channels.setdefault(job.channel_id, deque()).append(job)
            restored.append(job)
            if job.seq > self._seq:
                self._seq = job.seq

        if restored:
            logger.info(f"Restored {len(restored)} pending probe jobs")
            self._notify()
        return restored

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def pending_count(self) -> int:
        return sum(len(jobs) for jobs in self._channels.values())

    @property
    def running_count(self) -> int:
        return len(self._running)

    def is_idle(self) -> bool:
        return not self._pending and not self._running

    def pending_jobs(self) -> List[ProbeJob]:
        return sorted(self._pending.values(), key=lambda j: j.seq)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "pending": self.pending_count,
            "running": self.running_count,
            "channels": len(self._channels),
            "total_enqueued": self.total_enqueued,
            "total_completed": self.total_completed,
            "total_cancelled": self.total_cancelled,
        }
