# ============================================================================
# PROBE EXECUTOR
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Worker - Single-job execution
# PURPOSE: Run one probe job end to end and record its outcome
# LAST_REVIEWED: 01 OCT 2026
# EXPORTS: ProbeExecutor
# ============================================================================
"""
Probe Executor

Takes one dispatched ProbeJob through:

    1. persist RUNNING
    2. resolve channel (base_url, credential, proxy); a missing or
       disabled channel is a FAIL without a request
    3. probe (never raises; failures become FAIL outcomes)
    4. record CheckLog + model summary
    5. persist terminal state
    6. emit the "finished" progress event

The worker pool owns concurrency slots and cooldowns; the executor only
runs the job. Every step runs inside a log_context carrying the job's
identifiers.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from core.logging import log_context
from core.models import Channel, ProbeJob
from probes.base import ProbeOutcome

logger = logging.getLogger(__name__)

ChannelLookup = Callable[[str], Awaitable[Optional[Channel]]]


class ProbeExecutor:
    """
    Executes probe jobs.

    Usage:
        executor = ProbeExecutor(queue, probe_client, aggregator, broadcaster,
                                 channel_lookup=channel_repo.get)
        outcome = await executor.execute(job)
    """

    def __init__(
        self,
        queue,
        probe_client,
        aggregator,
        broadcaster,
        channel_lookup: ChannelLookup,
    ):
        self.queue = queue
        self.probe_client = probe_client
        self.aggregator = aggregator
        self.broadcaster = broadcaster
        self.channel_lookup = channel_lookup

        # Metrics
        self._executed = 0
        self._succeeded = 0
        self._failed = 0
        self._record_errors = 0

    async def execute(self, job: ProbeJob) -> ProbeOutcome:
        """
        Run a dispatched job to completion.

        Returns:
            The probe outcome (also recorded)
        """
        with log_context(
            run_id=job.run_id,
            job_id=job.job_id,
            channel_id=job.channel_id,
            model_id=job.model_id,
            endpoint_type=job.endpoint_type.value,
            component="worker",
        ):
            await self.queue.mark_started(job)

            outcome = await self._probe(job)

            try:
                await self.aggregator.record(job, outcome)
            except Exception as e:
                self._record_errors += 1
                logger.error(f"Failed to record outcome for {job.model_name} [{job.endpoint_type.value}]: {e}")

            await self.queue.complete(job, outcome.success)
            self.broadcaster.job_finished(job)

            self._executed += 1
            if outcome.success:
                self._succeeded += 1
            else:
                self._failed += 1
            return outcome

    async def _probe(self, job: ProbeJob) -> ProbeOutcome:
        start = time.monotonic()
        try:
            channel = await self.channel_lookup(job.channel_id)
            if channel is None:
                return ProbeOutcome.failure_result(
                    job.endpoint_type, 0, f"Channel not found: {job.channel_id}"
                )
            if not channel.enabled:
                # Disabled after the run was enqueued
                return ProbeOutcome.failure_result(
                    job.endpoint_type, 0, f"Channel disabled: {job.channel_id}"
                )
            return await self.probe_client.probe(
                base_url=channel.base_url,
                api_key=channel.api_key,
                model_name=job.model_name,
                endpoint_type=job.endpoint_type,
                proxy=channel.proxy,
            )
        except Exception as e:
            # Anything escaping the client is still a FAIL, never a retry
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.exception(f"Probe raised for {job.model_name} [{job.endpoint_type.value}]: {e}")
            return ProbeOutcome.failure_result(job.endpoint_type, latency_ms, str(e) or e.__class__.__name__)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "executed": self._executed,
            "succeeded": self._succeeded,
            "failed": self._failed,
            "record_errors": self._record_errors,
        }


__all__ = ["ProbeExecutor", "ChannelLookup"]
