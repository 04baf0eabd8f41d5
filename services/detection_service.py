# ============================================================================
# DETECTION SERVICE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Service - Run initiation, cancellation and progress
# PURPOSE: Build job sets and hand them to the queue as one run
# LAST_REVIEWED: 06 OCT 2026
# EXPORTS: DetectionService, build_jobs
# ============================================================================
"""
Detection Service

Entry points that create or cancel work:

    run_scheduled(fire_time)   Trigger Scheduler callback. Optional model
                               sync, then the configured job set, keyed by
                               schedule slot so a re-fired slot is skipped.
    run_manual(...)            "Run now". Whole eligible set, one channel,
                               or specific models.
    stop(model_ids)            Cancel pending jobs of those models.
    restore()                  Startup: re-queue pending jobs from the store.

Eligible set:
    detect_all_channels=True   every model of every enabled channel
    detect_all_channels=False  all models of selected enabled channels, plus
                               selected models whose channel is enabled

Each (model, endpoint type) from select_endpoints() becomes one ProbeJob.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.config import get_defaults
from core.contracts import RunTrigger
from core.errors import ChannelDisabledError, NotFoundError
from core.logging import log_checkpoint, log_context
from core.models import Channel, ChannelModel, ProbeJob, ProbeRun
from probes.registry import select_endpoints

logger = logging.getLogger(__name__)


def build_jobs(
    channels: Iterable[Channel],
    models: Iterable[ChannelModel],
    run_id: str = "",
) -> List[ProbeJob]:
    """
    One job per (model, supported endpoint type), in channel display order.

    Models whose channel is not in `channels` are skipped.
    """
    order = {channel.id: index for index, channel in enumerate(channels)}
    jobs = []
    for model in sorted(
        (m for m in models if m.channel_id in order),
        key=lambda m: order[m.channel_id],
    ):
        for endpoint_type in select_endpoints(model.model_name):
            jobs.append(ProbeJob(
                run_id=run_id,
                channel_id=model.channel_id,
                model_id=model.id,
                model_name=model.model_name,
                endpoint_type=endpoint_type,
            ))
    return jobs


class DetectionService:
    """Creates, cancels and reports on detection runs."""

    def __init__(
        self,
        config_service,
        queue,
        broadcaster,
        channel_repo,
        model_repo,
        sync_service=None,
        scheduler=None,
    ):
        self.config_service = config_service
        self.queue = queue
        self.broadcaster = broadcaster
        self.channel_repo = channel_repo
        self.model_repo = model_repo
        self.sync_service = sync_service
        self.scheduler = scheduler

        self.last_run: Optional[Dict[str, Any]] = None

    # =========================================================================
    # SELECTION
    # =========================================================================

    async def eligible_targets(self) -> Tuple[List[Channel], List[ChannelModel]]:
        """Channels and models covered by the current config."""
        config = self.config_service.current

        if config.detect_all_channels:
            channels = await self.channel_repo.list_enabled()
            models = await self.model_repo.list_for_channels([c.id for c in channels])
            return channels, models

        enabled = {c.id: c for c in await self.channel_repo.list_enabled()}

        selected_channels = [enabled[cid] for cid in config.selected_channel_ids if cid in enabled]
        models = await self.model_repo.list_for_channels([c.id for c in selected_channels])

        seen = {m.id for m in models}
        if config.selected_model_ids:
            for model in await self.model_repo.list_by_ids(list(config.selected_model_ids)):
                if model.channel_id in enabled and model.id not in seen:
                    models.append(model)
                    seen.add(model.id)

        channel_ids = {m.channel_id for m in models} | {c.id for c in selected_channels}
        channels = [c for c in enabled.values() if c.id in channel_ids]
        return channels, models

    async def _enabled_channel(self, channel_id: str) -> Channel:
        channel = await self.channel_repo.get(channel_id)
        if channel is None:
            raise NotFoundError("Channel", channel_id)
        if not channel.enabled:
            raise ChannelDisabledError(channel_id)
        return channel

    # =========================================================================
    # RUNS
    # =========================================================================

    async def _enqueue(self, run: ProbeRun, channels: List[Channel], models: List[ChannelModel]) -> Dict[str, Any]:
        jobs = build_jobs(channels, models, run_id=run.run_id)

        with log_context(run_id=run.run_id):
            # Counted at reservation so a concurrent stop() finishes them correctly
            accepted = await self.queue.enqueue_run(
                run,
                jobs,
                on_reserved=self.broadcaster.track,
                on_released=self.broadcaster.untrack,
            )

            result = {
                "run_id": run.run_id,
                "run_key": run.run_key,
                "trigger": run.trigger.value,
                "channel_count": len({job.channel_id for job in accepted}),
                "model_count": len({job.model_id for job in accepted}),
                "job_count": len(accepted),
                "coalesced": len(jobs) - len(accepted),
            }
            log_checkpoint("run_enqueued", result, logger)

        self.last_run = result
        return result

    async def run_scheduled(self, fire_time: datetime) -> Dict[str, Any]:
        """Scheduled activation: optional sync, then the eligible set."""
        run = ProbeRun(run_key=ProbeRun.scheduled_key(fire_time), trigger=RunTrigger.SCHEDULED)

        if get_defaults().scheduler.sync_models_before_run and self.sync_service is not None:
            channels, _ = await self.eligible_targets()
            synced = await self.sync_service.sync_channels(channels)
            logger.info(f"Pre-run model sync finished for {len(synced)}/{len(channels)} channels")

        channels, models = await self.eligible_targets()
        return await self._enqueue(run, channels, models)

    async def run_manual(
        self,
        channel_id: Optional[str] = None,
        model_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        "Run now".

        Args:
            channel_id: Restrict to one channel (must exist and be enabled)
            model_ids: Restrict to these models

        Raises:
            NotFoundError: unknown channel, or none of model_ids exist
            ChannelDisabledError: the target channel is disabled
            QueueFailure: jobs could not be persisted
        """
        run = ProbeRun(run_key=ProbeRun.manual_key(), trigger=RunTrigger.MANUAL)

        if channel_id is not None:
            channel = await self._enabled_channel(channel_id)
            models = await self.model_repo.list_for_channels([channel.id])
            if model_ids:
                wanted = set(model_ids)
                models = [m for m in models if m.id in wanted]
            return await self._enqueue(run, [channel], models)

        if model_ids:
            models = await self.model_repo.list_by_ids(list(model_ids))
            if not models:
                raise NotFoundError("Model", ",".join(model_ids))
            channels: Dict[str, Channel] = {}
            for cid in dict.fromkeys(m.channel_id for m in models):
                channels[cid] = await self._enabled_channel(cid)
            return await self._enqueue(run, list(channels.values()), models)

        channels, models = await self.eligible_targets()
        return await self._enqueue(run, channels, models)

    async def stop(self, model_ids: List[str]) -> Dict[str, Any]:
        """
        Cancel pending jobs of the given models.

        Running jobs finish and are recorded. Each cancelled job is
        reported to subscribers as finished.

        Raises:
            QueueFailure: the cancellation could not be persisted
        """
        cancelled = await self.queue.cancel_models(model_ids)
        for job in cancelled:
            self.broadcaster.job_finished(job)

        result = {
            "cancelled": len(cancelled),
            "models": sorted({job.model_id for job in cancelled}),
        }
        log_checkpoint("run_cancelled", result, logger)
        return result

    async def restore(self) -> int:
        """Re-queue pending work left by a previous process."""
        restored = await self.queue.restore()
        self.broadcaster.track(restored)
        if restored:
            log_checkpoint("runs_restored", {"jobs": len(restored)}, logger)
        return len(restored)

    # =========================================================================
    # PROGRESS
    # =========================================================================

    def next_run(self) -> Optional[datetime]:
        return self.scheduler.next_run if self.scheduler is not None else None

    def progress(self) -> Dict[str, Any]:
        """Pollable snapshot: in-flight models, seq, queue counts, next run."""
        next_run = self.next_run()
        snapshot = self.broadcaster.snapshot(next_run=next_run)
        stats = self.queue.stats
        return {
            "seq": snapshot.seq,
            "in_flight": snapshot.in_flight,
            "is_running": stats["pending"] + stats["running"] > 0,
            "queue": stats,
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": self.last_run,
        }


__all__ = ["DetectionService", "build_jobs"]
