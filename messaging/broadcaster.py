# ============================================================================
# PROGRESS BROADCASTER
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Messaging - In-process pub/sub for detection progress
# PURPOSE: In-flight model set, started/finished events, snapshots
# LAST_REVIEWED: 20 SEP 2026
# EXPORTS: ProgressBroadcaster, Subscription, ProgressView
# DEPENDENCIES: asyncio
# ============================================================================
"""
Progress Broadcaster

Maintains the set of model IDs with outstanding (queued or running) jobs
and fans lifecycle events out to subscribers.

Push:
    Each subscriber owns a bounded asyncio.Queue. Publishing never awaits;
    a subscriber whose queue is full is dropped (BroadcastFailure is logged)
    so a slow client can never stall workers.

Snapshot:
    A pure read of the in-flight set tagged with the current seq. It is not
    a second source of truth: it is derived from the same counters the push
    events are.

ProgressView is the matching client-side reducer: it applies events
idempotently and merges snapshots by union, never resurrecting a model the
push stream already finished after the snapshot was taken.

Usage:
    broadcaster = get_broadcaster()
    subscription = broadcaster.subscribe()
    async for frame in broadcaster.stream(subscription):
        ...
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set

from core.contracts import JobState
from core.errors import BroadcastFailure
from core.models.events import ProgressEvent, ProgressEventType, ProgressSnapshot
from core.models.probe_job import ProbeJob

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 1000
DEFAULT_KEEPALIVE_SECONDS = 15.0


class Subscription:
    """One connected observer."""

    def __init__(self, max_queue_size: int):
        self.id = uuid.uuid4().hex[:12]
        self.queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue(maxsize=max_queue_size)
        self.closed = False


class ProgressBroadcaster:
    """
    In-process fan-out of job lifecycle events.

    All state changes happen in synchronous methods, atomic on the loop.
    """

    def __init__(self, max_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        self.max_queue_size = max_queue_size
        self._seq = 0
        self._outstanding: Dict[str, int] = defaultdict(int)
        self._subscribers: Dict[str, Subscription] = {}

        self.events_published = 0
        self.subscribers_dropped = 0

    # =========================================================================
    # LIFECYCLE HOOKS (called by queue owners and the worker pool)
    # =========================================================================

    def track(self, jobs: Iterable[ProbeJob]) -> None:
        """Count newly enqueued (or restored) jobs as outstanding."""
        for job in jobs:
            self._outstanding[job.model_id] += 1

    def untrack(self, jobs: Iterable[ProbeJob]) -> None:
        """Drop jobs that were counted but never queued. No events are emitted."""
        for job in jobs:
            remaining = self._outstanding.get(job.model_id, 0) - 1
            if remaining > 0:
                self._outstanding[job.model_id] = remaining
            else:
                self._outstanding.pop(job.model_id, None)

    def job_started(self, job: ProbeJob) -> ProgressEvent:
        event = self._make_event(ProgressEventType.STARTED, job, JobState.RUNNING, False)
        self._publish(event)
        return event

    def job_finished(self, job: ProbeJob) -> ProgressEvent:
        """
        Emit FINISHED for a succeeded, failed or cancelled job.

        model_complete is True once the model has no outstanding jobs.
        """
        remaining = self._outstanding.get(job.model_id, 0) - 1
        if remaining <= 0:
            self._outstanding.pop(job.model_id, None)
            remaining = 0
        else:
            self._outstanding[job.model_id] = remaining

        event = self._make_event(ProgressEventType.FINISHED, job, job.state, remaining == 0)
        self._publish(event)
        return event

    def _make_event(
        self,
        event_type: ProgressEventType,
        job: ProbeJob,
        state: JobState,
        model_complete: bool,
    ) -> ProgressEvent:
        self._seq += 1
        return ProgressEvent(
            seq=self._seq,
            event_type=event_type,
            model_id=job.model_id,
            channel_id=job.channel_id,
            endpoint_type=job.endpoint_type,
            job_id=job.job_id,
            run_id=job.run_id,
            state=state,
            model_complete=model_complete,
        )

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    def subscribe(self) -> Subscription:
        subscription = Subscription(self.max_queue_size)
        self._subscribers[subscription.id] = subscription
        logger.info(f"Progress subscriber connected: {subscription.id} ({len(self._subscribers)} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.info(f"Progress subscriber disconnected: {subscription.id}")

    def close_all(self) -> None:
        """Disconnect every subscriber; open streams end at their next wakeup."""
        for subscription in list(self._subscribers.values()):
            self.unsubscribe(subscription)

    def _publish(self, event: ProgressEvent) -> None:
        self.events_published += 1
        for subscription in list(self._subscribers.values()):
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                failure = BroadcastFailure(
                    f"Subscriber queue full ({self.max_queue_size}), dropping",
                    subscriber_id=subscription.id,
                )
                logger.warning(f"{failure} [{subscription.id}]")
                self.subscribers_dropped += 1
                self.unsubscribe(subscription)

    async def stream(
        self,
        subscription: Subscription,
        keepalive_seconds: float = DEFAULT_KEEPALIVE_SECONDS,
    ) -> AsyncIterator[str]:
        """
        Yield SSE frames for a subscription until it is dropped.

        A snapshot frame goes first so the client can seed its view; a
        comment line is sent whenever keepalive_seconds pass without events.
        """
        try:
            snapshot = self.snapshot()
            yield f"event: snapshot\ndata: {snapshot.model_dump_json()}\n\n"

            while not subscription.closed:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield event.to_sse()
        finally:
            self.unsubscribe(subscription)

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    @property
    def seq(self) -> int:
        return self._seq

    def in_flight(self) -> List[str]:
        return sorted(self._outstanding.keys())

    def snapshot(self, next_run=None) -> ProgressSnapshot:
        return ProgressSnapshot(seq=self._seq, in_flight=self.in_flight(), next_run=next_run)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "seq": self._seq,
            "in_flight_models": len(self._outstanding),
            "subscribers": len(self._subscribers),
            "events_published": self.events_published,
            "subscribers_dropped": self.subscribers_dropped,
        }


# ============================================================================
# CLIENT-SIDE VIEW
# ============================================================================

class ProgressView:
    """
    Observer-side reducer over push events and polled snapshots.

    Invariants:
        - Replaying an event (at-least-once delivery) changes nothing
        - A snapshot never re-adds a model whose completion the view saw
          with a seq newer than the snapshot
        - A model the view saw start at or before the snapshot's seq, and
          which the snapshot no longer lists, is pruned
    """

    def __init__(self):
        self.in_flight: Set[str] = set()
        self.last_seq = 0
        self._started_seq: Dict[str, int] = {}
        self._finished_seq: Dict[str, int] = {}

    def apply(self, event: ProgressEvent) -> None:
        model_id = event.model_id

        if event.event_type == ProgressEventType.STARTED:
            # Out-of-order start older than a completion already seen
            if self._finished_seq.get(model_id, 0) > event.seq:
                pass
            else:
                self.in_flight.add(model_id)
                self._started_seq[model_id] = max(event.seq, self._started_seq.get(model_id, 0))
        elif event.model_complete:
            if self._started_seq.get(model_id, 0) < event.seq:
                self.in_flight.discard(model_id)
            self._finished_seq[model_id] = max(event.seq, self._finished_seq.get(model_id, 0))

        if event.seq > self.last_seq:
            self.last_seq = event.seq

    def merge_snapshot(self, snapshot: ProgressSnapshot) -> None:
        listed = set(snapshot.in_flight)

        for model_id in listed:
            if self._finished_seq.get(model_id, 0) > snapshot.seq:
                continue
            self.in_flight.add(model_id)

        for model_id in list(self.in_flight):
            if model_id in listed:
                continue
            if self._started_seq.get(model_id, 0) <= snapshot.seq:
                self.in_flight.discard(model_id)

        if snapshot.seq > self.last_seq:
            self.last_seq = snapshot.seq


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_broadcaster: Optional[ProgressBroadcaster] = None


def get_broadcaster() -> ProgressBroadcaster:
    """Get or create the global broadcaster."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = ProgressBroadcaster()
    return _broadcaster


def reset_broadcaster() -> None:
    """Drop the global broadcaster (for testing)."""
    global _broadcaster
    _broadcaster = None


__all__ = [
    "ProgressBroadcaster",
    "Subscription",
    "ProgressView",
    "get_broadcaster",
    "reset_broadcaster",
]
