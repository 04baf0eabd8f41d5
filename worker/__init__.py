# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Probe execution components
# PURPOSE: Queue, concurrency ceilings, cooldowns, dispatch and execution
# LAST_REVIEWED: 01 OCT 2026
# ============================================================================
"""
Worker Module

Components for running probe jobs:
- queue: channel-aware FIFO over the durable probe_jobs table
- limits: per-channel and global concurrency ceilings
- rate_control: random per-channel cooldown after each probe
- executor: one job end to end (probe, record, events)
- pool: dispatch loop tying the above together
"""

from worker.queue import JobQueue
from worker.limits import ConcurrencyLimiter
from worker.rate_control import DelayController
from worker.executor import ProbeExecutor
from worker.pool import WorkerPool

__all__ = [
    "JobQueue",
    "ConcurrencyLimiter",
    "DelayController",
    "ProbeExecutor",
    "WorkerPool",
]
