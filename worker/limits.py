# ============================================================================
# CONCURRENCY LIMITER
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Worker - Two-level concurrency ceiling
# PURPOSE: Per-channel and global slot accounting owned by the worker pool
# LAST_REVIEWED: 16 SEP 2026
# EXPORTS: ConcurrencyLimiter
# ============================================================================
"""
Concurrency Limiter

Two nested counting semaphores: one per channel (keyed by channel ID) and
one global. A job may start only when both have headroom.

All methods are synchronous. On the asyncio event loop a method that never
awaits runs atomically, so acquire/release need no lock. Callers must not
hold a slot across an await without a matching release in a finally block.

Limits can change at any time; new limits apply to the next acquire only.
Running jobs keep their slots even if the new ceiling is lower.
"""

import logging
from collections import defaultdict
from typing import Any, Dict

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """Per-channel + global slot counters."""

    def __init__(self, channel_limit: int, global_limit: int):
        if channel_limit < 1 or global_limit < 1:
            raise ValueError("Concurrency limits must be >= 1")
        self.channel_limit = channel_limit
        self.global_limit = global_limit
        self._per_channel: Dict[str, int] = defaultdict(int)
        self._total = 0

        # High-water marks, useful for verifying the ceilings hold
        self.peak_total = 0
        self.peak_per_channel: Dict[str, int] = defaultdict(int)

    @property
    def running_total(self) -> int:
        return self._total

    def running_for(self, channel_id: str) -> int:
        return self._per_channel.get(channel_id, 0)

    def global_headroom(self) -> bool:
        return self._total < self.global_limit

    def has_capacity(self, channel_id: str) -> bool:
        return (
            self._total < self.global_limit
            and self._per_channel.get(channel_id, 0) < self.channel_limit
        )

    def try_acquire(self, channel_id: str) -> bool:
        """Take one channel slot and one global slot, or neither."""
        if not self.has_capacity(channel_id):
            return False

        self._per_channel[channel_id] += 1
        self._total += 1

        if self._total > self.peak_total:
            self.peak_total = self._total
        if self._per_channel[channel_id] > self.peak_per_channel[channel_id]:
            self.peak_per_channel[channel_id] = self._per_channel[channel_id]
        return True

    def release(self, channel_id: str) -> None:
        count = self._per_channel.get(channel_id, 0)
        if count <= 0 or self._total <= 0:
            logger.error(f"Release without acquire for channel {channel_id}")
            return

        if count == 1:
            del self._per_channel[channel_id]
        else:
            self._per_channel[channel_id] = count - 1
        self._total -= 1

    def set_limits(self, channel_limit: int, global_limit: int) -> None:
        """Apply new ceilings to future acquisitions."""
        if channel_limit < 1 or global_limit < 1:
            raise ValueError("Concurrency limits must be >= 1")
        if (channel_limit, global_limit) != (self.channel_limit, self.global_limit):
            logger.info(
                f"Concurrency limits changed: channel {self.channel_limit}->{channel_limit}, "
                f"global {self.global_limit}->{global_limit}"
            )
        self.channel_limit = channel_limit
        self.global_limit = global_limit

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "channel_limit": self.channel_limit,
            "global_limit": self.global_limit,
            "running_total": self._total,
            "running_per_channel": dict(self._per_channel),
            "peak_total": self.peak_total,
        }
