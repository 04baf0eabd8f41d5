# ============================================================================
# DELAY / RATE CONTROLLER
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Worker - Channel-scoped inter-probe spacing
# PURPOSE: Random cooldown after each completed probe, per channel
# LAST_REVIEWED: 16 SEP 2026
# EXPORTS: DelayController
# ============================================================================
"""
Delay / Rate Controller

After a probe on channel C completes, C is blocked for a random delay drawn
uniformly from [min_delay_ms, max_delay_ms]. Other channels are unaffected.

The delay exists to stay under upstream rate limits and spread load, not
for correctness. Bounds are validated (min <= max) by the config service.
"""

import logging
import random
import time
from typing import Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class DelayController:
    """Tracks a cooldown deadline per channel."""

    def __init__(
        self,
        min_delay_ms: int,
        max_delay_ms: int,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.set_bounds(min_delay_ms, max_delay_ms)
        self._rng = rng or random.Random()
        self._clock = clock
        self._cooldown_until: Dict[str, float] = {}

    def set_bounds(self, min_delay_ms: int, max_delay_ms: int) -> None:
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ValueError(f"Invalid delay bounds: [{min_delay_ms}, {max_delay_ms}]")
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms

    def pick_delay_ms(self) -> int:
        """Uniform random integer in the closed interval [min, max]."""
        return self._rng.randint(self.min_delay_ms, self.max_delay_ms)

    def start_cooldown(self, channel_id: str) -> int:
        """Block channel_id for a fresh random delay. Returns the delay in ms."""
        delay_ms = self.pick_delay_ms()
        until = self._clock() + delay_ms / 1000.0
        # Overlapping completions extend, never shorten, the cooldown
        self._cooldown_until[channel_id] = max(until, self._cooldown_until.get(channel_id, 0.0))
        logger.debug(f"Channel {channel_id} cooling down for {delay_ms}ms")
        return delay_ms

    def remaining(self, channel_id: str) -> float:
        """Seconds until channel_id may dispatch again (0 if ready)."""
        until = self._cooldown_until.get(channel_id)
        if until is None:
            return 0.0
        left = until - self._clock()
        if left <= 0:
            del self._cooldown_until[channel_id]
            return 0.0
        return left

    def is_ready(self, channel_id: str) -> bool:
        return self.remaining(channel_id) == 0.0

    def next_ready_in(self, channel_ids: Iterable[str]) -> Optional[float]:
        """Smallest remaining cooldown among channel_ids, or None if none is cooling."""
        waits = [w for w in (self.remaining(c) for c in channel_ids) if w > 0]
        return min(waits) if waits else None

    def clear(self, channel_id: Optional[str] = None) -> None:
        if channel_id is None:
            self._cooldown_until.clear()
        else:
            self._cooldown_until.pop(channel_id, None)
