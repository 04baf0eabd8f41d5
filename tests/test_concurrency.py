# ============================================================================
# CONCURRENCY LIMITER + DELAY CONTROLLER TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - Slot accounting and per-channel cooldowns
# PURPOSE: Verify two-level ceilings and random post-completion delays
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Concurrency Limiter + Delay Controller Tests

Covers:
1. Channel and global ceilings, acquire-both-or-neither
2. Release bookkeeping and release-without-acquire
3. Live limit changes apply to the next acquire only
4. Delay bounds, cooldown per channel, next_ready_in

Run with:
    pytest tests/test_concurrency.py -v
"""

import random

import pytest

from worker.limits import ConcurrencyLimiter
from worker.rate_control import DelayController


# ============================================================================
# FIXTURES
# ============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# LIMITER
# ============================================================================

class TestConcurrencyLimiter:

    def test_channel_ceiling(self):
        limiter = ConcurrencyLimiter(channel_limit=2, global_limit=10)

        assert limiter.try_acquire("a")
        assert limiter.try_acquire("a")
        assert not limiter.try_acquire("a")
        assert limiter.try_acquire("b")
        assert limiter.running_for("a") == 2
        assert limiter.running_total == 3

    def test_global_ceiling_across_channels(self):
        limiter = ConcurrencyLimiter(channel_limit=5, global_limit=3)

        assert limiter.try_acquire("a")
        assert limiter.try_acquire("b")
        assert limiter.try_acquire("c")
        assert not limiter.global_headroom()
        assert not limiter.try_acquire("d")
        # Refused acquire takes nothing
        assert limiter.running_for("d") == 0
        assert limiter.running_total == 3

    def test_release_frees_both_slots(self):
        limiter = ConcurrencyLimiter(channel_limit=1, global_limit=1)
        limiter.try_acquire("a")

        limiter.release("a")

        assert limiter.running_total == 0
        assert limiter.running_for("a") == 0
        assert limiter.try_acquire("b")

    def test_release_without_acquire_is_ignored(self):
        limiter = ConcurrencyLimiter(channel_limit=1, global_limit=1)
        limiter.release("ghost")
        assert limiter.running_total == 0

    def test_lower_limits_keep_running_slots(self):
        limiter = ConcurrencyLimiter(channel_limit=3, global_limit=3)
        for _ in range(3):
            limiter.try_acquire("a")

        limiter.set_limits(channel_limit=1, global_limit=1)

        assert limiter.running_total == 3
        assert not limiter.try_acquire("a")
        limiter.release("a")
        limiter.release("a")
        assert not limiter.try_acquire("a")
        limiter.release("a")
        assert limiter.try_acquire("a")

    def test_peak_tracking(self):
        limiter = ConcurrencyLimiter(channel_limit=2, global_limit=4)
        limiter.try_acquire("a")
        limiter.try_acquire("a")
        limiter.release("a")

        assert limiter.peak_total == 2
        assert limiter.peak_per_channel["a"] == 2

    @pytest.mark.parametrize("channel_limit,global_limit", [(0, 1), (1, 0)])
    def test_invalid_limits_rejected(self, channel_limit, global_limit):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(channel_limit, global_limit)


# ============================================================================
# DELAY CONTROLLER
# ============================================================================

class TestDelayController:

    def test_delay_within_bounds(self):
        delays = DelayController(100, 200, rng=random.Random(7))
        picks = [delays.pick_delay_ms() for _ in range(200)]
        assert min(picks) >= 100
        assert max(picks) <= 200

    def test_zero_width_bounds(self):
        delays = DelayController(0, 0)
        assert delays.pick_delay_ms() == 0

    def test_invalid_bounds_rejected(self):
        with pytest.raises(ValueError):
            DelayController(500, 100)
        with pytest.raises(ValueError):
            DelayController(-1, 100)

    def test_cooldown_blocks_only_that_channel(self, clock):
        delays = DelayController(1000, 1000, clock=clock)

        delays.start_cooldown("a")

        assert not delays.is_ready("a")
        assert delays.is_ready("b")
        assert delays.remaining("a") == pytest.approx(1.0)

        clock.advance(1.0)
        assert delays.is_ready("a")

    def test_overlapping_cooldowns_extend(self, clock):
        delays = DelayController(2000, 2000, clock=clock)
        delays.start_cooldown("a")
        clock.advance(0.5)
        delays.set_bounds(100, 100)

        delays.start_cooldown("a")

        assert delays.remaining("a") == pytest.approx(1.5)

    def test_next_ready_in(self, clock):
        delays = DelayController(1000, 1000, clock=clock)
        delays.start_cooldown("a")
        clock.advance(0.25)
        delays.start_cooldown("b")

        assert delays.next_ready_in(["a", "b", "c"]) == pytest.approx(0.75)
        assert delays.next_ready_in(["c"]) is None

    def test_clear(self, clock):
        delays = DelayController(1000, 1000, clock=clock)
        delays.start_cooldown("a")
        delays.start_cooldown("b")

        delays.clear("a")
        assert delays.is_ready("a")
        assert not delays.is_ready("b")

        delays.clear()
        assert delays.is_ready("b")
