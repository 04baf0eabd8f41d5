# ============================================================================
# WORKER POOL + PROBE EXECUTOR TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - Dispatch under ceilings, single-job execution
# PURPOSE: Verify slot accounting, cooldown wakeups and failure handling
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Worker Pool + Probe Executor Tests

Covers:
1. dispatch_ready respects channel and global ceilings
2. Completion frees the slot and the next job goes out
3. Executor exceptions mark the job FAILED and still release slots
4. Live limit changes through apply_limits
5. Full start/stop loop drains the queue
6. ProbeExecutor records, completes and broadcasts every outcome

Run with:
    pytest tests/test_worker_pool.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from core.contracts import EndpointType, JobState, RunTrigger
from core.models import Channel, ProbeJob, ProbeRun, SchedulerConfig
from probes.base import ProbeOutcome
from worker.executor import ProbeExecutor
from worker.limits import ConcurrencyLimiter
from worker.pool import WorkerPool
from worker.queue import JobQueue


# ============================================================================
# FIXTURES
# ============================================================================

def _config(channel=5, global_=30, min_delay=0, max_delay=0) -> SchedulerConfig:
    return SchedulerConfig(
        cron_schedule="0 * * * *",
        channel_concurrency=channel,
        max_global_concurrency=global_,
        min_delay_ms=min_delay,
        max_delay_ms=max_delay,
    )


def _job(model_id, channel_id="c1") -> ProbeJob:
    return ProbeJob(
        run_id="",
        channel_id=channel_id,
        model_id=model_id,
        model_name=f"name-{model_id}",
        endpoint_type=EndpointType.CHAT,
    )


def _run() -> ProbeRun:
    return ProbeRun(run_key=ProbeRun.manual_key(), trigger=RunTrigger.MANUAL)


class GatedExecutor:
    """Holds every job until the gate opens, then completes it."""

    def __init__(self, queue, fail=False):
        self.queue = queue
        self.gate = asyncio.Event()
        self.seen = []
        self.fail = fail

    async def execute(self, job):
        self.seen.append(job.model_id)
        await self.gate.wait()
        if self.fail:
            raise RuntimeError("boom")
        await self.queue.complete(job, True)


async def _settle(pool: WorkerPool) -> None:
    tasks = list(pool._active_tasks.values())
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


# ============================================================================
# DISPATCH
# ============================================================================

class TestDispatch:

    def test_channel_ceiling(self):
        async def scenario():
            queue = JobQueue()
            executor = GatedExecutor(queue)
            pool = WorkerPool(queue, executor, MagicMock(), _config(channel=1))
            await queue.enqueue_run(_run(), [_job("a1", "A"), _job("a2", "A"), _job("b1", "B")])

            first = pool.dispatch_ready()
            await asyncio.sleep(0)
            return pool, executor, first

        pool, executor, first = asyncio.run(scenario())

        assert first == 2
        assert executor.seen == ["a1", "b1"]

    def test_global_ceiling(self):
        async def scenario():
            queue = JobQueue()
            pool = WorkerPool(queue, GatedExecutor(queue), MagicMock(), _config(global_=2))
            await queue.enqueue_run(_run(), [_job("a", "A"), _job("b", "B"), _job("c", "C")])
            count = pool.dispatch_ready()
            return count, pool.limiter.running_total, queue.pending_count

        assert asyncio.run(scenario()) == (2, 2, 1)

    def test_completion_releases_slot(self):
        async def scenario():
            queue = JobQueue()
            executor = GatedExecutor(queue)
            broadcaster = MagicMock()
            pool = WorkerPool(queue, executor, broadcaster, _config(channel=1))
            await queue.enqueue_run(_run(), [_job("a1", "A"), _job("a2", "A")])

            pool.dispatch_ready()
            assert pool.dispatch_ready() == 0

            executor.gate.set()
            await _settle(pool)
            assert pool.limiter.running_for("A") == 0

            assert pool.dispatch_ready() == 1
            await _settle(pool)
            return executor.seen, broadcaster.job_started.call_count, queue.is_idle()

        seen, started, idle = asyncio.run(scenario())

        assert seen == ["a1", "a2"]
        assert started == 2
        assert idle

    def test_cooldown_blocks_channel(self):
        async def scenario():
            queue = JobQueue()
            executor = GatedExecutor(queue)
            executor.gate.set()
            pool = WorkerPool(queue, executor, MagicMock(), _config(min_delay=60000, max_delay=60000))
            await queue.enqueue_run(_run(), [_job("a1", "A")])
            pool.dispatch_ready()
            await _settle(pool)

            await queue.enqueue_run(_run(), [_job("a2", "A"), _job("b1", "B")])
            count = pool.dispatch_ready()
            await _settle(pool)
            return count, executor.seen, pool.delays.is_ready("A")

        count, seen, ready = asyncio.run(scenario())

        assert count == 1
        assert seen == ["a1", "b1"]
        assert not ready

    def test_executor_exception_fails_job(self):
        async def scenario():
            queue = JobQueue()
            executor = GatedExecutor(queue, fail=True)
            executor.gate.set()
            broadcaster = MagicMock()
            pool = WorkerPool(queue, executor, broadcaster, _config())
            accepted = await queue.enqueue_run(_run(), [_job("a1", "A")])

            pool.dispatch_ready()
            await _settle(pool)
            return accepted[0], pool, broadcaster

        job, pool, broadcaster = asyncio.run(scenario())

        assert job.state == JobState.FAILED
        assert pool.limiter.running_total == 0
        assert pool.get_stats()["errors"] == 1
        broadcaster.job_finished.assert_called_once_with(job)

    def test_lost_slot_requeues_job_at_head(self):
        class FlakyLimiter(ConcurrencyLimiter):
            refusals = 1

            def try_acquire(self, channel_id):
                if self.refusals:
                    self.refusals -= 1
                    return False
                return super().try_acquire(channel_id)

        async def scenario():
            queue = JobQueue()
            executor = GatedExecutor(queue)
            broadcaster = MagicMock()
            limiter = FlakyLimiter(channel_limit=5, global_limit=30)
            pool = WorkerPool(queue, executor, broadcaster, _config(), limiter=limiter)
            accepted = await queue.enqueue_run(_run(), [_job("a1", "A"), _job("a2", "A")])

            first = pool.dispatch_ready()
            state_after_refusal = accepted[0].state
            pending_after_refusal = queue.pending_count
            started_after_refusal = broadcaster.job_started.call_count

            second = pool.dispatch_ready()
            await asyncio.sleep(0)
            return first, state_after_refusal, pending_after_refusal, started_after_refusal, second, executor.seen

        first, state, pending, started, second, seen = asyncio.run(scenario())

        assert first == 0
        assert state == JobState.PENDING
        assert pending == 2
        assert started == 0
        assert second == 2
        assert seen == ["a1", "a2"]

    def test_apply_limits(self):
        async def scenario():
            queue = JobQueue()
            pool = WorkerPool(queue, GatedExecutor(queue), MagicMock(), _config(channel=1))
            await queue.enqueue_run(_run(), [_job("a1", "A"), _job("a2", "A"), _job("a3", "A")])
            pool.dispatch_ready()

            pool.apply_limits(_config(channel=3, global_=3, min_delay=10, max_delay=20))
            count = pool.dispatch_ready()
            return count, pool

        count, pool = asyncio.run(scenario())

        assert count == 2
        assert pool.limiter.channel_limit == 3
        assert pool.delays.min_delay_ms == 10
        assert pool.delays.max_delay_ms == 20


# ============================================================================
# LOOP
# ============================================================================

class TestLoop:

    def test_start_drains_queue_and_stop(self):
        async def scenario():
            queue = JobQueue()
            executor = GatedExecutor(queue)
            executor.gate.set()
            pool = WorkerPool(queue, executor, MagicMock(), _config(channel=2, global_=3))
            await pool.start()
            await queue.enqueue_run(_run(), [_job(f"m{i}", f"c{i % 2}") for i in range(6)])

            for _ in range(200):
                if queue.is_idle():
                    break
                await asyncio.sleep(0.01)

            await pool.stop()
            return queue, executor, pool

        queue, executor, pool = asyncio.run(scenario())

        assert queue.is_idle()
        assert sorted(executor.seen) == [f"m{i}" for i in range(6)]
        assert not pool.is_running
        assert pool.limiter.peak_total <= 3
        assert max(pool.limiter.peak_per_channel.values()) <= 2


# ============================================================================
# EXECUTOR
# ============================================================================

def _channel(proxy=None) -> Channel:
    return Channel(id="c1", name="Main", base_url="https://api.example.com/v1", api_key="sk-test", proxy=proxy)


def _executor(client, channel=None):
    queue = MagicMock()
    queue.mark_started = AsyncMock()
    queue.complete = AsyncMock()
    aggregator = MagicMock()
    aggregator.record = AsyncMock()
    broadcaster = MagicMock()
    lookup = AsyncMock(return_value=channel)
    executor = ProbeExecutor(queue, client, aggregator, broadcaster, channel_lookup=lookup)
    return executor, queue, aggregator, broadcaster


class TestProbeExecutor:

    def test_success_path(self):
        client = MagicMock()
        client.probe = AsyncMock(return_value=ProbeOutcome.success_result(EndpointType.CHAT, 120, 200, "hi"))
        executor, queue, aggregator, broadcaster = _executor(client, _channel(proxy="http://proxy:8080"))
        job = _job("m1")

        outcome = asyncio.run(executor.execute(job))

        assert outcome.success
        client.probe.assert_awaited_once_with(
            base_url="https://api.example.com/v1",
            api_key="sk-test",
            model_name="name-m1",
            endpoint_type=EndpointType.CHAT,
            proxy="http://proxy:8080",
        )
        queue.mark_started.assert_awaited_once_with(job)
        aggregator.record.assert_awaited_once_with(job, outcome)
        queue.complete.assert_awaited_once_with(job, True)
        broadcaster.job_finished.assert_called_once_with(job)
        assert executor.get_stats()["succeeded"] == 1

    def test_missing_channel_is_failure(self):
        client = MagicMock()
        client.probe = AsyncMock()
        executor, queue, _, _ = _executor(client, channel=None)

        outcome = asyncio.run(executor.execute(_job("m1")))

        assert not outcome.success
        assert "Channel not found" in outcome.error
        client.probe.assert_not_awaited()
        queue.complete.assert_awaited_once()
        assert queue.complete.await_args.args[1] is False

    def test_disabled_channel_is_failure(self):
        client = MagicMock()
        client.probe = AsyncMock()
        channel = _channel()
        channel.enabled = False
        executor, queue, aggregator, broadcaster = _executor(client, channel)
        job = _job("m1")

        outcome = asyncio.run(executor.execute(job))

        assert not outcome.success
        assert outcome.error == "Channel disabled: c1"
        assert outcome.status_code is None
        client.probe.assert_not_awaited()
        aggregator.record.assert_awaited_once_with(job, outcome)
        assert queue.complete.await_args.args[1] is False
        broadcaster.job_finished.assert_called_once_with(job)

    def test_client_exception_is_failure(self):
        client = MagicMock()
        client.probe = AsyncMock(side_effect=ValueError("bad url"))
        executor, _, aggregator, _ = _executor(client, _channel())

        outcome = asyncio.run(executor.execute(_job("m1")))

        assert not outcome.success
        assert outcome.error == "bad url"
        aggregator.record.assert_awaited_once()

    def test_record_failure_still_completes(self):
        client = MagicMock()
        client.probe = AsyncMock(return_value=ProbeOutcome.success_result(EndpointType.CHAT, 5, 200, "ok"))
        executor, queue, aggregator, broadcaster = _executor(client, _channel())
        aggregator.record.side_effect = RuntimeError("db down")

        asyncio.run(executor.execute(_job("m1")))

        queue.complete.assert_awaited_once()
        broadcaster.job_finished.assert_called_once()
        assert executor.get_stats()["record_errors"] == 1
