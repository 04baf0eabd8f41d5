# ============================================================================
# RESULT AGGREGATOR TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - Health fold, summaries, dashboard roll-up
# PURPOSE: Verify last-write-wins health over the recent log window
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Result Aggregator Tests

Covers:
1. compute_health: UNKNOWN / UNHEALTHY / HEALTHY per supported endpoint types
2. Last write wins per endpoint type
3. summarize_model fields (detected endpoints, latency, last check)
4. health_rate rounding
5. ResultAggregator.record builds a bounded CheckLog
6. build_summary per-channel and system totals

Run with:
    pytest tests/test_aggregator.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.contracts import CheckStatus, EndpointType, HealthState
from core.models import Channel, ChannelModel, CheckLog, ProbeJob
from probes.base import ProbeOutcome
from services.aggregator import (
    ResultAggregator,
    compute_health,
    health_rate,
    summarize_model,
)


# ============================================================================
# FIXTURES
# ============================================================================

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _logs(*entries):
    """
    Build newest-first logs from (endpoint_type, status[, latency]) tuples.

    The first entry is the newest.
    """
    logs = []
    for i, entry in enumerate(entries):
        endpoint_type, status = entry[0], entry[1]
        latency = entry[2] if len(entry) > 2 else 100
        logs.append(CheckLog(
            model_id="m1",
            endpoint_type=endpoint_type,
            status=status,
            latency=latency,
            created_at=BASE_TIME - timedelta(minutes=i),
        ))
    return logs


OK, FAIL = CheckStatus.SUCCESS, CheckStatus.FAIL
CHAT, CLAUDE = EndpointType.CHAT, EndpointType.CLAUDE


# ============================================================================
# HEALTH FOLD
# ============================================================================

class TestComputeHealth:

    def test_no_logs_is_unknown(self):
        assert compute_health("gpt-4o", []) == HealthState.UNKNOWN

    def test_all_supported_succeeded(self):
        logs = _logs((CLAUDE, OK), (CHAT, OK))
        assert compute_health("claude-3-5-sonnet", logs) == HealthState.HEALTHY

    def test_partial_coverage_is_unknown(self):
        logs = _logs((CHAT, OK))
        assert compute_health("claude-3-5-sonnet", logs) == HealthState.UNKNOWN

    def test_any_latest_failure_is_unhealthy(self):
        logs = _logs((CLAUDE, FAIL), (CHAT, OK))
        assert compute_health("claude-3-5-sonnet", logs) == HealthState.UNHEALTHY

    def test_failure_with_partial_coverage_is_unhealthy(self):
        logs = _logs((CHAT, FAIL))
        assert compute_health("claude-3-5-sonnet", logs) == HealthState.UNHEALTHY

    def test_newer_success_supersedes_older_failure(self):
        logs = _logs((CHAT, OK), (CHAT, FAIL), (CHAT, FAIL))
        assert compute_health("gpt-4o", logs) == HealthState.HEALTHY

    def test_newer_failure_supersedes_older_success(self):
        logs = _logs((CHAT, FAIL), (CHAT, OK))
        assert compute_health("gpt-4o", logs) == HealthState.UNHEALTHY

    def test_failure_on_unexpected_type_is_unhealthy(self):
        # Name rules give gpt-4o only CHAT; a recorded CLAUDE failure still counts
        logs = _logs((CLAUDE, FAIL), (CHAT, OK))
        assert compute_health("gpt-4o", logs) == HealthState.UNHEALTHY

    def test_success_on_unexpected_type_is_healthy(self):
        logs = _logs((CLAUDE, OK), (CHAT, OK))
        assert compute_health("gpt-4o", logs) == HealthState.HEALTHY


class TestSummarizeModel:

    def test_empty(self):
        summary = summarize_model("gpt-4o", [])
        assert summary.last_status is None
        assert summary.detected_endpoints == []

    def test_fields_from_newest_log(self):
        logs = _logs((CLAUDE, FAIL, 900), (CHAT, OK, 120))
        summary = summarize_model("claude-3-5-sonnet", logs)

        assert summary.detected_endpoints == [CHAT]
        assert summary.last_status is False
        assert summary.last_latency == 900
        assert summary.last_checked_at == BASE_TIME

    def test_healthy_maps_to_true(self):
        summary = summarize_model("gpt-4o", _logs((CHAT, OK)))
        assert summary.last_status is True

    def test_unknown_maps_to_none(self):
        summary = summarize_model("gemini-pro", _logs((CHAT, OK)))
        assert summary.last_status is None
        assert summary.detected_endpoints == [CHAT]


@pytest.mark.parametrize("healthy,total,expected", [
    (0, 0, 0),
    (0, 5, 0),
    (5, 5, 100),
    (2, 3, 67),
    (1, 3, 33),
    (1, 8, 12),
])
def test_health_rate(healthy, total, expected):
    assert health_rate(healthy, total) == expected


# ============================================================================
# SERVICE
# ============================================================================

def _job() -> ProbeJob:
    return ProbeJob(run_id="r1", channel_id="c1", model_id="m1", model_name="gpt-4o", endpoint_type=CHAT)


class TestResultAggregator:

    def test_to_check_log_truncates_diagnostics(self):
        aggregator = ResultAggregator(MagicMock(), window=7)
        outcome = ProbeOutcome.failure_result(CHAT, 250, "e" * 800, status_code=500)

        log = aggregator.to_check_log(_job(), outcome)

        assert log.status == FAIL
        assert log.status_code == 500
        assert log.latency == 250
        assert log.error_msg.endswith("...")
        assert len(log.error_msg) == aggregator.max_chars + 3
        assert log.response_content is None

    def test_record_passes_summarizer_and_window(self):
        repo = MagicMock()

        async def record(log, summarize, window):
            assert window == 7
            return summarize("gpt-4o", [log])

        repo.record = AsyncMock(side_effect=record)
        aggregator = ResultAggregator(repo, window=7)
        outcome = ProbeOutcome.success_result(CHAT, 80, 200, "Hello")

        summary = asyncio.run(aggregator.record(_job(), outcome))

        assert summary.last_status is True
        assert summary.last_latency == 80
        logged = repo.record.await_args.args[0]
        assert logged.model_id == "m1"
        assert logged.response_content == "Hello"

    def test_build_summary(self):
        aggregator = ResultAggregator(MagicMock(), window=7)
        channels = [
            Channel(id="c1", name="Primary", base_url="https://a", api_key="k"),
            Channel(id="c2", name="Backup", base_url="https://b", api_key="k"),
        ]
        models = {
            "c1": [
                ChannelModel(id="m1", channel_id="c1", model_name="gpt-4o"),
                ChannelModel(id="m2", channel_id="c1", model_name="gpt-4o-mini"),
                ChannelModel(id="m3", channel_id="c1", model_name="claude-3"),
            ],
        }
        logs = {
            "m1": _logs((CHAT, OK)),
            "m2": _logs((CHAT, FAIL)),
            "m3": _logs((CHAT, OK)),
        }

        result = aggregator.build_summary(channels, models, logs)

        assert result["summary"] == {
            "total_channels": 2,
            "total_models": 3,
            "healthy_models": 1,
            "health_rate": 33,
        }
        primary, backup = result["channels"]
        assert primary["healthy_count"] == 1
        assert [m["health"] for m in primary["models"]] == ["healthy", "unhealthy", "unknown"]
        assert primary["models"][0]["heatmap"][0]["status"] == "SUCCESS"
        assert backup["model_count"] == 0
        assert backup["health_rate"] == 0
