# ============================================================================
# CONFIG SERVICE TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - Validated, versioned scheduler config
# PURPOSE: Verify load/seed, partial updates, validation and listeners
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Config Service Tests

Covers:
1. Seeding from environment defaults when nothing is stored
2. Invalid stored config falls back to defaults in memory
3. Partial updates merge over the current snapshot
4. min_delay_ms <= max_delay_ms on the effective values
5. Rejected updates leave the snapshot and version unchanged
6. Listeners receive each new snapshot; a failing listener is isolated

Run with:
    pytest tests/test_config_service.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.config import reset_defaults
from core.errors import ConfigValidationError
from core.models import SchedulerConfig
from services.config_service import ConfigService, validate_config


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def clean_defaults(monkeypatch):
    for name in (
        "CRON_SCHEDULE", "CRON_TIMEZONE", "AUTO_DETECT_ENABLED",
        "CHANNEL_CONCURRENCY", "MAX_GLOBAL_CONCURRENCY",
        "DETECTION_MIN_DELAY_MS", "DETECTION_MAX_DELAY_MS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_defaults()
    yield
    reset_defaults()


def _repo(stored=None):
    repo = MagicMock()
    repo.get = AsyncMock(return_value=stored)
    repo.save = AsyncMock()
    return repo


def _loaded(repo=None) -> ConfigService:
    service = ConfigService(repo if repo is not None else _repo())
    asyncio.run(service.load())
    return service


# ============================================================================
# LOAD
# ============================================================================

class TestLoad:

    def test_seeds_defaults_when_empty(self):
        repo = _repo()
        service = _loaded(repo)

        config = service.current
        assert config.cron_schedule == "0 0,8,12,16,20 * * *"
        assert config.timezone == "Asia/Shanghai"
        assert config.channel_concurrency == 5
        assert (config.min_delay_ms, config.max_delay_ms) == (3000, 5000)
        assert service.version == 1
        repo.save.assert_awaited_once()

    def test_uses_stored_config(self):
        stored = SchedulerConfig(cron_schedule="0 */6 * * *", timezone="UTC", channel_concurrency=2)
        service = _loaded(_repo(stored))

        assert service.current == stored

    def test_invalid_stored_config_falls_back(self):
        stored = SchedulerConfig(cron_schedule="every now and then", timezone="UTC")
        repo = _repo(stored)
        service = _loaded(repo)

        assert service.current.cron_schedule == "0 0,8,12,16,20 * * *"
        repo.save.assert_not_awaited()

    def test_current_before_load(self):
        with pytest.raises(RuntimeError):
            ConfigService().current


# ============================================================================
# UPDATE
# ============================================================================

class TestUpdate:

    def test_partial_update_merges(self):
        repo = _repo()
        service = _loaded(repo)

        config = asyncio.run(service.update({"cron_schedule": "30 6 * * 1", "channel_concurrency": 3}))

        assert config.cron_schedule == "30 6 * * 1"
        assert config.channel_concurrency == 3
        assert config.max_global_concurrency == 30
        assert config.updated_at is not None
        assert service.version == 2
        assert repo.save.await_count == 2

    def test_none_values_are_ignored(self):
        service = _loaded()
        config = asyncio.run(service.update({"timezone": None, "enabled": False}))

        assert config.timezone == "Asia/Shanghai"
        assert config.enabled is False

    def test_delay_checked_on_effective_values(self):
        service = _loaded()

        # Current max is 5000
        with pytest.raises(ConfigValidationError) as exc_info:
            asyncio.run(service.update({"min_delay_ms": 6000}))
        assert exc_info.value.field == "min_delay_ms"

        config = asyncio.run(service.update({"min_delay_ms": 6000, "max_delay_ms": 8000}))
        assert (config.min_delay_ms, config.max_delay_ms) == (6000, 8000)

    @pytest.mark.parametrize("changes,field", [
        ({"cron_schedule": "interval:week:1:2024-01-01T00:00:00Z"}, "cron_schedule"),
        ({"timezone": "Nowhere/Land"}, "timezone"),
        ({"channel_concurrency": 0}, "channel_concurrency"),
        ({"max_global_concurrency": -1}, "max_global_concurrency"),
        ({"max_delay_ms": -5}, "max_delay_ms"),
        ({"channel_concurrency": True}, "channel_concurrency"),
        ({"refresh_rate": 5}, "refresh_rate"),
    ])
    def test_rejected_update_changes_nothing(self, changes, field):
        repo = _repo()
        service = _loaded(repo)
        before = service.current
        listener = MagicMock()
        service.add_listener(listener)

        with pytest.raises(ConfigValidationError) as exc_info:
            asyncio.run(service.update(changes))

        assert exc_info.value.field == field
        assert service.current is before
        assert service.version == 1
        assert repo.save.await_count == 1
        listener.assert_not_called()

    def test_listeners_notified(self):
        service = _loaded()
        seen = []
        service.add_listener(lambda config: seen.append(config.cron_schedule))

        asyncio.run(service.update({"cron_schedule": "0 * * * *"}))

        assert seen == ["0 * * * *"]

    def test_failing_listener_is_isolated(self):
        service = _loaded()
        broken = MagicMock(side_effect=RuntimeError("boom"))
        after = MagicMock()
        service.add_listener(broken)
        service.add_listener(after)

        config = asyncio.run(service.update({"enabled": False}))

        after.assert_called_once_with(config)
        assert service.current is config

    def test_to_response(self):
        service = _loaded()
        body = service.to_response()

        assert body["version"] == 1
        assert body["next_run"] is None
        assert body["cron_schedule"] == "0 0,8,12,16,20 * * *"


class TestValidateConfig:

    def test_valid_interval(self):
        values = SchedulerConfig(cron_schedule="0 * * * *").model_dump()
        values["cron_schedule"] = "interval:day:1:2024-01-01T00:00:00Z|offset=-480|times=08:00,20:00"

        config = validate_config(values)

        assert config.cron_schedule.startswith("interval:day")

    def test_equal_delays_allowed(self):
        values = SchedulerConfig(cron_schedule="0 * * * *", min_delay_ms=0, max_delay_ms=0).model_dump()
        assert validate_config(values).max_delay_ms == 0
