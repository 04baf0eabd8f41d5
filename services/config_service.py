# ============================================================================
# CONFIG SERVICE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Service - Scheduler configuration store
# PURPOSE: Validate, persist and publish SchedulerConfig snapshots
# LAST_REVIEWED: 05 OCT 2026
# EXPORTS: ConfigService, validate_config
# ============================================================================
"""
Config Service

Holds the current SchedulerConfig as an immutable, versioned snapshot.

Update flow:
    1. merge the partial update over the current snapshot
    2. validate the merged result (schedule grammar, timezone, ranges,
       min_delay_ms <= max_delay_ms on the effective values)
    3. persist
    4. swap the snapshot and bump the version
    5. notify listeners (trigger scheduler reload, worker pool limits)

Nothing downstream sees a config that failed validation: errors raise
ConfigValidationError before step 3 and the snapshot stays as it was.

Usage:
    service = ConfigService(SchedulerConfigRepository(pool))
    await service.load()
    service.add_listener(scheduler.reload)
    config = await service.update({"cron_schedule": "0 */6 * * *"})
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.config import get_defaults
from core.errors import ConfigValidationError
from core.models import SchedulerConfig
from scheduler.schedule import validate_schedule

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "enabled",
    "cron_schedule",
    "timezone",
    "channel_concurrency",
    "max_global_concurrency",
    "min_delay_ms",
    "max_delay_ms",
    "detect_all_channels",
    "selected_channel_ids",
    "selected_model_ids",
)


def validate_config(values: Dict[str, Any]) -> SchedulerConfig:
    """
    Validate a complete set of config values.

    Returns:
        The validated SchedulerConfig

    Raises:
        ConfigValidationError: first failing field
    """
    for field_name in ("channel_concurrency", "max_global_concurrency"):
        value = values.get(field_name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigValidationError(f"{field_name} must be an integer >= 1", field=field_name, value=value)

    for field_name in ("min_delay_ms", "max_delay_ms"):
        value = values.get(field_name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigValidationError(f"{field_name} must be a non-negative integer", field=field_name, value=value)

    if values["min_delay_ms"] > values["max_delay_ms"]:
        raise ConfigValidationError(
            "Minimum delay cannot be greater than maximum delay",
            field="min_delay_ms",
            value=values["min_delay_ms"],
        )

    validate_schedule(values.get("cron_schedule"), values.get("timezone"))

    try:
        return SchedulerConfig(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigValidationError(
            f"Invalid config: {first.get('msg')}",
            field=field_name,
            value=first.get("input"),
        ) from e


class ConfigService:
    """Versioned SchedulerConfig snapshot with validated updates."""

    def __init__(self, repo=None):
        self.repo = repo
        self._config: Optional[SchedulerConfig] = None
        self._version = 0
        self._listeners: List[Callable[[SchedulerConfig], Any]] = []
        self._lock = asyncio.Lock()

    @property
    def current(self) -> SchedulerConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    @property
    def version(self) -> int:
        return self._version

    def add_listener(self, callback: Callable[[SchedulerConfig], Any]) -> None:
        """Register a synchronous callback invoked with each new snapshot."""
        self._listeners.append(callback)

    async def load(self) -> SchedulerConfig:
        """
        Load the stored config, seeding it from environment defaults.

        A stored config that no longer validates (e.g. a grammar change) is
        logged and replaced by the defaults in memory only.
        """
        stored = await self.repo.get() if self.repo is not None else None

        if stored is None:
            config = SchedulerConfig.from_defaults(get_defaults().scheduler)
            validate_config(config.model_dump())
            if self.repo is not None:
                await self.repo.save(config)
            logger.info("Seeded scheduler config from environment defaults")
        else:
            try:
                validate_config(stored.model_dump())
                config = stored
            except ConfigValidationError as e:
                logger.error(f"Stored scheduler config is invalid ({e}); using defaults")
                config = SchedulerConfig.from_defaults(get_defaults().scheduler)

        self._swap(config)
        return config

    async def update(self, changes: Dict[str, Any]) -> SchedulerConfig:
        """
        Apply a partial update.

        Args:
            changes: Subset of UPDATABLE_FIELDS; None values are ignored

        Raises:
            ConfigValidationError: the merged config is invalid
        """
        unknown = [key for key in changes if key not in UPDATABLE_FIELDS]
        if unknown:
            raise ConfigValidationError(f"Unknown config field: {unknown[0]}", field=unknown[0])

        async with self._lock:
            merged = self.current.model_dump()
            merged.update({key: value for key, value in changes.items() if value is not None})
            merged["updated_at"] = datetime.now(timezone.utc)

            config = validate_config(merged)

            if self.repo is not None:
                await self.repo.save(config)

            self._swap(config)

        logger.info(f"Scheduler config updated to version {self._version}: {sorted(changes)}")
        self._notify(config)
        return config

    def _swap(self, config: SchedulerConfig) -> None:
        self._config = config
        self._version += 1

    def _notify(self, config: SchedulerConfig) -> None:
        for callback in self._listeners:
            try:
                callback(config)
            except Exception as e:
                logger.exception(f"Config listener failed: {e}")

    def to_response(self, next_run: Optional[datetime] = None) -> Dict[str, Any]:
        config = self.current
        return {
            **config.model_dump(mode="json"),
            "version": self._version,
            "next_run": next_run.isoformat() if next_run else None,
        }


__all__ = ["ConfigService", "validate_config", "UPDATABLE_FIELDS"]
