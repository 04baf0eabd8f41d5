# ============================================================================
# SCHEDULER CONFIG MODEL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core model - Singleton scheduler configuration
# PURPOSE: Schedule spec, concurrency ceilings, delay bounds, selection
# LAST_REVIEWED: 06 SEP 2026
# EXPORTS: SchedulerConfig, SCHEDULER_CONFIG_ID
# DEPENDENCIES: pydantic
# ============================================================================
"""
Scheduler Config Model

Singleton row (id="default"). Instances are frozen: an update produces a new
value that the config service swaps in atomically, so the scheduler and
worker pool only ever see a complete, validated configuration.

Maps to: scheduler_config table
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field

from core.config import SchedulerDefaults

SCHEDULER_CONFIG_ID = "default"


class SchedulerConfig(BaseModel):
    """
    Current scheduler configuration.

    detect_all_channels:
        True  - every model of every enabled channel is probed
        False - only selected_channel_ids / selected_model_ids
    """
    id: str = Field(default=SCHEDULER_CONFIG_ID)
    enabled: bool = True
    cron_schedule: str = Field(
        ...,
        description="Multi-cron ('a || b') or interval spec ('interval:hour:6:...')"
    )
    timezone: str = Field(default="Asia/Shanghai")
    channel_concurrency: int = Field(default=5, ge=1)
    max_global_concurrency: int = Field(default=30, ge=1)
    min_delay_ms: int = Field(default=3000, ge=0)
    max_delay_ms: int = Field(default=5000, ge=0)
    detect_all_channels: bool = True
    selected_channel_ids: List[str] = Field(default_factory=list)
    selected_model_ids: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True}

    @classmethod
    def from_defaults(cls, defaults: SchedulerDefaults) -> "SchedulerConfig":
        """Seed configuration from environment defaults."""
        return cls(
            enabled=defaults.enabled,
            cron_schedule=defaults.cron_schedule,
            timezone=defaults.timezone,
            channel_concurrency=defaults.channel_concurrency,
            max_global_concurrency=defaults.max_global_concurrency,
            min_delay_ms=defaults.min_delay_ms,
            max_delay_ms=defaults.max_delay_ms,
            detect_all_channels=defaults.detect_all_channels,
            updated_at=datetime.now(timezone.utc),
        )

    def schedule_fingerprint(self) -> tuple:
        """Fields that affect trigger timing; equal fingerprints fire identically."""
        return (self.enabled, self.cron_schedule.strip(), self.timezone)
