# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for scheduling, probing, retention
# LAST_REVIEWED: 02 SEP 2026
# ============================================================================
"""
Configuration Defaults

Environment-derived defaults. The scheduler defaults seed the persisted
SchedulerConfig row the first time it is read; after that the database row
is authoritative and these only act as fallbacks.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("false", "0", "no", "off")


@dataclass(frozen=True)
class SchedulerDefaults:
    """
    Defaults for the detection scheduler and worker pool.
    """
    enabled: bool = True
    # 00:00, 08:00, 12:00, 16:00, 20:00 every day
    cron_schedule: str = "0 0,8,12,16,20 * * *"
    timezone: str = "Asia/Shanghai"
    channel_concurrency: int = 5
    max_global_concurrency: int = 30
    min_delay_ms: int = 3000
    max_delay_ms: int = 5000
    detect_all_channels: bool = True
    sync_models_before_run: bool = True

    @classmethod
    def from_env(cls) -> "SchedulerDefaults":
        """Create from environment variables."""
        return cls(
            enabled=_env_bool("AUTO_DETECT_ENABLED", True),
            cron_schedule=os.getenv("CRON_SCHEDULE", "0 0,8,12,16,20 * * *"),
            timezone=os.getenv("CRON_TIMEZONE", "Asia/Shanghai"),
            channel_concurrency=int(os.getenv("CHANNEL_CONCURRENCY", 5)),
            max_global_concurrency=int(os.getenv("MAX_GLOBAL_CONCURRENCY", 30)),
            min_delay_ms=int(os.getenv("DETECTION_MIN_DELAY_MS", 3000)),
            max_delay_ms=int(os.getenv("DETECTION_MAX_DELAY_MS", 5000)),
            detect_all_channels=_env_bool("AUTO_DETECT_ALL_CHANNELS", True),
            sync_models_before_run=_env_bool("SYNC_MODELS_BEFORE_RUN", True),
        )


@dataclass(frozen=True)
class ProbeDefaults:
    """
    Defaults for upstream probe requests.
    """
    timeout_seconds: float = 30.0
    prompt: str = "1+1=2? yes or no"
    global_proxy: Optional[str] = None
    # CheckLog error/response text is truncated to this many characters
    max_diagnostic_chars: int = 500

    @classmethod
    def from_env(cls) -> "ProbeDefaults":
        """Create from environment variables."""
        return cls(
            timeout_seconds=float(os.getenv("PROBE_TIMEOUT_SECONDS", 30)),
            prompt=os.getenv("DETECT_PROMPT", "1+1=2? yes or no"),
            global_proxy=os.getenv("GLOBAL_PROXY") or None,
            max_diagnostic_chars=int(os.getenv("MAX_DIAGNOSTIC_CHARS", 500)),
        )


@dataclass(frozen=True)
class RetentionDefaults:
    """
    Defaults for check log retention.
    """
    cleanup_schedule: str = "0 2 * * *"
    log_retention_days: int = 7
    # Number of recent logs per model used for health and heatmap
    history_window: int = 7

    @classmethod
    def from_env(cls) -> "RetentionDefaults":
        """Create from environment variables."""
        return cls(
            cleanup_schedule=os.getenv("CLEANUP_SCHEDULE", "0 2 * * *"),
            log_retention_days=int(os.getenv("LOG_RETENTION_DAYS", 7)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    scheduler: SchedulerDefaults = field(default_factory=SchedulerDefaults)
    probe: ProbeDefaults = field(default_factory=ProbeDefaults)
    retention: RetentionDefaults = field(default_factory=RetentionDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            scheduler=SchedulerDefaults.from_env(),
            probe=ProbeDefaults.from_env(),
            retention=RetentionDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


__all__ = [
    "SchedulerDefaults",
    "ProbeDefaults",
    "RetentionDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
