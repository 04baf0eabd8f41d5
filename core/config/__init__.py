# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# LAST_REVIEWED: 02 SEP 2026
# ============================================================================
"""
Configuration Module

Provides centralized environment defaults for the detection engine.
"""

from core.config.defaults import (
    SchedulerDefaults,
    ProbeDefaults,
    RetentionDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "SchedulerDefaults",
    "ProbeDefaults",
    "RetentionDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
