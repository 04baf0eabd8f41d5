# ============================================================================
# SCHEDULER MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Scheduler exports
# PURPOSE: Schedule grammar and the trigger scheduler
# LAST_REVIEWED: 29 SEP 2026
# ============================================================================

from .schedule import (
    IntervalSpec,
    IntervalSpecTrigger,
    build_trigger,
    compute_next_run,
    parse_schedule,
    resolve_timezone,
    validate_schedule,
)
from .trigger import TriggerScheduler

__all__ = [
    "IntervalSpec",
    "IntervalSpecTrigger",
    "build_trigger",
    "compute_next_run",
    "parse_schedule",
    "resolve_timezone",
    "validate_schedule",
    "TriggerScheduler",
]
