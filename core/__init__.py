# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models, and errors
# LAST_REVIEWED: 10 SEP 2026
# ============================================================================

from core.contracts import EndpointType, CheckStatus, JobState, HealthState, RunTrigger
from core.errors import (
    ConfigValidationError,
    ProbeFailure,
    QueueFailure,
    BroadcastFailure,
    NotFoundError,
)
from core.models import (
    Channel,
    ChannelModel,
    CheckLog,
    SchedulerConfig,
    ProbeJob,
    ProbeRun,
    ProgressEvent,
)

__all__ = [
    # Enums
    "EndpointType",
    "CheckStatus",
    "JobState",
    "HealthState",
    "RunTrigger",
    # Errors
    "ConfigValidationError",
    "ProbeFailure",
    "QueueFailure",
    "BroadcastFailure",
    "NotFoundError",
    # Models
    "Channel",
    "ChannelModel",
    "CheckLog",
    "SchedulerConfig",
    "ProbeJob",
    "ProbeRun",
    "ProgressEvent",
]
