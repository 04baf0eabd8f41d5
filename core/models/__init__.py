# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 10 SEP 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the detection engine. Table DDL lives in
repositories/schema.py; these models mirror those rows.
"""

from core.models.channel import Channel, ChannelKey
from core.models.model import ChannelModel, ModelSummary
from core.models.check_log import CheckLog, truncate_text
from core.models.scheduler_config import SchedulerConfig, SCHEDULER_CONFIG_ID
from core.models.probe_job import ProbeJob, ProbeRun, JobKey
from core.models.events import ProgressEvent, ProgressEventType, ProgressSnapshot

__all__ = [
    # Channels
    "Channel",
    "ChannelKey",
    "ChannelModel",
    "ModelSummary",
    # History
    "CheckLog",
    "truncate_text",
    # Config
    "SchedulerConfig",
    "SCHEDULER_CONFIG_ID",
    # Jobs
    "ProbeJob",
    "ProbeRun",
    "JobKey",
    # Events
    "ProgressEvent",
    "ProgressEventType",
    "ProgressSnapshot",
]
