# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Data access layer
# PURPOSE: PostgreSQL repositories for the detection engine
# LAST_REVIEWED: 25 SEP 2026
# ============================================================================

from .database import init_pool, get_pool, close_pool, get_connection_string
from .schema import deploy_schema
from .channel_repo import ChannelRepository
from .model_repo import ModelRepository
from .check_log_repo import CheckLogRepository
from .scheduler_config_repo import SchedulerConfigRepository
from .job_queue_repo import ProbeJobRepository

__all__ = [
    "init_pool",
    "get_pool",
    "close_pool",
    "get_connection_string",
    "deploy_schema",
    "ChannelRepository",
    "ModelRepository",
    "CheckLogRepository",
    "SchedulerConfigRepository",
    "ProbeJobRepository",
]
