# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Business logic layer
# PURPOSE: Runs, config, aggregation, sync, retention and dashboard
# LAST_REVIEWED: 06 OCT 2026
# ============================================================================
"""
Services Module

Business logic for the detection engine.
Services coordinate between repositories, the job queue and messaging.

Usage:
    from services import ConfigService, DetectionService

    config_service = ConfigService(SchedulerConfigRepository(pool))
    await config_service.load()
"""

from .aggregator import ResultAggregator, compute_health, summarize_model
from .config_service import ConfigService, validate_config
from .dashboard_service import DashboardService
from .detection_service import DetectionService, build_jobs
from .model_sync_service import ModelSyncService, mask_key
from .retention_service import RetentionService

__all__ = [
    "ResultAggregator",
    "compute_health",
    "summarize_model",
    "ConfigService",
    "validate_config",
    "DashboardService",
    "DetectionService",
    "build_jobs",
    "ModelSyncService",
    "mask_key",
    "RetentionService",
]
