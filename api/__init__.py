# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for the detection engine
# LAST_REVIEWED: 08 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the detection engine.
"""

from .routes import router, set_services
from .schemas import (
    SchedulerConfigUpdate,
    DetectionRunRequest,
    DetectionStopRequest,
)

__all__ = [
    "router",
    "set_services",
    "SchedulerConfigUpdate",
    "DetectionRunRequest",
    "DetectionStopRequest",
]
