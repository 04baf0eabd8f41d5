# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# LAST_REVIEWED: 08 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class SchedulerConfigUpdate(BaseModel):
    """Partial scheduler config update. Omitted fields keep their value."""
    enabled: Optional[bool] = None
    cron_schedule: Optional[str] = Field(
        None,
        max_length=1024,
        description="Multi-cron ('a || b') or interval spec ('interval:hour:6:<anchor>')"
    )
    timezone: Optional[str] = Field(None, max_length=64)
    channel_concurrency: Optional[int] = None
    max_global_concurrency: Optional[int] = None
    min_delay_ms: Optional[int] = None
    max_delay_ms: Optional[int] = None
    detect_all_channels: Optional[bool] = None
    selected_channel_ids: Optional[List[str]] = None
    selected_model_ids: Optional[List[str]] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "cron_schedule": "interval:day:1:2024-01-01T00:00:00Z|offset=-480|times=08:00,20:00",
                    "channel_concurrency": 3,
                    "min_delay_ms": 2000,
                    "max_delay_ms": 4000,
                }
            ]
        }
    }


class DetectionRunRequest(BaseModel):
    """Manual "run now". Both fields empty means the whole eligible set."""
    channel_id: Optional[str] = Field(None, max_length=64)
    model_ids: Optional[List[str]] = None


class DetectionStopRequest(BaseModel):
    """Cancel pending probes of these models."""
    model_ids: List[str] = Field(..., min_length=1)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class SchedulerConfigResponse(BaseModel):
    """Current scheduler config with the computed next run."""
    id: str
    enabled: bool
    cron_schedule: str
    timezone: str
    channel_concurrency: int
    max_global_concurrency: int
    min_delay_ms: int
    max_delay_ms: int
    detect_all_channels: bool
    selected_channel_ids: List[str]
    selected_model_ids: List[str]
    updated_at: Optional[datetime] = None
    version: int
    next_run: Optional[datetime] = None


class DetectionRunResponse(BaseModel):
    run_id: str
    run_key: str
    trigger: str
    channel_count: int
    model_count: int
    job_count: int
    coalesced: int = 0


class DetectionStopResponse(BaseModel):
    cancelled: int
    models: List[str] = Field(default_factory=list)


class DetectionProgressResponse(BaseModel):
    """Pollable progress snapshot."""
    seq: int
    in_flight: List[str]
    is_running: bool
    queue: Dict[str, Any]
    next_run: Optional[datetime] = None
    last_run: Optional[Dict[str, Any]] = None


class SyncResponse(BaseModel):
    added: int
    removed: int
    total: int


class KeyValidationResult(BaseModel):
    key_id: Optional[str] = None
    masked_key: str
    valid: bool
    model_count: int
    models: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class KeyValidationResponse(BaseModel):
    results: List[KeyValidationResult]
    existing_models: List[str] = Field(default_factory=list)


class CleanupResponse(BaseModel):
    cutoff: datetime
    deleted_logs: int
    deleted_runs: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    field: Optional[str] = None
