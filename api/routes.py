# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for config, runs, progress, dashboard, channels
# LAST_REVIEWED: 08 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the detection engine. Mounted under /api/v1.

Error mapping:
    ConfigValidationError   400
    NotFoundError           404
    ChannelDisabledError    409
    ProbeFailure            502 (upstream model listing failed)
    QueueFailure            503
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from core.errors import (
    ChannelDisabledError,
    ConfigValidationError,
    NotFoundError,
    ProbeFailure,
    QueueFailure,
)
from .schemas import (
    CleanupResponse,
    DetectionProgressResponse,
    DetectionRunRequest,
    DetectionRunResponse,
    DetectionStopRequest,
    DetectionStopResponse,
    ErrorResponse,
    KeyValidationResponse,
    SchedulerConfigResponse,
    SchedulerConfigUpdate,
    SyncResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_config_service = None
_detection_service = None
_dashboard_service = None
_sync_service = None
_retention_service = None
_scheduler = None
_broadcaster = None
_worker_pool = None


def set_services(
    config_service,
    detection_service,
    dashboard_service,
    sync_service,
    retention_service,
    scheduler,
    broadcaster,
    worker_pool=None,
):
    """Set service instances for dependency injection."""
    global _config_service, _detection_service, _dashboard_service, _sync_service
    global _retention_service, _scheduler, _broadcaster, _worker_pool
    _config_service = config_service
    _detection_service = detection_service
    _dashboard_service = dashboard_service
    _sync_service = sync_service
    _retention_service = retention_service
    _scheduler = scheduler
    _broadcaster = broadcaster
    _worker_pool = worker_pool


def _require(service, name: str):
    if service is None:
        raise HTTPException(500, f"{name} not initialized")
    return service


def _next_run():
    return _scheduler.next_run if _scheduler is not None else None


# ============================================================================
# SCHEDULER CONFIG
# ============================================================================

@router.get("/scheduler/config", response_model=SchedulerConfigResponse, tags=["Scheduler"])
async def get_scheduler_config():
    """Current scheduler configuration and next scheduled run."""
    service = _require(_config_service, "Config service")
    return service.to_response(next_run=_next_run())


@router.put(
    "/scheduler/config",
    response_model=SchedulerConfigResponse,
    tags=["Scheduler"],
    responses={400: {"model": ErrorResponse, "description": "Invalid configuration"}},
)
async def update_scheduler_config(request: SchedulerConfigUpdate):
    """
    Update scheduler configuration.

    Only provided fields change. The timer is reloaded and new concurrency
    limits apply to the next dispatch; running probes are not interrupted.
    """
    service = _require(_config_service, "Config service")

    try:
        await service.update(request.model_dump(exclude_unset=True))
    except ConfigValidationError as e:
        logger.info(f"Rejected config update: {e}")
        raise HTTPException(400, detail={"error": str(e), "field": e.field})

    return service.to_response(next_run=_next_run())


# ============================================================================
# DETECTION
# ============================================================================

@router.post(
    "/detection/run",
    response_model=DetectionRunResponse,
    status_code=202,
    tags=["Detection"],
    responses={
        404: {"model": ErrorResponse, "description": "Channel or models not found"},
        409: {"model": ErrorResponse, "description": "Channel disabled"},
        503: {"model": ErrorResponse, "description": "Jobs could not be queued"},
    },
)
async def run_detection(request: Optional[DetectionRunRequest] = None):
    """
    Run detection now.

    Without a body the whole eligible set is queued. Keys already pending
    from another run are not queued twice.
    """
    service = _require(_detection_service, "Detection service")
    request = request or DetectionRunRequest()

    try:
        return await service.run_manual(channel_id=request.channel_id, model_ids=request.model_ids)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ChannelDisabledError as e:
        raise HTTPException(409, str(e))
    except QueueFailure as e:
        raise HTTPException(503, str(e))


@router.post(
    "/detection/stop",
    response_model=DetectionStopResponse,
    tags=["Detection"],
    responses={503: {"model": ErrorResponse, "description": "Cancellation not persisted"}},
)
async def stop_detection(request: DetectionStopRequest):
    """Cancel pending probes for the given models. Running probes finish."""
    service = _require(_detection_service, "Detection service")
    try:
        return await service.stop(request.model_ids)
    except QueueFailure as e:
        raise HTTPException(503, str(e))


@router.get("/detection/progress", response_model=DetectionProgressResponse, tags=["Detection"])
async def get_detection_progress():
    """
    Pollable progress snapshot.

    Clients that also consume /detection/stream should merge in_flight by
    set union using seq, not overwrite their view.
    """
    service = _require(_detection_service, "Detection service")
    return service.progress()


@router.get("/detection/stream", tags=["Detection"])
async def stream_detection_progress(
    keepalive: float = Query(15.0, ge=1.0, le=120.0, description="Seconds between keepalive comments"),
):
    """Server-Sent Events: a snapshot frame, then started/finished events."""
    broadcaster = _require(_broadcaster, "Broadcaster")
    subscription = broadcaster.subscribe()
    return StreamingResponse(
        broadcaster.stream(subscription, keepalive_seconds=keepalive),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ============================================================================
# DASHBOARD
# ============================================================================

@router.get("/dashboard/summary", tags=["Dashboard"])
async def get_dashboard_summary(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    search: str = Query("", max_length=128),
    endpoint_filter: str = Query("all", pattern="^(all|CHAT|CLAUDE|GEMINI|CODEX|IMAGE)$"),
    status_filter: str = Query("all", pattern="^(all|healthy|unhealthy|unknown)$"),
):
    """Channel and model health with system-wide totals."""
    service = _require(_dashboard_service, "Dashboard service")
    return await service.summary(
        page=page,
        page_size=page_size,
        search=search,
        endpoint_filter=endpoint_filter,
        status_filter=status_filter,
    )


# ============================================================================
# CHANNELS
# ============================================================================

@router.post(
    "/channels/{channel_id}/sync",
    response_model=SyncResponse,
    tags=["Channels"],
    responses={
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse, "description": "Upstream model listing failed"},
    },
)
async def sync_channel_models(channel_id: str):
    """Insert models the upstream lists that are not known yet."""
    service = _require(_sync_service, "Sync service")
    try:
        return await service.sync_channel(channel_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ProbeFailure as e:
        raise HTTPException(502, str(e))


@router.post(
    "/channels/{channel_id}/validate-keys",
    response_model=KeyValidationResponse,
    tags=["Channels"],
    responses={404: {"model": ErrorResponse}},
)
async def validate_channel_keys(channel_id: str):
    """Check each credential of a channel against its model listing."""
    service = _require(_sync_service, "Sync service")
    try:
        return await service.validate_keys(channel_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))


# ============================================================================
# MAINTENANCE
# ============================================================================

@router.post("/maintenance/cleanup", response_model=CleanupResponse, tags=["Maintenance"])
async def run_cleanup():
    """Apply log retention now."""
    service = _require(_retention_service, "Retention service")
    return await service.cleanup()


@router.get("/engine/status", tags=["Maintenance"])
async def get_engine_status():
    """Worker pool, scheduler and broadcaster statistics."""
    return {
        "worker_pool": _worker_pool.get_stats() if _worker_pool is not None else None,
        "scheduler": _scheduler.get_stats() if _scheduler is not None else None,
        "broadcaster": _broadcaster.stats if _broadcaster is not None else None,
        "config_version": _config_service.version if _config_service is not None else None,
    }
