# ============================================================================
# PROGRESS EVENT MODEL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core model - Live progress events
# PURPOSE: started/finished events pushed to subscribers, plus snapshots
# LAST_REVIEWED: 10 SEP 2026
# EXPORTS: ProgressEvent, ProgressEventType, ProgressSnapshot
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Progress Event Model

Events describe job lifecycle transitions as seen by observers. Every event
carries a broadcaster-wide, monotonically increasing seq so a client can
tell whether a snapshot is older or newer than what it already applied.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from core.contracts import EndpointType, JobState


class ProgressEventType(str, Enum):
    """Job lifecycle transitions pushed to subscribers."""
    STARTED = "started"      # Job dispatched to a worker
    FINISHED = "finished"    # Job succeeded, failed, or was cancelled


class ProgressEvent(BaseModel):
    """
    A single progress event.

    model_complete is set on FINISHED events when the model has no more
    queued or running jobs; observers drop the model from their in-flight
    view at that point.
    """
    seq: int = Field(..., ge=1)
    event_type: ProgressEventType
    model_id: str
    channel_id: str
    endpoint_type: EndpointType
    job_id: str
    run_id: str
    state: JobState
    model_complete: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        """Render as a Server-Sent Events frame."""
        return f"id: {self.seq}\nevent: {self.event_type.value}\ndata: {self.model_dump_json()}\n\n"


class ProgressSnapshot(BaseModel):
    """Pure read of the in-flight set at broadcaster seq."""
    seq: int = Field(..., ge=0)
    in_flight: List[str] = Field(default_factory=list)
    next_run: Optional[datetime] = None
