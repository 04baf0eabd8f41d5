# ============================================================================
# PROBE JOB MODEL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core model - One unit of detection work
# PURPOSE: (channel, model, endpoint type) job and the run that groups jobs
# LAST_REVIEWED: 08 SEP 2026
# EXPORTS: ProbeJob, ProbeRun, JobKey
# DEPENDENCIES: pydantic
# ============================================================================
"""
Probe Job Model

A ProbeJob lives from enqueue until it reaches a terminal state. While it is
pending or running it is persisted in probe_jobs so a restart can resume the
run; terminal rows stay behind as the run's audit trail.

A ProbeRun groups the jobs of one activation (scheduled or manual).
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple
from pydantic import BaseModel, Field, computed_field

from core.contracts import EndpointType, JobState, RunTrigger

# (model_id, endpoint_type) - the coalescing key
JobKey = Tuple[str, EndpointType]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProbeJob(BaseModel):
    """
    One probe of one endpoint type of one model.

    Lifecycle:
        1. Created PENDING on enqueue (seq assigned by the queue)
        2. RUNNING when the worker pool dispatches it
        3. SUCCESS / FAILED when the probe outcome is recorded
        4. CANCELLED if removed from the queue before dispatch
    """
    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    run_id: str = Field(..., max_length=64)
    channel_id: str = Field(..., max_length=64)
    model_id: str = Field(..., max_length=64)
    model_name: str = Field(..., max_length=256)
    endpoint_type: EndpointType

    state: JobState = Field(default=JobState.PENDING)
    seq: int = Field(default=0, ge=0, description="Global enqueue order")

    created_at: datetime = Field(default_factory=_utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def key(self) -> JobKey:
        return (self.model_id, self.endpoint_type)

    @computed_field
    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal()

    def mark_running(self) -> None:
        if self.state == JobState.PENDING:
            self.state = JobState.RUNNING
            self.started_at = _utc_now()

    def mark_finished(self, success: bool) -> None:
        self.state = JobState.SUCCESS if success else JobState.FAILED
        self.finished_at = _utc_now()

    def mark_cancelled(self) -> None:
        if self.state == JobState.PENDING:
            self.state = JobState.CANCELLED
            self.finished_at = _utc_now()


class ProbeRun(BaseModel):
    """
    One detection run.

    run_key deduplicates scheduled runs: "scheduled:<fire minute UTC>". A
    slot re-fired after a restart hits the unique constraint and is skipped.
    Manual runs get a unique key.
    """
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    run_key: str = Field(..., max_length=128)
    trigger: RunTrigger
    job_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utc_now)

    @staticmethod
    def scheduled_key(fire_time: datetime) -> str:
        """Dedup key for a scheduled fire time, truncated to the UTC minute."""
        utc = fire_time.astimezone(timezone.utc).replace(second=0, microsecond=0)
        return f"scheduled:{utc.strftime('%Y-%m-%dT%H:%MZ')}"

    @staticmethod
    def manual_key() -> str:
        return f"manual:{uuid.uuid4().hex}"
