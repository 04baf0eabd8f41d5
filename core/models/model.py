# ============================================================================
# CHANNEL MODEL (ADDRESSABLE MODEL) RECORD
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core model - One model on one channel
# PURPOSE: Aggregate health summary read by dashboards and proxy routing
# LAST_REVIEWED: 05 SEP 2026
# EXPORTS: ChannelModel, ModelSummary
# DEPENDENCIES: pydantic
# ============================================================================
"""
ChannelModel

A (channel, model name) pair. The summary fields are written only by the
result aggregator; model sync may insert new rows with empty state.

Maps to: models table
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from core.contracts import EndpointType


class ChannelModel(BaseModel):
    """
    One addressable model on a channel.

    last_status:
        True  - every endpoint type in the latest window succeeded
        False - at least one endpoint type's latest check failed
        None  - never checked (unknown)
    """
    id: str = Field(..., max_length=64)
    channel_id: str = Field(..., max_length=64)
    model_name: str = Field(..., max_length=256)

    detected_endpoints: List[EndpointType] = Field(
        default_factory=list,
        description="Endpoint types whose most recent probe succeeded"
    )
    last_status: Optional[bool] = None
    last_latency: Optional[int] = Field(
        default=None,
        ge=0,
        description="Latency in ms of the most recent probe"
    )
    last_checked_at: Optional[datetime] = None

    @property
    def is_unknown(self) -> bool:
        return self.last_status is None


class ModelSummary(BaseModel):
    """Recomputed summary fields written back to a ChannelModel row."""
    detected_endpoints: List[EndpointType] = Field(default_factory=list)
    last_status: Optional[bool] = None
    last_latency: Optional[int] = None
    last_checked_at: Optional[datetime] = None
