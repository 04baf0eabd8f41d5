# ============================================================================
# CHECK LOG MODEL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core model - Append-only probe history
# PURPOSE: One row per probe execution
# LAST_REVIEWED: 05 SEP 2026
# EXPORTS: CheckLog, truncate_text
# DEPENDENCIES: pydantic
# ============================================================================
"""
Check Log Model

CheckLog is an immutable record of one probe. Rows are never updated;
retention deletes rows older than LOG_RETENTION_DAYS.

Diagnostic text (error_msg, response_content) is bounded so a misbehaving
upstream cannot bloat storage with full response bodies.

Maps to: check_logs table
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field

from core.contracts import CheckStatus, EndpointType

MAX_DIAGNOSTIC_CHARS = 500


def truncate_text(text: Optional[str], limit: int = MAX_DIAGNOSTIC_CHARS) -> Optional[str]:
    """Truncate to limit characters, marking the cut with '...'."""
    if text is None:
        return None
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class CheckLog(BaseModel):
    """
    A single probe result.

    status_code is None when the request never produced an HTTP response
    (DNS, TLS, connect or timeout failures).
    """
    id: Optional[int] = Field(default=None, description="BIGSERIAL primary key")
    model_id: str = Field(..., max_length=64)
    endpoint_type: EndpointType
    status: CheckStatus
    latency: int = Field(..., ge=0, description="Wall-clock latency in ms")
    status_code: Optional[int] = None
    error_msg: Optional[str] = Field(default=None, max_length=MAX_DIAGNOSTIC_CHARS + 3)
    response_content: Optional[str] = Field(default=None, max_length=MAX_DIAGNOSTIC_CHARS + 3)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.status == CheckStatus.SUCCESS
