# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Foundation - Core enums shared across layers
# PURPOSE: Endpoint types, probe outcomes, job states, health states
# LAST_REVIEWED: 04 SEP 2026
# EXPORTS: EndpointType, CheckStatus, JobState, HealthState, RunTrigger
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the detection engine.

These enums cross every boundary:
- SQL (PostgreSQL columns store the string values)
- HTTP (API schemas and SSE payloads)
- Python (internal processing)
"""

from enum import Enum


# ============================================================================
# STATUS ENUMS
# ============================================================================

class EndpointType(str, Enum):
    """
    Upstream API shapes a model can be probed through.

    The set is closed: every member has exactly one probe strategy.
    """
    CHAT = "CHAT"        # OpenAI-compatible /v1/chat/completions
    CLAUDE = "CLAUDE"    # Anthropic /v1/messages
    GEMINI = "GEMINI"    # Google /v1beta/models/{model}:generateContent
    CODEX = "CODEX"      # OpenAI /v1/responses
    IMAGE = "IMAGE"      # OpenAI /v1/images/generations


class CheckStatus(str, Enum):
    """Outcome classification of one probe."""
    SUCCESS = "SUCCESS"
    FAIL = "FAIL"


class JobState(str, Enum):
    """
    Probe job lifecycle states.

    State transitions:
        PENDING -> RUNNING -> SUCCESS
                           -> FAILED
                -> CANCELLED
    """
    PENDING = "pending"          # Enqueued, waiting for slots
    RUNNING = "running"          # Probe in flight
    SUCCESS = "success"          # Probe recorded a SUCCESS
    FAILED = "failed"            # Probe recorded a FAIL
    CANCELLED = "cancelled"      # Removed from the queue before dispatch

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (JobState.SUCCESS, JobState.FAILED, JobState.CANCELLED)


class HealthState(str, Enum):
    """Aggregate health of a model derived from its recent checks."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class RunTrigger(str, Enum):
    """What started a detection run."""
    SCHEDULED = "scheduled"
    MANUAL = "manual"


__all__ = [
    "EndpointType",
    "CheckStatus",
    "JobState",
    "HealthState",
    "RunTrigger",
]
