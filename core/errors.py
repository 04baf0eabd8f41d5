# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Typed failures for config, probe, queue, and broadcast boundaries
# LAST_REVIEWED: 04 SEP 2026
# EXPORTS: DetectionError, ConfigValidationError, ProbeFailure, QueueFailure,
#          BroadcastFailure, NotFoundError, ChannelDisabledError
# ============================================================================
"""
Error Taxonomy

Propagation policy:
    ConfigValidationError   Raised at the config update boundary. The
                            scheduler and worker pool never see bad values.
    ProbeFailure            Raised inside the probe client only. Always
                            converted into a FAIL outcome before it leaves.
    QueueFailure            Raised to whoever started the run when jobs
                            cannot be persisted.
    BroadcastFailure        A subscriber that cannot keep up. Logged and the
                            subscriber is dropped; workers are never blocked.
    NotFoundError           Missing channel or model; mapped to 404 by routes.
    ChannelDisabledError    Manual run against a disabled channel; 409.
"""

from typing import Any, Optional


class DetectionError(Exception):
    """Base exception for the detection engine."""


class ConfigValidationError(DetectionError):
    """Raised when a scheduler config update is rejected."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


class ProbeFailure(DetectionError):
    """
    Raised within the probe client when an upstream call fails.

    status_code is None for network-level failures (DNS, TLS, timeout).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class QueueFailure(DetectionError):
    """Raised when probe jobs cannot be enqueued or persisted."""

    def __init__(self, message: str, run_id: Optional[str] = None):
        self.run_id = run_id
        super().__init__(message)


class BroadcastFailure(DetectionError):
    """Raised when a progress subscriber overflows or disconnects."""

    def __init__(self, message: str, subscriber_id: Optional[str] = None):
        self.subscriber_id = subscriber_id
        super().__init__(message)


class NotFoundError(DetectionError):
    """Raised when a channel or model does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ChannelDisabledError(DetectionError):
    """Raised when a manual run targets a disabled channel."""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Channel is disabled: {channel_id}")


__all__ = [
    "DetectionError",
    "ConfigValidationError",
    "ProbeFailure",
    "QueueFailure",
    "BroadcastFailure",
    "NotFoundError",
    "ChannelDisabledError",
]
