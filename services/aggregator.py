# ============================================================================
# RESULT AGGREGATOR
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Service - Health fold and summaries
# PURPOSE: Turn probe outcomes into CheckLogs, model health and dashboards
# LAST_REVIEWED: 27 SEP 2026
# EXPORTS: ResultAggregator, compute_health, summarize_model
# ============================================================================
"""
Result Aggregator

Health rule (per model, over the most recent 7 logs):

    latest[t] = most recent log of endpoint type t

    no logs at all                                  -> UNKNOWN
    any supported t with latest[t] == FAIL          -> UNHEALTHY
    some supported t never checked in the window    -> UNKNOWN
    every supported t has latest[t] == SUCCESS      -> HEALTHY

"Supported" endpoint types come from the model name (select_endpoints).
Last write wins per endpoint type: a CHAT success does not mask a newer
CLAUDE failure, and an older failure is superseded by a newer success.

The model's stored summary maps HEALTHY/UNHEALTHY/UNKNOWN to
last_status True/False/None.
"""

import logging
from typing import Any, Dict, List, Optional

from core.config import get_defaults
from core.contracts import CheckStatus, EndpointType, HealthState
from core.models import ChannelModel, CheckLog, ModelSummary, ProbeJob, truncate_text
from probes.base import ProbeOutcome
from probes.registry import select_endpoints

logger = logging.getLogger(__name__)


# ============================================================================
# PURE HEALTH FOLD
# ============================================================================

def latest_per_type(logs: List[CheckLog]) -> Dict[EndpointType, CheckLog]:
    """First (newest) log per endpoint type. logs must be newest-first."""
    latest: Dict[EndpointType, CheckLog] = {}
    for log in logs:
        if log.endpoint_type not in latest:
            latest[log.endpoint_type] = log
    return latest


def compute_health(model_name: str, logs: List[CheckLog]) -> HealthState:
    """
    Health of a model from its most recent logs (newest first).

    Args:
        model_name: Derives the expected endpoint types; any type with
            a recorded check counts as supported too
        logs: Recent CheckLogs, newest first

    Returns:
        HealthState
    """
    if not logs:
        return HealthState.UNKNOWN

    latest = latest_per_type(logs)
    supported = set(select_endpoints(model_name)) | set(latest)

    if any(log.status == CheckStatus.FAIL for log in latest.values()):
        return HealthState.UNHEALTHY

    if all(t in latest for t in supported):
        return HealthState.HEALTHY

    return HealthState.UNKNOWN


def health_to_status(health: HealthState) -> Optional[bool]:
    if health == HealthState.HEALTHY:
        return True
    if health == HealthState.UNHEALTHY:
        return False
    return None


def summarize_model(model_name: str, logs: List[CheckLog]) -> ModelSummary:
    """Recompute the stored summary fields from recent logs (newest first)."""
    if not logs:
        return ModelSummary()

    latest = latest_per_type(logs)
    detected = [
        endpoint_type
        for endpoint_type in EndpointType
        if endpoint_type in latest and latest[endpoint_type].status == CheckStatus.SUCCESS
    ]
    return ModelSummary(
        detected_endpoints=detected,
        last_status=health_to_status(compute_health(model_name, logs)),
        last_latency=logs[0].latency,
        last_checked_at=logs[0].created_at,
    )


def health_rate(healthy: int, total: int) -> int:
    """Rounded percentage; 0 when there is nothing to rate."""
    if total <= 0:
        return 0
    return int(round(healthy * 100.0 / total))


def heatmap(logs: List[CheckLog]) -> List[Dict[str, Any]]:
    """Compact per-check cells for the dashboard, newest first."""
    return [
        {
            "status": log.status.value,
            "endpoint_type": log.endpoint_type.value,
            "latency": log.latency,
            "status_code": log.status_code,
            "error_msg": log.error_msg,
            "response_content": log.response_content,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }
        for log in logs
    ]


# ============================================================================
# SERVICE
# ============================================================================

class ResultAggregator:
    """
    Folds probe outcomes into persisted history and model summaries.

    Usage:
        aggregator = ResultAggregator(check_log_repo)
        summary = await aggregator.record(job, outcome)
    """

    def __init__(self, check_log_repo, window: Optional[int] = None):
        self.check_log_repo = check_log_repo
        self.window = window or get_defaults().retention.history_window
        self.max_chars = get_defaults().probe.max_diagnostic_chars

    def to_check_log(self, job: ProbeJob, outcome: ProbeOutcome) -> CheckLog:
        return CheckLog(
            model_id=job.model_id,
            endpoint_type=outcome.endpoint_type,
            status=CheckStatus.SUCCESS if outcome.success else CheckStatus.FAIL,
            latency=max(outcome.latency_ms, 0),
            status_code=outcome.status_code,
            error_msg=truncate_text(outcome.error, self.max_chars),
            response_content=truncate_text(outcome.content, self.max_chars),
        )

    async def record(self, job: ProbeJob, outcome: ProbeOutcome) -> ModelSummary:
        """Append the CheckLog and recompute the model summary in one transaction."""
        log = self.to_check_log(job, outcome)
        summary = await self.check_log_repo.record(log, summarize_model, window=self.window)
        logger.info(
            f"Recorded {log.status.value} for {job.model_name} [{log.endpoint_type.value}] "
            f"in {log.latency}ms (status={summary.last_status})"
        )
        return summary

    def model_view(self, model: ChannelModel, logs: List[CheckLog]) -> Dict[str, Any]:
        health = compute_health(model.model_name, logs)
        return {
            "id": model.id,
            "model_name": model.model_name,
            "health": health.value,
            "detected_endpoints": [e.value for e in model.detected_endpoints],
            "last_status": model.last_status,
            "last_latency": model.last_latency,
            "last_checked_at": model.last_checked_at.isoformat() if model.last_checked_at else None,
            "heatmap": heatmap(logs),
        }

    def build_summary(
        self,
        channels: List[Any],
        models_by_channel: Dict[str, List[ChannelModel]],
        logs_by_model: Dict[str, List[CheckLog]],
    ) -> Dict[str, Any]:
        """
        Per-channel and system-wide health summary.

        Args:
            channels: Channels to include, in display order
            models_by_channel: channel_id -> models
            logs_by_model: model_id -> latest logs (newest first)
        """
        channel_views = []
        total_models = 0
        total_healthy = 0

        for channel in channels:
            models = models_by_channel.get(channel.id, [])
            views = [self.model_view(m, logs_by_model.get(m.id, [])) for m in models]
            healthy = sum(1 for v in views if v["health"] == HealthState.HEALTHY.value)
            total_models += len(views)
            total_healthy += healthy
            channel_views.append({
                "id": channel.id,
                "name": channel.name,
                "enabled": channel.enabled,
                "model_count": len(views),
                "healthy_count": healthy,
                "health_rate": health_rate(healthy, len(views)),
                "models": views,
            })

        return {
            "summary": {
                "total_channels": len(channels),
                "total_models": total_models,
                "healthy_models": total_healthy,
                "health_rate": health_rate(total_healthy, total_models),
            },
            "channels": channel_views,
        }


__all__ = [
    "ResultAggregator",
    "compute_health",
    "summarize_model",
    "latest_per_type",
    "health_rate",
    "heatmap",
]
