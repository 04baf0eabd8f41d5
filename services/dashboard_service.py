# ============================================================================
# DASHBOARD SERVICE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Service - Read model for the health dashboard
# PURPOSE: Paginated, filtered channel/model health with system totals
# LAST_REVIEWED: 06 OCT 2026
# EXPORTS: DashboardService
# ============================================================================
"""
Dashboard Service

System totals always cover every enabled channel; search and filters only
narrow the paginated channel list. A channel is listed under a filter when
at least one of its models matches, and only matching models are shown.

Filters:
    search            case-insensitive substring of the model name
    endpoint_filter   "all" or an endpoint type present in detected_endpoints
    status_filter     "all" | "healthy" | "unhealthy" | "unknown" on last_status
"""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, List

from core.contracts import EndpointType
from core.models import ChannelModel

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

STATUS_FILTERS = {
    "healthy": True,
    "unhealthy": False,
    "unknown": None,
}


def _matches(model: ChannelModel, search: str, endpoint_filter: str, status_filter: str) -> bool:
    if search and search.lower() not in model.model_name.lower():
        return False
    if endpoint_filter != "all" and EndpointType(endpoint_filter) not in model.detected_endpoints:
        return False
    if status_filter != "all" and model.last_status is not STATUS_FILTERS[status_filter]:
        return False
    return True


class DashboardService:
    """Builds dashboard payloads from repositories and the aggregator."""

    def __init__(self, channel_repo, model_repo, check_log_repo, aggregator):
        self.channel_repo = channel_repo
        self.model_repo = model_repo
        self.check_log_repo = check_log_repo
        self.aggregator = aggregator

    async def summary(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        search: str = "",
        endpoint_filter: str = "all",
        status_filter: str = "all",
    ) -> Dict[str, Any]:
        page = max(1, page)
        page_size = max(1, min(MAX_PAGE_SIZE, page_size))
        search = (search or "").strip()

        channels = await self.channel_repo.list_enabled()
        models = await self.model_repo.list_for_channels([c.id for c in channels])
        logs = await self.check_log_repo.latest_for_models(
            [m.id for m in models], window=self.aggregator.window
        )

        by_channel: Dict[str, List[ChannelModel]] = defaultdict(list)
        for model in models:
            by_channel[model.channel_id].append(model)

        totals = self.aggregator.build_summary(channels, by_channel, logs)["summary"]

        has_filters = bool(search) or endpoint_filter != "all" or status_filter != "all"
        if has_filters:
            filtered = {
                cid: [m for m in ms if _matches(m, search, endpoint_filter, status_filter)]
                for cid, ms in by_channel.items()
            }
            listed = [c for c in channels if filtered.get(c.id)]
        else:
            filtered = by_channel
            listed = channels

        start = (page - 1) * page_size
        page_channels = listed[start:start + page_size]
        page_view = self.aggregator.build_summary(page_channels, filtered, logs)["channels"]

        logger.debug(f"Dashboard page {page}: {len(page_channels)}/{len(listed)} channels")
        return {
            "summary": totals,
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total_pages": math.ceil(len(listed) / page_size),
                "total_channels": len(listed),
            },
            "channels": page_view,
        }


__all__ = ["DashboardService", "STATUS_FILTERS", "DEFAULT_PAGE_SIZE"]
