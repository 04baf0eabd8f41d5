# ============================================================================
# MODEL SYNC SERVICE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Service - Upstream model discovery and key validation
# PURPOSE: Insert newly listed models; check which channel keys still work
# LAST_REVIEWED: 03 OCT 2026
# EXPORTS: ModelSyncService, mask_key
# ============================================================================
"""
Model Sync Service

sync_channel():
    Lists {base}/v1/models with the channel's primary key and inserts the
    names not yet known. Existing rows are never touched or removed, so
    history and health survive a model disappearing upstream.

validate_keys():
    Lists models with every credential of the channel (primary first).
    Secondary keys get last_valid / last_checked_at updated. Keys are
    masked in the result.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.errors import NotFoundError, ProbeFailure
from core.models import Channel

logger = logging.getLogger(__name__)


def mask_key(key: str) -> str:
    """First 8 and last 4 characters; short keys are fully hidden."""
    if len(key) > 12:
        return f"{key[:8]}...{key[-4:]}"
    return "***"


class ModelSyncService:
    """Discovers upstream models and validates channel credentials."""

    def __init__(self, channel_repo, model_repo, probe_client):
        self.channel_repo = channel_repo
        self.model_repo = model_repo
        self.probe_client = probe_client

    async def _channel_or_raise(self, channel_id: str) -> Channel:
        channel = await self.channel_repo.get(channel_id)
        if channel is None:
            raise NotFoundError("Channel", channel_id)
        return channel

    async def sync_channel(self, channel_id: str) -> Dict[str, int]:
        """
        Insert models the upstream lists but we do not know yet.

        Returns:
            {"added": n, "removed": 0, "total": remote count}

        Raises:
            NotFoundError: channel does not exist
            ProbeFailure: the model list could not be fetched
        """
        channel = await self._channel_or_raise(channel_id)
        remote = await self.probe_client.fetch_models(
            channel.base_url, channel.api_key, proxy=channel.proxy
        )
        if not remote:
            logger.info(f"No models listed by channel {channel.name}")
            return {"added": 0, "removed": 0, "total": 0}

        existing = set(await self.model_repo.list_names(channel.id))
        to_add = [name for name in dict.fromkeys(remote) if name not in existing]
        added = await self.model_repo.insert_missing(channel.id, to_add) if to_add else 0

        stale = len(existing - set(remote))
        logger.info(
            f"Model sync for {channel.name}: +{added}, {stale} no longer listed "
            f"(kept), total {len(remote)}"
        )
        return {"added": added, "removed": 0, "total": len(remote)}

    async def sync_channels(self, channels: List[Channel]) -> List[Dict[str, Any]]:
        """Sync each channel in turn; one channel failing does not stop the rest."""
        results = []
        for channel in channels:
            try:
                result = await self.sync_channel(channel.id)
            except (ProbeFailure, NotFoundError) as e:
                logger.warning(f"Model sync failed for channel {channel.name}: {e}")
                continue
            results.append({"channel_id": channel.id, **result})
        return results

    async def validate_keys(self, channel_id: str) -> Dict[str, Any]:
        """
        Check every credential of a channel against the model listing.

        Returns:
            {"results": [...per key...], "existing_models": [...]}
        """
        channel = await self._channel_or_raise(channel_id)

        candidates: List[Dict[str, Optional[str]]] = [{"key_id": None, "api_key": channel.api_key}]
        candidates.extend({"key_id": k.id, "api_key": k.api_key} for k in channel.keys)

        results = await asyncio.gather(
            *(self._validate_one(channel, c["key_id"], c["api_key"]) for c in candidates)
        )
        existing = await self.model_repo.list_names(channel.id)

        valid = sum(1 for r in results if r["valid"])
        logger.info(f"Validated {len(results)} keys for {channel.name}: {valid} valid")
        return {"results": list(results), "existing_models": existing}

    async def _validate_one(self, channel: Channel, key_id: Optional[str], api_key: str) -> Dict[str, Any]:
        error = None
        models: List[str] = []
        try:
            models = await self.probe_client.fetch_models(channel.base_url, api_key, proxy=channel.proxy)
        except ProbeFailure as e:
            error = str(e)
        valid = error is None

        if key_id is not None:
            try:
                await self.channel_repo.update_key_validity(key_id, valid, datetime.now(timezone.utc))
            except Exception as e:
                logger.error(f"Failed to store validity for key {key_id}: {e}")

        return {
            "key_id": key_id,
            "masked_key": mask_key(api_key),
            "valid": valid,
            "model_count": len(models),
            "models": models,
            "error": error,
        }


__all__ = ["ModelSyncService", "mask_key"]
