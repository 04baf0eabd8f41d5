# ============================================================================
# CHANNEL MODEL
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core model - Upstream provider configuration
# PURPOSE: Channel identity, base URL, credentials, proxy
# LAST_REVIEWED: 04 SEP 2026
# EXPORTS: Channel, ChannelKey
# DEPENDENCIES: pydantic
# ============================================================================
"""
Channel Model

A Channel is one configured upstream API provider. Channels are owned by
configuration management; the detection engine only reads them, except for
the validity tracking on secondary credentials (ChannelKey).

Maps to: channels, channel_keys tables
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field


class ChannelKey(BaseModel):
    """
    A secondary credential attached to a channel.

    last_valid is None until the key has been checked at least once.
    """
    id: str = Field(..., max_length=64)
    channel_id: str = Field(..., max_length=64)
    api_key: str
    last_valid: Optional[bool] = Field(
        default=None,
        description="Result of the most recent validation (None = never checked)"
    )
    last_checked_at: Optional[datetime] = None


class Channel(BaseModel):
    """
    Upstream provider configuration.

    Lifecycle:
        Created and edited outside the engine. Disabled channels are
        excluded from scheduled runs but their history is kept.
    """
    id: str = Field(..., max_length=64)
    name: str = Field(..., max_length=128)
    base_url: str = Field(..., description="Provider root URL, with or without /v1")
    api_key: str = Field(..., description="Primary credential used for probes")
    proxy: Optional[str] = Field(
        default=None,
        description="Outbound proxy URL for this channel (falls back to GLOBAL_PROXY)"
    )
    enabled: bool = True
    sort_order: int = 0
    keys: List[ChannelKey] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def all_keys(self) -> List[str]:
        """Primary key first, then secondary keys in stored order, deduplicated."""
        seen = []
        for key in [self.api_key] + [k.api_key for k in self.keys]:
            if key and key not in seen:
                seen.append(key)
        return seen
