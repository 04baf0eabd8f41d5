# ============================================================================
# MESSAGING MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - In-process progress pub/sub
# PURPOSE: Publish probe lifecycle events to progress observers
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Messaging Module

Usage:
    from messaging import get_broadcaster

    broadcaster = get_broadcaster()
    broadcaster.job_started(job)
"""

from .broadcaster import (
    ProgressBroadcaster,
    ProgressView,
    Subscription,
    get_broadcaster,
    reset_broadcaster,
)

__all__ = [
    "ProgressBroadcaster",
    "ProgressView",
    "Subscription",
    "get_broadcaster",
    "reset_broadcaster",
]
