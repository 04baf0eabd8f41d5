# ============================================================================
# PROBES MODULE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Probe client and endpoint strategies
# PURPOSE: Execute health probes against upstream providers
# LAST_REVIEWED: 14 SEP 2026
# ============================================================================
"""
Probes Module

Importing this package registers every endpoint strategy.
"""

from probes.base import ProbeOutcome, ProbeRequest, ProbeStrategy
from probes.registry import get_strategy, select_endpoints
from probes import strategies  # noqa: F401  (registers strategies)
from probes.client import ProbeClient, get_probe_client, close_probe_client

__all__ = [
    "ProbeOutcome",
    "ProbeRequest",
    "ProbeStrategy",
    "ProbeClient",
    "get_probe_client",
    "close_probe_client",
    "get_strategy",
    "select_endpoints",
]
