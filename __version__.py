# ============================================================================
# VERSION - MODEL CHECK ORCHESTRATOR
# ============================================================================
"""
Version information for the Model Check orchestrator.

This is the single source of truth for the application version.
Updated manually for each release.
"""
__version__ = "0.4.1"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-18"

CODENAME = "Model Check"
