# ============================================================================
# PROBE STRATEGY REGISTRY
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Strategy registration and endpoint selection
# PURPOSE: Map endpoint types to strategies; pick endpoint types per model
# LAST_REVIEWED: 12 SEP 2026
# ============================================================================
"""
Probe Strategy Registry

Strategies register at import time via decorator. Lookup fails fast for an
endpoint type with no strategy, so adding an EndpointType member without a
strategy is caught at the first probe.

Endpoint selection derives the endpoint types a model supports from its
name. The aggregator uses the same rules to decide whether every supported
type has been checked.
"""

import logging
import re
from typing import Callable, Dict, List, Type

from core.contracts import EndpointType

logger = logging.getLogger(__name__)


class StrategyNotFoundError(Exception):
    """Raised when no strategy is registered for an endpoint type."""
    def __init__(self, endpoint_type: EndpointType):
        self.endpoint_type = endpoint_type
        super().__init__(f"No probe strategy registered for: {endpoint_type}")


class DuplicateStrategyError(Exception):
    """Raised when an endpoint type is registered twice."""
    def __init__(self, endpoint_type: EndpointType):
        self.endpoint_type = endpoint_type
        super().__init__(f"Probe strategy already registered: {endpoint_type}")


# ============================================================================
# REGISTRY
# ============================================================================

_strategies: Dict[EndpointType, "ProbeStrategy"] = {}


def register_strategy(endpoint_type: EndpointType) -> Callable[[Type], Type]:
    """
    Class decorator registering a singleton strategy instance.

    Example:
        @register_strategy(EndpointType.CHAT)
        class ChatStrategy(ProbeStrategy):
            ...
    """
    def decorator(cls: Type) -> Type:
        if endpoint_type in _strategies:
            raise DuplicateStrategyError(endpoint_type)
        _strategies[endpoint_type] = cls()
        logger.debug(f"Registered probe strategy: {endpoint_type.value} -> {cls.__name__}")
        return cls

    return decorator


def get_strategy(endpoint_type: EndpointType) -> "ProbeStrategy":
    """Look up the strategy for an endpoint type."""
    try:
        return _strategies[EndpointType(endpoint_type)]
    except KeyError:
        raise StrategyNotFoundError(endpoint_type)


def list_strategies() -> List[EndpointType]:
    return sorted(_strategies.keys(), key=lambda t: t.value)


# ============================================================================
# ENDPOINT SELECTION
# ============================================================================

IMAGE_KEYWORDS = (
    "dall-e",
    "dalle",
    "image",
    "midjourney",
    "stable-diffusion",
    "sd-",
    "sdxl",
    "flux",
    "ideogram",
    "playground",
)

# gpt-5.1 / 5.2 / 5.3 are served through the Responses API
_RESPONSES_API_GPT = re.compile(r"gpt-5\.[123]")


def is_image_model(model_name: str) -> bool:
    name = model_name.lower()
    return any(keyword in name for keyword in IMAGE_KEYWORDS)


def select_endpoints(model_name: str) -> List[EndpointType]:
    """
    Endpoint types to probe for a model, derived from its name.

    Rules:
        - name contains "codex"      -> [CODEX]
        - image model keyword        -> [IMAGE]
        - otherwise                  -> [CHAT] plus at most one of
          CLAUDE ("claude"), GEMINI ("gemini"), CODEX (gpt-5.1/5.2/5.3)
    """
    name = model_name.lower()

    if "codex" in name:
        return [EndpointType.CODEX]

    if is_image_model(name):
        return [EndpointType.IMAGE]

    endpoints = [EndpointType.CHAT]
    if "claude" in name:
        endpoints.append(EndpointType.CLAUDE)
    elif "gemini" in name:
        endpoints.append(EndpointType.GEMINI)
    elif _RESPONSES_API_GPT.search(name):
        endpoints.append(EndpointType.CODEX)

    return endpoints


__all__ = [
    "register_strategy",
    "get_strategy",
    "list_strategies",
    "select_endpoints",
    "is_image_model",
    "StrategyNotFoundError",
    "DuplicateStrategyError",
    "IMAGE_KEYWORDS",
]
