# ============================================================================
# PROBE STRATEGY BASE
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Probe request/response contract
# PURPOSE: One interface for every upstream API shape
# LAST_REVIEWED: 12 SEP 2026
# EXPORTS: ProbeStrategy, ProbeRequest, ProbeOutcome, normalize_base_url,
#          strip_thinking_blocks
# ============================================================================
"""
Probe Strategy Base

Each endpoint type is a closed variant behind the same two capabilities:

    build_request(base_url, api_key, model_name, prompt) -> ProbeRequest
    extract_content(body) -> Optional[str]

The probe client does the I/O; strategies are pure and easy to test.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

from core.contracts import EndpointType

MAX_CONTENT_CHARS = 500

# Keys tried, in order, when the provider-specific shape is not found
FALLBACK_CONTENT_KEYS = ("text", "output", "result", "data", "response", "message", "answer")

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_THINK_UNCLOSED = re.compile(r"<think>[\s\S]*", re.IGNORECASE)


def normalize_base_url(base_url: str) -> str:
    """Strip one trailing '/' and a trailing '/v1'."""
    url = base_url.strip()
    if url.endswith("/"):
        url = url[:-1]
    if url.endswith("/v1"):
        url = url[:-3]
    return url


def strip_thinking_blocks(text: str) -> str:
    """
    Remove <think>...</think> blocks (and a trailing unclosed one).

    Returns the original text if nothing but thinking was present.
    """
    stripped = _THINK_BLOCK.sub("", text).strip()
    stripped = _THINK_UNCLOSED.sub("", stripped).strip()
    return stripped or text


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


# ============================================================================
# REQUEST / OUTCOME
# ============================================================================

@dataclass
class ProbeRequest:
    """Fully-built HTTP request for one probe."""
    endpoint_type: EndpointType
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


@dataclass
class ProbeOutcome:
    """
    Result of one probe.

    status_code is None for network-level failures. error and content are
    both bounded to MAX_CONTENT_CHARS (+ '...').
    """
    endpoint_type: EndpointType
    success: bool
    latency_ms: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    content: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success_result(
        cls,
        endpoint_type: EndpointType,
        latency_ms: int,
        status_code: int,
        content: Optional[str],
    ) -> "ProbeOutcome":
        return cls(
            endpoint_type=endpoint_type,
            success=True,
            latency_ms=latency_ms,
            status_code=status_code,
            content=content,
        )

    @classmethod
    def failure_result(
        cls,
        endpoint_type: EndpointType,
        latency_ms: int,
        error: str,
        status_code: Optional[int] = None,
    ) -> "ProbeOutcome":
        return cls(
            endpoint_type=endpoint_type,
            success=False,
            latency_ms=latency_ms,
            status_code=status_code,
            error=error,
        )


# ============================================================================
# STRATEGY INTERFACE
# ============================================================================

class ProbeStrategy(ABC):
    """
    Abstract base for endpoint-type strategies.

    Subclasses set endpoint_type and implement the URL path, auth headers,
    request body and payload extraction for their provider shape.
    """

    endpoint_type: ClassVar[EndpointType]

    def build_request(
        self,
        base_url: str,
        api_key: str,
        model_name: str,
        prompt: str,
    ) -> ProbeRequest:
        """Build the minimal non-streaming request for this endpoint type."""
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers(api_key))
        return ProbeRequest(
            endpoint_type=self.endpoint_type,
            url=normalize_base_url(base_url) + self.path(model_name),
            headers=headers,
            body=self.body(model_name, prompt),
        )

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        """OpenAI-style bearer auth; overridden by providers with their own header."""
        return {"Authorization": f"Bearer {api_key}"}

    @abstractmethod
    def path(self, model_name: str) -> str:
        """URL path appended to the normalized base URL."""
        pass

    @abstractmethod
    def body(self, model_name: str, prompt: str) -> Dict[str, Any]:
        """JSON request body."""
        pass

    @abstractmethod
    def extract_primary(self, body: Dict[str, Any]) -> Optional[str]:
        """Provider-specific completion text, or None if the shape is absent."""
        pass

    def extract_content(self, body: Any) -> Optional[str]:
        """
        Extract a short completion payload from a 2xx response body.

        Returns None when nothing recognizable is present, which the client
        classifies as a failed probe.
        """
        if not isinstance(body, dict):
            return None

        content = self.extract_primary(body)
        if content is not None:
            return content[:MAX_CONTENT_CHARS]

        for key in FALLBACK_CONTENT_KEYS:
            value = body.get(key)
            if _non_empty_str(value):
                return strip_thinking_blocks(value)[:MAX_CONTENT_CHARS]

        model = body.get("model") or body.get("id")
        if isinstance(model, str):
            return f"[response OK, model: {model}]"

        return None


__all__ = [
    "ProbeStrategy",
    "ProbeRequest",
    "ProbeOutcome",
    "normalize_base_url",
    "strip_thinking_blocks",
    "MAX_CONTENT_CHARS",
]
