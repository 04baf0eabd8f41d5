# ============================================================================
# PROBE STRATEGIES
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Concrete endpoint-type strategies
# PURPOSE: CHAT, CLAUDE, GEMINI, CODEX, IMAGE request shapes
# LAST_REVIEWED: 12 SEP 2026
# EXPORTS: ChatStrategy, ClaudeStrategy, GeminiStrategy, CodexStrategy,
#          ImageStrategy
# ============================================================================
"""
Probe Strategies

All requests are non-streaming and as small as the provider allows.
Registration happens at import time via @register_strategy.
"""

from typing import Any, Dict, Optional

from core.contracts import EndpointType
from probes.base import ProbeStrategy, _non_empty_str, strip_thinking_blocks
from probes.registry import register_strategy

MAX_TOKENS = 50
IMAGE_PROMPT = "A simple red circle on white background"


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


@register_strategy(EndpointType.CHAT)
class ChatStrategy(ProbeStrategy):
    """OpenAI-compatible chat completions."""

    endpoint_type = EndpointType.CHAT

    def path(self, model_name: str) -> str:
        return "/v1/chat/completions"

    def body(self, model_name: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": model_name,
            "max_tokens": MAX_TOKENS,
            "stream": False,
            "messages": [{"role": "user", "content": prompt}],
        }

    def extract_primary(self, body: Dict[str, Any]) -> Optional[str]:
        choice = _first(body.get("choices"))
        if not isinstance(choice, dict):
            return None

        message = choice.get("message")
        if isinstance(message, dict):
            # Reasoning models put the answer in reasoning_content
            for key in ("content", "reasoning_content"):
                if _non_empty_str(message.get(key)):
                    return strip_thinking_blocks(message[key])
            if _non_empty_str(message.get("refusal")):
                return message["refusal"]

        delta = choice.get("delta")
        if isinstance(delta, dict) and _non_empty_str(delta.get("content")):
            return strip_thinking_blocks(delta["content"])

        if _non_empty_str(choice.get("text")):
            return strip_thinking_blocks(choice["text"])

        return None


@register_strategy(EndpointType.CLAUDE)
class ClaudeStrategy(ProbeStrategy):
    """Anthropic messages API."""

    endpoint_type = EndpointType.CLAUDE
    anthropic_version = "2023-06-01"

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": self.anthropic_version}

    def path(self, model_name: str) -> str:
        return "/v1/messages"

    def body(self, model_name: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": model_name,
            "max_tokens": MAX_TOKENS,
            "stream": False,
            "messages": [{"role": "user", "content": prompt}],
        }

    def extract_primary(self, body: Dict[str, Any]) -> Optional[str]:
        content = body.get("content")
        if not isinstance(content, list):
            return None

        # Extended thinking responses lead with a "thinking" block
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text" and _non_empty_str(block.get("text")):
                return block["text"]

        first = _first(content)
        if isinstance(first, dict) and isinstance(first.get("text"), str):
            return first["text"]
        return None


@register_strategy(EndpointType.GEMINI)
class GeminiStrategy(ProbeStrategy):
    """Google generateContent."""

    endpoint_type = EndpointType.GEMINI

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"x-goog-api-key": api_key}

    def path(self, model_name: str) -> str:
        return f"/v1beta/models/{model_name}:generateContent"

    def body(self, model_name: str, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": 10},
        }

    def extract_primary(self, body: Dict[str, Any]) -> Optional[str]:
        candidate = _first(body.get("candidates"))
        if not isinstance(candidate, dict):
            return None
        content = candidate.get("content") or {}
        part = _first(content.get("parts")) if isinstance(content, dict) else None
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            return part["text"]
        return None


@register_strategy(EndpointType.CODEX)
class CodexStrategy(ProbeStrategy):
    """OpenAI Responses API."""

    endpoint_type = EndpointType.CODEX

    def path(self, model_name: str) -> str:
        return "/v1/responses"

    def body(self, model_name: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": model_name,
            "stream": False,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                }
            ],
        }

    def extract_primary(self, body: Dict[str, Any]) -> Optional[str]:
        output = body.get("output")
        if not isinstance(output, list):
            return None
        # Reasoning items carry no content; take the first message item
        for item in output:
            if not isinstance(item, dict):
                continue
            part = _first(item.get("content"))
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                return part["text"]
        return None


@register_strategy(EndpointType.IMAGE)
class ImageStrategy(ProbeStrategy):
    """OpenAI image generations. Smallest size to keep probe cost down."""

    endpoint_type = EndpointType.IMAGE

    def path(self, model_name: str) -> str:
        return "/v1/images/generations"

    def body(self, model_name: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": model_name,
            "prompt": IMAGE_PROMPT,
            "n": 1,
            "size": "256x256",
            "response_format": "url",
        }

    def extract_primary(self, body: Dict[str, Any]) -> Optional[str]:
        item = _first(body.get("data"))
        if not isinstance(item, dict):
            return None
        if _non_empty_str(item.get("url")):
            return item["url"]
        if _non_empty_str(item.get("b64_json")):
            return f"[b64_json image, {len(item['b64_json'])} chars]"
        return None
