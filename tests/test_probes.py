# ============================================================================
# PROBE STRATEGY + CLIENT TESTS
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Tests - Request shapes, payload extraction, classification
# PURPOSE: Verify every endpoint type builds and classifies probes correctly
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Probe Strategy + Client Tests

Covers:
1. Base URL normalization and thinking-block stripping
2. Endpoint selection from model names
3. Request URL, headers and body per endpoint type
4. Payload extraction including fallbacks
5. ProbeClient classification over httpx.MockTransport
6. Model listing from /v1/models

Run with:
    pytest tests/test_probes.py -v
"""

import asyncio
import json

import httpx
import pytest

from core.contracts import EndpointType
from core.errors import ProbeFailure
from probes import ProbeClient, get_strategy, select_endpoints
from probes.base import MAX_CONTENT_CHARS, normalize_base_url, strip_thinking_blocks
from probes.registry import list_strategies


# ============================================================================
# FIXTURES
# ============================================================================

def _client(handler) -> ProbeClient:
    return ProbeClient(
        timeout_seconds=5,
        prompt="hi",
        global_proxy="",
        transport=httpx.MockTransport(handler),
    )


def _probe(client: ProbeClient, endpoint_type=EndpointType.CHAT, model="gpt-4o"):
    async def run():
        try:
            return await client.probe(
                base_url="https://api.example.com/v1/",
                api_key="sk-test",
                model_name=model,
                endpoint_type=endpoint_type,
            )
        finally:
            await client.close()

    return asyncio.run(run())


CHAT_OK = {"choices": [{"message": {"role": "assistant", "content": "Hello!"}}]}


# ============================================================================
# HELPERS
# ============================================================================

class TestHelpers:

    @pytest.mark.parametrize("raw,expected", [
        ("https://api.example.com", "https://api.example.com"),
        ("https://api.example.com/", "https://api.example.com"),
        ("https://api.example.com/v1", "https://api.example.com"),
        ("https://api.example.com/v1/", "https://api.example.com"),
        ("https://api.example.com/proxy/v1", "https://api.example.com/proxy"),
    ])
    def test_normalize_base_url(self, raw, expected):
        assert normalize_base_url(raw) == expected

    def test_strip_thinking_blocks(self):
        assert strip_thinking_blocks("<think>plan</think>Answer") == "Answer"
        assert strip_thinking_blocks("Answer <think>still going") == "Answer"
        assert strip_thinking_blocks("<THINK>a</THINK> x <think>b</think> y") == "x  y"

    def test_only_thinking_returns_original(self):
        assert strip_thinking_blocks("<think>only</think>") == "<think>only</think>"


class TestSelectEndpoints:

    @pytest.mark.parametrize("model,expected", [
        ("gpt-4o", [EndpointType.CHAT]),
        ("claude-3-5-sonnet", [EndpointType.CHAT, EndpointType.CLAUDE]),
        ("gemini-1.5-pro", [EndpointType.CHAT, EndpointType.GEMINI]),
        ("gpt-5.1", [EndpointType.CHAT, EndpointType.CODEX]),
        ("GPT-5.2-mini", [EndpointType.CHAT, EndpointType.CODEX]),
        ("gpt-5", [EndpointType.CHAT]),
        ("gpt-5.1-codex", [EndpointType.CODEX]),
        ("codex-mini-latest", [EndpointType.CODEX]),
        ("dall-e-3", [EndpointType.IMAGE]),
        ("flux-schnell", [EndpointType.IMAGE]),
        ("gpt-image-1", [EndpointType.IMAGE]),
    ])
    def test_selection(self, model, expected):
        assert select_endpoints(model) == expected

    def test_every_endpoint_type_has_strategy(self):
        assert set(list_strategies()) == set(EndpointType)


# ============================================================================
# STRATEGIES
# ============================================================================

class TestRequestShapes:

    def test_chat(self):
        request = get_strategy(EndpointType.CHAT).build_request("https://x.io/v1", "k", "gpt-4o", "hi")

        assert request.url == "https://x.io/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer k"
        assert request.body["stream"] is False
        assert request.body["messages"] == [{"role": "user", "content": "hi"}]

    def test_claude(self):
        request = get_strategy(EndpointType.CLAUDE).build_request("https://x.io", "k", "claude-3", "hi")

        assert request.url == "https://x.io/v1/messages"
        assert request.headers["x-api-key"] == "k"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in request.headers

    def test_gemini(self):
        request = get_strategy(EndpointType.GEMINI).build_request("https://x.io/", "k", "gemini-pro", "hi")

        assert request.url == "https://x.io/v1beta/models/gemini-pro:generateContent"
        assert request.headers["x-goog-api-key"] == "k"
        assert request.body["contents"][0]["parts"][0]["text"] == "hi"

    def test_codex(self):
        request = get_strategy(EndpointType.CODEX).build_request("https://x.io", "k", "gpt-5.1", "hi")

        assert request.url == "https://x.io/v1/responses"
        assert request.body["input"][0]["content"][0] == {"type": "input_text", "text": "hi"}

    def test_image(self):
        request = get_strategy(EndpointType.IMAGE).build_request("https://x.io", "k", "dall-e-3", "hi")

        assert request.url == "https://x.io/v1/images/generations"
        assert request.body["n"] == 1
        assert request.body["size"] == "256x256"


class TestExtraction:

    def test_chat_content(self):
        assert get_strategy(EndpointType.CHAT).extract_content(CHAT_OK) == "Hello!"

    def test_chat_reasoning_content(self):
        body = {"choices": [{"message": {"content": "", "reasoning_content": "<think>x</think>42"}}]}
        assert get_strategy(EndpointType.CHAT).extract_content(body) == "42"

    def test_chat_legacy_text(self):
        body = {"choices": [{"text": "legacy"}]}
        assert get_strategy(EndpointType.CHAT).extract_content(body) == "legacy"

    def test_claude_skips_thinking_block(self):
        body = {"content": [{"type": "thinking", "thinking": "..."}, {"type": "text", "text": "Hi"}]}
        assert get_strategy(EndpointType.CLAUDE).extract_content(body) == "Hi"

    def test_gemini(self):
        body = {"candidates": [{"content": {"parts": [{"text": "Hey"}]}}]}
        assert get_strategy(EndpointType.GEMINI).extract_content(body) == "Hey"

    def test_codex_skips_reasoning_item(self):
        body = {"output": [
            {"type": "reasoning", "summary": []},
            {"type": "message", "content": [{"type": "output_text", "text": "Yo"}]},
        ]}
        assert get_strategy(EndpointType.CODEX).extract_content(body) == "Yo"

    def test_image_url_and_b64(self):
        strategy = get_strategy(EndpointType.IMAGE)
        assert strategy.extract_content({"data": [{"url": "https://img/1.png"}]}) == "https://img/1.png"
        assert strategy.extract_content({"data": [{"b64_json": "abcd"}]}) == "[b64_json image, 4 chars]"

    def test_fallback_keys(self):
        strategy = get_strategy(EndpointType.CHAT)
        assert strategy.extract_content({"output": "plain"}) == "plain"
        assert strategy.extract_content({"model": "gpt-4o", "object": "x"}) == "[response OK, model: gpt-4o]"

    def test_nothing_recognizable(self):
        strategy = get_strategy(EndpointType.CHAT)
        assert strategy.extract_content({"choices": []}) is None
        assert strategy.extract_content(["not", "a", "dict"]) is None

    def test_content_bounded(self):
        body = {"choices": [{"message": {"content": "x" * 2000}}]}
        assert len(get_strategy(EndpointType.CHAT).extract_content(body)) == MAX_CONTENT_CHARS


# ============================================================================
# CLIENT
# ============================================================================

class TestProbeClient:

    def test_success(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=CHAT_OK)

        outcome = _probe(_client(handler))

        assert outcome.success
        assert outcome.status_code == 200
        assert outcome.content == "Hello!"
        assert outcome.latency_ms >= 0
        assert captured["url"] == "https://api.example.com/v1/chat/completions"
        assert captured["body"]["model"] == "gpt-4o"

    def test_2xx_without_payload_is_failure(self):
        outcome = _probe(_client(lambda request: httpx.Response(200, json={"choices": []})))

        assert not outcome.success
        assert outcome.status_code == 200
        assert "without completion payload" in outcome.error

    def test_2xx_non_json_is_failure(self):
        outcome = _probe(_client(lambda request: httpx.Response(200, text="<html>gateway</html>")))

        assert not outcome.success
        assert "non-JSON" in outcome.error

    def test_non_2xx_keeps_status_and_truncates_body(self):
        outcome = _probe(_client(lambda request: httpx.Response(429, text="r" * 1000)))

        assert not outcome.success
        assert outcome.status_code == 429
        assert outcome.error.endswith("...")
        assert len(outcome.error) <= 503

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = _probe(_client(handler))

        assert not outcome.success
        assert outcome.status_code is None
        assert outcome.error == "Timeout after 5000ms"

    def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        outcome = _probe(_client(handler))

        assert not outcome.success
        assert outcome.status_code is None
        assert "connection refused" in outcome.error

    def test_claude_probe_uses_messages_api(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["key"] = request.headers.get("x-api-key")
            return httpx.Response(200, json={"content": [{"type": "text", "text": "ok"}]})

        outcome = _probe(_client(handler), EndpointType.CLAUDE, "claude-3-5-sonnet")

        assert outcome.success
        assert seen == {"path": "/v1/messages", "key": "sk-test"}


class TestFetchModels:

    def _fetch(self, handler):
        client = _client(handler)

        async def run():
            try:
                return await client.fetch_models("https://api.example.com", "sk-test")
            finally:
                await client.close()

        return asyncio.run(run())

    def test_lists_ids(self):
        def handler(request):
            assert request.url.path == "/v1/models"
            assert request.headers["Authorization"] == "Bearer sk-test"
            return httpx.Response(200, json={"data": [{"id": "gpt-4o"}, {"id": "claude-3"}, {"x": 1}]})

        assert self._fetch(handler) == ["gpt-4o", "claude-3"]

    def test_missing_data_is_empty(self):
        assert self._fetch(lambda request: httpx.Response(200, json={"object": "list"})) == []

    def test_error_status_raises(self):
        with pytest.raises(ProbeFailure) as exc_info:
            self._fetch(lambda request: httpx.Response(401, text="bad key"))
        assert exc_info.value.status_code == 401
