# ============================================================================
# PROBE CLIENT
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Async HTTP client for upstream probes
# PURPOSE: Execute one probe and classify the result; list channel models
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: ProbeClient, get_probe_client, close_probe_client
# DEPENDENCIES: httpx
# ============================================================================
"""
Probe Client

Executes a single endpoint probe against a channel. Never raises for
upstream problems: every failure mode becomes a FAIL ProbeOutcome.

Classification:
    2xx + recognizable payload    SUCCESS
    2xx without payload           FAIL (status_code kept)
    non-2xx                       FAIL (status_code kept, body truncated)
    network / DNS / TLS / timeout FAIL (status_code None)

Each probe has two deadlines: the httpx timeout and an outer
asyncio.wait_for guard slightly above it, so a stalled transport can never
hold a worker slot.

Usage:
    client = ProbeClient(timeout_seconds=30)
    outcome = await client.probe(base_url, api_key, "gpt-4o", EndpointType.CHAT)
    await client.close()
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

import httpx

from core.config import get_defaults
from core.contracts import EndpointType
from core.errors import ProbeFailure
from core.models.check_log import truncate_text
from probes.base import ProbeOutcome, normalize_base_url
from probes.registry import get_strategy

logger = logging.getLogger(__name__)

# Extra seconds the outer guard allows beyond the httpx timeout
GUARD_SLACK_SECONDS = 5.0


class ProbeClient:
    """
    Async probe executor.

    One httpx.AsyncClient is kept per outbound proxy so connection pools are
    reused across probes of the same channel.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        prompt: Optional[str] = None,
        global_proxy: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        defaults = get_defaults().probe
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else defaults.timeout_seconds
        self.prompt = prompt or defaults.prompt
        self.global_proxy = global_proxy if global_proxy is not None else defaults.global_proxy
        self.max_chars = defaults.max_diagnostic_chars
        self._transport = transport
        self._clients: Dict[Optional[str], httpx.AsyncClient] = {}

    def _client_for(self, proxy: Optional[str]) -> httpx.AsyncClient:
        effective = proxy or self.global_proxy
        client = self._clients.get(effective)
        if client is None:
            kwargs = {"timeout": httpx.Timeout(self.timeout_seconds)}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            elif effective:
                kwargs["proxy"] = effective
            client = httpx.AsyncClient(**kwargs)
            self._clients[effective] = client
            if effective:
                logger.info(f"Created probe HTTP client via proxy {effective}")
        return client

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout_seconds * 1000)

    async def probe(
        self,
        base_url: str,
        api_key: str,
        model_name: str,
        endpoint_type: EndpointType,
        proxy: Optional[str] = None,
    ) -> ProbeOutcome:
        """
        Run one probe. Always returns an outcome.

        Args:
            base_url: Channel base URL (normalized here)
            api_key: Credential for the channel
            model_name: Upstream model name
            endpoint_type: Which API shape to probe
            proxy: Channel proxy; falls back to GLOBAL_PROXY

        Returns:
            ProbeOutcome with latency in milliseconds
        """
        strategy = get_strategy(endpoint_type)
        request = strategy.build_request(base_url, api_key, model_name, self.prompt)
        client = self._client_for(proxy)

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.post(request.url, headers=request.headers, json=request.body),
                timeout=self.timeout_seconds + GUARD_SLACK_SECONDS,
            )
            latency_ms = int((time.monotonic() - start) * 1000)
            return self._classify(strategy, endpoint_type, response, latency_ms)

        except (httpx.TimeoutException, asyncio.TimeoutError):
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"Probe timeout: {model_name} [{endpoint_type.value}] after {latency_ms}ms")
            return ProbeOutcome.failure_result(
                endpoint_type, latency_ms, f"Timeout after {self.timeout_ms}ms"
            )

        except httpx.HTTPError as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            message = str(e) or e.__class__.__name__
            logger.warning(f"Probe transport error: {model_name} [{endpoint_type.value}]: {message}")
            return ProbeOutcome.failure_result(
                endpoint_type, latency_ms, truncate_text(message, self.max_chars)
            )

    def _classify(self, strategy, endpoint_type: EndpointType, response: httpx.Response, latency_ms: int) -> ProbeOutcome:
        status = response.status_code

        if not response.is_success:
            body_text = response.text or f"HTTP {status}"
            return ProbeOutcome.failure_result(
                endpoint_type, latency_ms, truncate_text(body_text, self.max_chars), status_code=status
            )

        try:
            content = self._extract(strategy, response)
        except ProbeFailure as e:
            return ProbeOutcome.failure_result(endpoint_type, latency_ms, str(e), status_code=status)

        return ProbeOutcome.success_result(endpoint_type, latency_ms, status, content)

    def _extract(self, strategy, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            raise ProbeFailure(
                truncate_text(f"HTTP {response.status_code} with non-JSON body: {response.text}", self.max_chars),
                status_code=response.status_code,
            )

        content = strategy.extract_content(body)
        if content is None:
            raise ProbeFailure(
                f"HTTP {response.status_code} without completion payload",
                status_code=response.status_code,
            )
        return content

    async def fetch_models(
        self,
        base_url: str,
        api_key: str,
        proxy: Optional[str] = None,
    ) -> List[str]:
        """
        List model IDs from {base}/v1/models (OpenAI-style data[].id).

        Raises:
            ProbeFailure: non-2xx, transport error, or unparseable body
        """
        url = f"{normalize_base_url(base_url)}/v1/models"
        client = self._client_for(proxy)
        logger.info(f"Fetching models from: {url}")

        try:
            response = await asyncio.wait_for(
                client.get(url, headers={"Authorization": f"Bearer {api_key}"}),
                timeout=self.timeout_seconds + GUARD_SLACK_SECONDS,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            raise ProbeFailure(f"Timeout after {self.timeout_ms}ms")
        except httpx.HTTPError as e:
            raise ProbeFailure(truncate_text(str(e) or e.__class__.__name__, self.max_chars))

        if not response.is_success:
            raise ProbeFailure(
                truncate_text(f"HTTP {response.status_code}: {response.text}", 200),
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise ProbeFailure("Model list is not JSON", status_code=response.status_code)

        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            logger.info("No models array in response")
            return []

        models = [
            item["id"] for item in items
            if isinstance(item, dict) and isinstance(item.get("id"), str)
        ]
        logger.info(f"Found {len(models)} models")
        return models

    async def close(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_probe_client: Optional[ProbeClient] = None


def get_probe_client() -> ProbeClient:
    """Get or create the global probe client."""
    global _probe_client
    if _probe_client is None:
        _probe_client = ProbeClient()
    return _probe_client


async def close_probe_client() -> None:
    """Close the global probe client."""
    global _probe_client
    if _probe_client is not None:
        await _probe_client.close()
        _probe_client = None


__all__ = [
    "ProbeClient",
    "get_probe_client",
    "close_probe_client",
]
