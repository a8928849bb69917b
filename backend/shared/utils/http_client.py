"""
Async HTTP client wrapper for provider requests.
Includes retry on 429/5xx, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS

logger = get_logger(__name__)


class ProviderHTTPClient:
    """
    Async HTTP client tailored for sports data provider APIs.
    Handles timeouts, retries, and records metrics per request.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.provider_request_timeout_s
        self._max_retries = max(1, max_retries if max_retries is not None else settings.provider_http_retries)
        self._default_headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _record(self, status: str, started: float) -> None:
        PROVIDER_REQUESTS.labels(provider=self._provider, status=status).inc()
        PROVIDER_LATENCY.labels(provider=self._provider).observe(time.perf_counter() - started)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Perform a request with retry, metrics, and structured logging.

        Raises:
            httpx.HTTPStatusError: On non-retryable HTTP errors or after the last retry.
            httpx.TransportError: If all retries are exhausted on transport failures.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        for attempt in range(1, self._max_retries + 1):
            started = time.perf_counter()
            last_attempt = attempt == self._max_retries
            try:
                resp = await self._client.request(method, path, params=params, json=json)
            except httpx.TransportError as exc:
                status = "timeout" if isinstance(exc, httpx.TimeoutException) else "transport_error"
                self._record(status, started)
                logger.warning(
                    "provider_transport_error",
                    provider=self._provider,
                    path=path,
                    error=type(exc).__name__,
                    attempt=attempt,
                )
                if last_attempt:
                    raise
                await asyncio.sleep(1.0 * attempt)
                continue

            self._record(str(resp.status_code), started)

            if resp.status_code == 429 and not last_attempt:
                retry_after = float(resp.headers.get("Retry-After", "2"))
                logger.warning("provider_rate_limited", provider=self._provider, path=path, attempt=attempt)
                await asyncio.sleep(min(retry_after, 10.0))
                continue

            if resp.status_code >= 500 and not last_attempt:
                logger.warning(
                    "provider_server_error",
                    provider=self._provider,
                    path=path,
                    status=resp.status_code,
                    attempt=attempt,
                )
                await asyncio.sleep(1.0 * attempt)
                continue

            resp.raise_for_status()
            logger.debug(
                "provider_request_success",
                provider=self._provider,
                path=path,
                status=resp.status_code,
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return resp

        raise RuntimeError(f"Provider request failed after {self._max_retries} attempts")

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        resp = await self.request("GET", path, params=params)
        return resp.json()

    async def post_json(self, path: str, body: Any) -> Any:
        resp = await self.request("POST", path, json=body)
        return resp.json()
