"""Async HTTP client for third-party data providers.

Wraps httpx with the behavior every provider call needs:
- Per-request timeout
- Client-side rate limiting
- Retry with exponential backoff on transient errors (429/5xx/network)
- Typed errors so callers can degrade gracefully
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_REQUESTS_PER_SECOND = 10.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_SECONDS = 0.5
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


class ProviderError(Exception):
    """Base exception for provider client errors."""


class ProviderHTTPError(ProviderError):
    """Raised when a provider answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderRateLimitError(ProviderHTTPError):
    """Raised when a provider answers 429 after all retries."""


class ProviderTransportError(ProviderError):
    """Raised on network failures and timeouts."""


@dataclass
class RateLimiter:
    """Token bucket rate limiter.

    Allows bursts of up to one second's worth of requests, then refills
    at the configured rate.
    """

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        """Create a rate limiter with specified max requests per second."""
        # A bucket smaller than one token could never grant a request
        capacity = max(1.0, max_requests_per_second)
        return cls(
            max_tokens=capacity,
            refill_rate=max_requests_per_second,
            tokens=capacity,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting for the bucket to refill if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            await asyncio.sleep((tokens - self.tokens) / self.refill_rate)


class ProviderClient:
    """JSON-over-HTTP client for one provider.

    Example:
        ```python
        client = ProviderClient(
            "moralis",
            "https://deep-index.moralis.io/api/v2.2",
            headers={"X-API-Key": api_key},
        )
        balance = await client.get_json(f"/{address}/balance", params={"chain": "eth"})
        await client.aclose()
        ```
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider client.

        Args:
            name: Provider name used in logs and errors.
            base_url: Base URL every request path is appended to.
            headers: Headers sent with every request (e.g. API keys).
            params: Query parameters sent with every request.
            timeout_seconds: Per-request timeout.
            max_requests_per_second: Client-side rate limit.
            max_retries: Retry attempts for transient failures.
            retry_delay_seconds: Initial backoff delay (doubles per attempt).
            transport: Optional httpx transport (used by tests).
        """
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._default_params = dict(params or {})
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._rate_limiter = RateLimiter.create(max_requests_per_second)
        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json", **dict(headers or {})},
            timeout=timeout_seconds,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self._base_url
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        """GET a JSON document."""
        return await self._request("GET", path, params=params)

    async def post_json(
        self,
        path: str,
        payload: Any,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        return await self._request("POST", path, params=params, json_body=payload)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        """Execute a request with retry logic.

        Raises:
            ProviderRateLimitError: If the provider kept answering 429.
            ProviderHTTPError: On any other non-2xx status.
            ProviderTransportError: On network failure or timeout.
        """
        url = self._url(path)
        query = {**self._default_params, **dict(params or {})}
        delay = self._retry_delay
        last_error: ProviderError | None = None

        for attempt in range(self._max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=query or None,
                    json=json_body,
                )
            except httpx.TransportError as e:
                last_error = ProviderTransportError(f"{self.name} {method} {path} failed: {e}")
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ProviderError(f"{self.name} {method} {path} returned invalid JSON") from e
                last_error = self._status_error(method, path, response.status_code)
                if response.status_code not in RETRY_STATUS_CODES:
                    raise last_error

            if attempt < self._max_retries:
                logger.warning(
                    "%s request %s %s failed (attempt %d/%d): %s",
                    self.name,
                    method,
                    path,
                    attempt + 1,
                    self._max_retries + 1,
                    last_error,
                )
                await asyncio.sleep(delay)
                delay *= 2  # Exponential backoff

        assert last_error is not None
        raise last_error

    def _status_error(self, method: str, path: str, status_code: int) -> ProviderHTTPError:
        message = f"{self.name} {method} {path} returned HTTP {status_code}"
        if status_code == 429:
            return ProviderRateLimitError(message, status_code)
        return ProviderHTTPError(message, status_code)

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
