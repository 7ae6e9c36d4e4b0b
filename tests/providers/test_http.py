"""Tests for the provider HTTP client."""

import json
import time

import httpx
import pytest

from nexus_portfolio.providers.http import (
    ProviderClient,
    ProviderError,
    ProviderHTTPError,
    ProviderRateLimitError,
    ProviderTransportError,
    RateLimiter,
)

BASE_URL = "https://provider.test/api"


def _client(handler, **kwargs) -> ProviderClient:
    kwargs.setdefault("max_requests_per_second", 1000)
    kwargs.setdefault("retry_delay_seconds", 0.0)
    return ProviderClient("test", BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_burst_does_not_wait(self) -> None:
        """A full bucket grants one second's worth of requests at once."""
        limiter = RateLimiter.create(max_requests_per_second=10)
        start = time.monotonic()
        for _ in range(10):
            await limiter.acquire()
        assert time.monotonic() - start < 0.05

    @pytest.mark.asyncio
    async def test_enforces_rate(self) -> None:
        """Once the bucket is drained, calls wait for a refill."""
        limiter = RateLimiter.create(max_requests_per_second=10)
        for _ in range(10):
            await limiter.acquire()

        start = time.monotonic()
        await limiter.acquire()

        assert time.monotonic() - start >= 0.08

    @pytest.mark.asyncio
    async def test_sub_one_rate_still_grants(self) -> None:
        limiter = RateLimiter.create(max_requests_per_second=0.5)
        assert limiter.max_tokens == 1.0
        await limiter.acquire()
        assert limiter.tokens < 1.0


class TestProviderClient:
    """Tests for ProviderClient."""

    @pytest.mark.asyncio
    async def test_get_json_builds_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = _client(handler, headers={"X-API-Key": "k"}, params={"api-key": "p"})
        result = await client.get_json("/v1/items", params={"limit": 5})
        await client.aclose()

        assert result == {"ok": True}
        assert str(seen[0].url) == f"{BASE_URL}/v1/items?api-key=p&limit=5"
        assert seen[0].headers["X-API-Key"] == "k"
        assert seen[0].headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_absolute_url_passes_through(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"result": 1})

        client = _client(handler)
        await client.post_json("https://rpc.test/", {"method": "getSlot"})

        assert seen[0].method == "POST"
        assert seen[0].url.host == "rpc.test"
        assert json.loads(seen[0].content) == {"method": "getSlot"}

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self) -> None:
        """5xx responses are retried until success."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[1, 2])

        client = _client(handler, max_retries=2)
        assert await client.get_json("/x") == [1, 2]
        assert calls == 3

    @pytest.mark.asyncio
    async def test_rate_limit_after_retries(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429)

        client = _client(handler, max_retries=1)
        with pytest.raises(ProviderRateLimitError) as exc_info:
            await client.get_json("/x")

        assert exc_info.value.status_code == 429
        assert calls == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404)

        client = _client(handler, max_retries=3)
        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.get_json("/missing")

        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, ProviderRateLimitError)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client = _client(handler, max_retries=1)
        with pytest.raises(ProviderTransportError):
            await client.get_json("/x")

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="invalid JSON"):
            await client.get_json("/x")
