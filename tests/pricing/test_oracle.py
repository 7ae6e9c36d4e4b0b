"""Tests for the CoinGecko price oracle."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from nexus_portfolio.pricing.oracle import PriceOracle, PriceQuote
from nexus_portfolio.providers.http import ProviderClient

BASE_URL = "https://api.coingecko.test/api/v3"


def _oracle(handler, *, redis=None) -> PriceOracle:
    client = ProviderClient(
        "coingecko",
        BASE_URL,
        transport=httpx.MockTransport(handler),
        max_requests_per_second=1000,
        max_retries=0,
    )
    return PriceOracle(client, redis=redis, cache_ttl_seconds=60)


class TestPriceQuote:
    """Tests for PriceQuote parsing."""

    def test_from_dict(self) -> None:
        quote = PriceQuote.from_dict({"usd": 3012.5, "usd_24h_change": -1.25})
        assert quote == PriceQuote(usd=Decimal("3012.5"), usd_24h_change=Decimal("-1.25"))

    def test_missing_price(self) -> None:
        assert PriceQuote.from_dict({"usd_24h_change": 1}) is None

    def test_missing_change(self) -> None:
        quote = PriceQuote.from_dict({"usd": "1"})
        assert quote is not None
        assert quote.usd_24h_change is None


class TestPriceOracle:
    """Tests for PriceOracle.get_prices."""

    @pytest.mark.asyncio
    async def test_single_batched_request(self) -> None:
        """Ids are deduplicated and fetched in one call."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "ethereum": {"usd": 3000, "usd_24h_change": 2.5},
                    "solana": {"usd": 150.25, "usd_24h_change": -3},
                },
            )

        oracle = _oracle(handler)
        quotes = await oracle.get_prices(["solana", "ethereum", "ethereum", "zzz"])
        await oracle.aclose()

        assert len(requests) == 1
        assert requests[0].url.path == "/api/v3/simple/price"
        assert requests[0].url.params["ids"] == "ethereum,solana,zzz"
        assert requests[0].url.params["vs_currencies"] == "usd"
        assert requests[0].url.params["include_24hr_change"] == "true"
        assert quotes["ethereum"].usd == Decimal("3000")
        assert quotes["solana"].usd_24h_change == Decimal("-3")
        assert "zzz" not in quotes

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self) -> None:
        handler = AsyncMock()
        oracle = _oracle(handler)

        assert await oracle.get_prices([]) == {}
        assert await oracle.get_prices(["", ""]) == {}
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limited_returns_empty(self) -> None:
        """A 429 degrades to no quotes instead of raising."""
        oracle = _oracle(lambda request: httpx.Response(429))

        assert await oracle.get_prices(["ethereum"]) == {}

    @pytest.mark.asyncio
    async def test_server_error_returns_empty(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(500, text="boom"))

        assert await oracle.get_prices(["ethereum"]) == {}

    @pytest.mark.asyncio
    async def test_unexpected_payload(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(200, json=["not", "a", "dict"]))

        assert await oracle.get_prices(["ethereum"]) == {}


class TestPriceOracleCache:
    """Tests for the Redis quote cache."""

    @pytest.mark.asyncio
    async def test_cached_quotes_skip_request(self) -> None:
        redis = AsyncMock()
        redis.mget.return_value = [json.dumps({"usd": "3000", "usd_24h_change": "1"}).encode()]

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        oracle = _oracle(handler, redis=redis)
        quotes = await oracle.get_prices(["ethereum"])

        assert quotes == {"ethereum": PriceQuote(usd=Decimal("3000"), usd_24h_change=Decimal("1"))}
        redis.mget.assert_awaited_once_with(["nexus:price:ethereum"])

    @pytest.mark.asyncio
    async def test_fetches_missing_and_caches(self) -> None:
        redis = AsyncMock()
        redis.mget.return_value = [json.dumps({"usd": "3000"}), None]
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"solana": {"usd": 150}})

        oracle = _oracle(handler, redis=redis)
        quotes = await oracle.get_prices(["solana", "ethereum"])

        assert requests[0].url.params["ids"] == "solana"
        assert set(quotes) == {"ethereum", "solana"}
        redis.set.assert_awaited_once()
        key, payload = redis.set.await_args.args
        assert key == "nexus:price:solana"
        assert json.loads(payload) == {"usd": "150", "usd_24h_change": None}
        assert redis.set.await_args.kwargs == {"ex": 60}

    @pytest.mark.asyncio
    async def test_rate_limited_serves_cache(self) -> None:
        """Rate limiting falls back to whatever is cached."""
        redis = AsyncMock()
        redis.mget.return_value = [json.dumps({"usd": "3000"}), None]
        oracle = _oracle(lambda request: httpx.Response(429), redis=redis)

        quotes = await oracle.get_prices(["ethereum", "solana"])

        assert set(quotes) == {"ethereum"}

    @pytest.mark.asyncio
    async def test_cache_failure_is_not_fatal(self) -> None:
        redis = AsyncMock()
        redis.mget.side_effect = ConnectionError("redis down")
        redis.set.side_effect = ConnectionError("redis down")
        oracle = _oracle(lambda request: httpx.Response(200, json={"bitcoin": {"usd": 64000}}), redis=redis)

        quotes = await oracle.get_prices(["bitcoin"])

        assert quotes["bitcoin"].usd == Decimal("64000")
