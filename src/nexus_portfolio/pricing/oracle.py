"""USD price oracle backed by the CoinGecko simple-price API.

Lookups never raise: a failed or rate-limited batch degrades to whatever
quotes are cached (possibly none), so unresolved assets simply price at 0
downstream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from nexus_portfolio.providers.http import (
    ProviderClient,
    ProviderError,
    ProviderRateLimitError,
)

if TYPE_CHECKING:
    import httpx
    from redis.asyncio import Redis

    from nexus_portfolio.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300  # 5 minutes
CACHE_KEY_PREFIX = "nexus:price:"


class PriceOracleError(Exception):
    """Raised when a price batch cannot be fetched or parsed."""


class PriceRateLimitedError(PriceOracleError):
    """Raised when the price provider is rate limiting us (HTTP 429)."""


@dataclass(frozen=True)
class PriceQuote:
    """USD price and 24h percent change for one asset."""

    usd: Decimal
    usd_24h_change: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PriceQuote | None:
        """Parse a quote; returns None when the USD price is missing or invalid."""
        try:
            usd = Decimal(str(data["usd"]))
        except (KeyError, TypeError, InvalidOperation):
            return None
        if not usd.is_finite() or usd < 0:
            return None
        change: Decimal | None = None
        raw_change = data.get("usd_24h_change")
        if raw_change is not None:
            try:
                change = Decimal(str(raw_change))
            except InvalidOperation:
                change = None
            if change is not None and not change.is_finite():
                change = None
        return cls(usd=usd, usd_24h_change=change)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "usd": str(self.usd),
            "usd_24h_change": str(self.usd_24h_change) if self.usd_24h_change is not None else None,
        }


class PriceOracle:
    """Resolves price-service ids to USD quotes.

    Example:
        ```python
        oracle = PriceOracle.from_settings(get_settings(), redis=redis)
        quotes = await oracle.get_prices(["ethereum", "solana"])
        print(quotes["ethereum"].usd)
        ```
    """

    def __init__(
        self,
        client: ProviderClient,
        *,
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ) -> None:
        """Initialize the oracle.

        Args:
            client: HTTP client pointed at the CoinGecko API base URL.
            redis: Optional Redis client for caching quotes.
            cache_ttl_seconds: Cache TTL in seconds.
        """
        self._client = client
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        redis: Redis | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> PriceOracle:
        headers: dict[str, str] = {}
        if settings.coingecko.api_key is not None:
            headers["x-cg-demo-api-key"] = settings.coingecko.api_key.get_secret_value()
        client = ProviderClient(
            "coingecko",
            settings.coingecko.base_url,
            headers=headers,
            timeout_seconds=settings.aggregation.request_timeout_seconds,
            max_retries=settings.aggregation.max_retries,
            transport=transport,
        )
        return cls(client, redis=redis, cache_ttl_seconds=settings.coingecko.cache_ttl_seconds)

    @staticmethod
    def _cache_key(price_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}{price_id}"

    async def get_prices(self, ids: Iterable[str]) -> dict[str, PriceQuote]:
        """Get USD quotes for a set of price-service ids.

        Ids are deduplicated before querying; an empty set returns
        immediately. Ids unknown upstream are absent from the result.
        """
        unique_ids = sorted({i for i in ids if i})
        if not unique_ids:
            return {}

        cached = await self._get_cached(unique_ids)
        missing = [i for i in unique_ids if i not in cached]
        if not missing:
            return cached

        try:
            fresh = await self._fetch(missing)
        except PriceRateLimitedError:
            logger.warning(
                "Price provider rate limited; serving %d cached quote(s) for %d id(s)",
                len(cached),
                len(unique_ids),
            )
            return cached
        except PriceOracleError as e:
            logger.warning("Price lookup failed for %d id(s): %s", len(missing), e)
            return cached

        await self._set_cached(fresh)
        return {**cached, **fresh}

    async def _fetch(self, ids: list[str]) -> dict[str, PriceQuote]:
        try:
            data = await self._client.get_json(
                "/simple/price",
                params={
                    "ids": ",".join(ids),
                    "vs_currencies": "usd",
                    "include_24hr_change": "true",
                },
            )
        except ProviderRateLimitError as e:
            raise PriceRateLimitedError(str(e)) from e
        except ProviderError as e:
            raise PriceOracleError(str(e)) from e

        if not isinstance(data, dict):
            raise PriceOracleError(f"Unexpected price payload type: {type(data).__name__}")

        quotes: dict[str, PriceQuote] = {}
        for price_id, entry in data.items():
            if not isinstance(entry, dict):
                continue
            quote = PriceQuote.from_dict(entry)
            if quote is not None:
                quotes[price_id] = quote
        return quotes

    async def _get_cached(self, ids: list[str]) -> dict[str, PriceQuote]:
        if not self._redis:
            return {}
        try:
            values = await self._redis.mget([self._cache_key(i) for i in ids])
        except Exception as e:
            logger.warning("Price cache get failed: %s", e)
            return {}

        quotes: dict[str, PriceQuote] = {}
        for price_id, raw in zip(ids, values, strict=True):
            if raw is None:
                continue
            try:
                payload = json.loads(raw if isinstance(raw, str) else raw.decode())
            except (ValueError, AttributeError) as e:
                logger.warning("Ignoring unreadable cached quote for %s: %s", price_id, e)
                continue
            quote = PriceQuote.from_dict(payload) if isinstance(payload, dict) else None
            if quote is not None:
                quotes[price_id] = quote
        return quotes

    async def _set_cached(self, quotes: dict[str, PriceQuote]) -> None:
        if not self._redis or not quotes:
            return
        try:
            for price_id, quote in quotes.items():
                await self._redis.set(
                    self._cache_key(price_id),
                    json.dumps(quote.to_dict()),
                    ex=self._cache_ttl,
                )
        except Exception as e:
            logger.warning("Price cache set failed: %s", e)

    async def aclose(self) -> None:
        await self._client.aclose()
