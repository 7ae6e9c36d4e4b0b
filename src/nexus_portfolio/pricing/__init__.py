"""Pricing layer - USD quotes for portfolio assets."""

from nexus_portfolio.pricing.ids import NATIVE_PRICE_IDS, SYMBOL_PRICE_IDS, resolve_price_id
from nexus_portfolio.pricing.oracle import (
    PriceOracle,
    PriceOracleError,
    PriceQuote,
    PriceRateLimitedError,
)

__all__ = [
    "NATIVE_PRICE_IDS",
    "PriceOracle",
    "PriceOracleError",
    "PriceQuote",
    "PriceRateLimitedError",
    "SYMBOL_PRICE_IDS",
    "resolve_price_id",
]
