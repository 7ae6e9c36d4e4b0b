"""Whale and segment portfolio views on top of the aggregator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nexus_portfolio.portfolio.valuation import compute_portfolio_value
from nexus_portfolio.whales.models import (
    SegmentPortfolio,
    WhalePortfolio,
    WhaleSegment,
    WhaleWallet,
)

if TYPE_CHECKING:
    from nexus_portfolio.aggregator import PortfolioAggregator

logger = logging.getLogger(__name__)


async def fetch_whale_portfolio(
    aggregator: PortfolioAggregator,
    whale: WhaleWallet,
) -> WhalePortfolio:
    """Aggregate the holdings of one whale wallet."""
    assets = await aggregator.aggregate([whale.to_wallet()])
    return WhalePortfolio(
        tokens=assets.tokens,
        nfts=assets.nfts,
        transactions=assets.transactions,
    )


async def fetch_segment_portfolio(
    aggregator: PortfolioAggregator,
    segment: WhaleSegment,
) -> SegmentPortfolio:
    """Aggregate every member of a segment and compute the combined value.

    An empty segment returns empty lists and a zero value without any
    provider calls.
    """
    if not segment.addresses:
        return SegmentPortfolio()

    assets = await aggregator.aggregate(segment.to_wallets())
    value = compute_portfolio_value(assets.tokens, assets.defi_positions)
    logger.debug(
        "Segment %s: %d member(s), %d token(s), total %s",
        segment.id,
        len(segment.addresses),
        len(assets.tokens),
        value.total,
    )
    return SegmentPortfolio(
        tokens=assets.tokens,
        nfts=assets.nfts,
        transactions=assets.transactions,
        value=value,
    )
