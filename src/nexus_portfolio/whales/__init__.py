"""Whale tracking - whale and segment views and significant-transaction alerts."""

from nexus_portfolio.whales.alerts import AlertScanner, AlertStateStore, UserAlertSettings
from nexus_portfolio.whales.models import (
    Alert,
    SegmentMember,
    SegmentPortfolio,
    WhalePortfolio,
    WhaleSegment,
    WhaleWallet,
)
from nexus_portfolio.whales.views import fetch_segment_portfolio, fetch_whale_portfolio

__all__ = [
    "Alert",
    "AlertScanner",
    "AlertStateStore",
    "SegmentMember",
    "SegmentPortfolio",
    "UserAlertSettings",
    "WhalePortfolio",
    "WhaleSegment",
    "WhaleWallet",
    "fetch_segment_portfolio",
    "fetch_whale_portfolio",
]
