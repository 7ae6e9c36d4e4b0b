"""Portfolio value and 24h change computation."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from nexus_portfolio.portfolio.models import ZERO, DeFiPosition, PortfolioValue, Token

HUNDRED = Decimal(100)


def token_change_24h(token: Token) -> Decimal:
    """Absolute USD change of one holding over the last 24h.

    Derived from the current value and the oracle's 24h percent change:
    yesterday = value / (1 + c/100), change = yesterday * c/100.
    """
    ratio = token.change_24h / HUNDRED
    if ratio <= -1:
        # A -100% move has no defined prior value.
        return ZERO
    return token.value / (1 + ratio) * ratio


def change_24h_percent(total: Decimal, change_24h: Decimal) -> Decimal:
    """Percent change relative to yesterday's total; 0 when yesterday was 0."""
    base = total - change_24h
    if base == 0:
        return ZERO
    return change_24h / base * HUNDRED


def compute_portfolio_value(
    tokens: Iterable[Token],
    defi_positions: Iterable[DeFiPosition] = (),
) -> PortfolioValue:
    """Compute the total value and 24h delta of a set of holdings.

    DeFi positions count towards the total but carry no 24h change.
    """
    tokens = list(tokens)
    total = sum((t.value for t in tokens), ZERO) + sum(
        (p.value_usd for p in defi_positions), ZERO
    )
    change = sum((token_change_24h(t) for t in tokens), ZERO)
    return PortfolioValue(
        total=total,
        change_24h=change,
        change_24h_percent=change_24h_percent(total, change),
    )
