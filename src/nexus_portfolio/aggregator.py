"""Portfolio aggregation orchestrator.

Fans a wallet list out to the chain adapters in parallel, merges their
partial results, prices everything with one oracle call and returns the
unified asset lists.

Flow:
    Wallets → partition by chain family → adapters (concurrent, each wallet timed)
    → merge tokens by (symbol, chain) → price oracle → finalize → sort/cap
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from nexus_portfolio.adapters.base import AdapterResult, ChainAdapter
from nexus_portfolio.adapters.bitcoin import BitcoinAdapter
from nexus_portfolio.adapters.evm import EvmAdapter
from nexus_portfolio.adapters.solana import SolanaAdapter
from nexus_portfolio.config import Settings, get_settings
from nexus_portfolio.portfolio.chains import Blockchain, ChainFamily, chain_family
from nexus_portfolio.portfolio.models import (
    ZERO,
    PortfolioAssets,
    PortfolioSnapshot,
    Token,
    TokenBalance,
    Transaction,
    Wallet,
)
from nexus_portfolio.portfolio.valuation import compute_portfolio_value
from nexus_portfolio.pricing.ids import resolve_price_id
from nexus_portfolio.pricing.oracle import PriceOracle, PriceQuote

if TYPE_CHECKING:
    import httpx
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_WALLET_TIMEOUT_SECONDS = 45.0
DEFAULT_MAX_TRANSACTIONS = 100


def merge_token_balances(balances: Iterable[TokenBalance]) -> list[TokenBalance]:
    """Merge balances reporting the same (symbol, chain), summing amounts.

    Display fields come from the first balance seen for a key. Output
    order is not guaranteed.
    """
    merged: dict[tuple[str, Blockchain], TokenBalance] = {}
    for balance in balances:
        key = balance.merge_key
        existing = merged.get(key)
        if existing is None:
            merged[key] = balance
        else:
            merged[key] = TokenBalance(
                symbol=existing.symbol,
                name=existing.name,
                chain=existing.chain,
                amount=existing.amount + balance.amount,
                logo_url=existing.logo_url or balance.logo_url,
            )
    return list(merged.values())


def _dedupe_wallets(wallets: Iterable[Wallet]) -> list[Wallet]:
    seen: set[tuple[Blockchain, str]] = set()
    unique: list[Wallet] = []
    for wallet in wallets:
        # EVM addresses are case-insensitive hex; others are not.
        address = wallet.address
        if chain_family(wallet.blockchain) is ChainFamily.EVM:
            address = address.lower()
        key = (wallet.blockchain, address)
        if key in seen:
            continue
        seen.add(key)
        unique.append(wallet)
    return unique


class PortfolioAggregator:
    """Aggregates holdings across chain adapters into one portfolio.

    The aggregator never raises for provider problems: a failed or slow
    wallet contributes nothing and the rest of the portfolio is returned.

    Example:
        ```python
        async with PortfolioAggregator.from_settings(get_settings()) as aggregator:
            assets = await aggregator.aggregate(
                [Wallet("0xabc...", Blockchain.ETHEREUM), Wallet("bc1q...", Blockchain.BITCOIN)]
            )
        ```
    """

    def __init__(
        self,
        adapters: Sequence[ChainAdapter],
        price_oracle: PriceOracle,
        *,
        wallet_timeout_seconds: float = DEFAULT_WALLET_TIMEOUT_SECONDS,
        max_transactions: int = DEFAULT_MAX_TRANSACTIONS,
    ) -> None:
        """Initialize the aggregator.

        Args:
            adapters: Configured chain adapters, at most one per family.
            price_oracle: USD price source.
            wallet_timeout_seconds: Upper bound for fetching one wallet.
            max_transactions: Cap on returned transactions.
        """
        families = [adapter.family for adapter in adapters]
        if len(families) != len(set(families)):
            raise ValueError("At most one adapter per chain family is supported")
        self._adapters = list(adapters)
        self._price_oracle = price_oracle
        self._wallet_timeout = wallet_timeout_seconds
        self._max_transactions = max_transactions

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        redis: Redis | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> PortfolioAggregator:
        """Build an aggregator with every chain family that has credentials.

        A family without its provider credential is skipped; this is not
        an error.
        """
        settings = settings or get_settings()
        adapters: list[ChainAdapter] = []
        if settings.moralis.enabled:
            adapters.append(EvmAdapter.from_settings(settings, transport=transport))
        else:
            logger.info("MORALIS_API_KEY not set; EVM wallets will be skipped")
        if settings.helius.enabled:
            adapters.append(SolanaAdapter.from_settings(settings, transport=transport))
        else:
            logger.info("HELIUS_API_KEY not set; Solana wallets will be skipped")
        if settings.blockstream.enabled:
            adapters.append(BitcoinAdapter.from_settings(settings, transport=transport))
        else:
            logger.info("Blockstream disabled; Bitcoin wallets will be skipped")

        oracle = PriceOracle.from_settings(settings, redis=redis, transport=transport)
        return cls(
            adapters,
            oracle,
            wallet_timeout_seconds=settings.aggregation.wallet_timeout_seconds,
            max_transactions=settings.aggregation.max_transactions,
        )

    @property
    def adapters(self) -> tuple[ChainAdapter, ...]:
        return tuple(self._adapters)

    @property
    def price_oracle(self) -> PriceOracle:
        return self._price_oracle

    async def aggregate(self, wallets: Iterable[Wallet]) -> PortfolioAssets:
        """Fetch, merge and price holdings for a wallet set.

        Args:
            wallets: Wallets on any supported blockchain.

        Returns:
            Tokens (unordered), NFTs, transactions (newest first, capped)
            and DeFi positions. Empty when no wallets are given.
        """
        batch = _dedupe_wallets(wallets)
        if not batch:
            return PortfolioAssets()

        jobs = []
        for adapter in self._adapters:
            family_wallets = [w for w in batch if adapter.accepts(w)]
            if family_wallets:
                jobs.append(self._run_adapter(adapter, family_wallets))

        served = {adapter.family for adapter in self._adapters}
        unserved = {chain_family(w.blockchain) for w in batch} - served
        for family in sorted(unserved, key=lambda f: f.value):
            logger.info("No adapter configured for %s wallets; skipping", family.value)

        if not jobs:
            return PortfolioAssets()

        combined = AdapterResult.combine(await asyncio.gather(*jobs))
        balances = merge_token_balances(combined.tokens)

        ids_by_key: dict[tuple[str, Blockchain], str] = {}
        for balance in balances:
            ids_by_key.setdefault(balance.merge_key, resolve_price_id(balance.symbol, balance.chain))
        for tx in combined.transactions:
            ids_by_key.setdefault(
                (tx.token_symbol.lower(), tx.chain), resolve_price_id(tx.token_symbol, tx.chain)
            )

        quotes = await self._get_quotes(ids_by_key.values())

        def quote_for(symbol: str, chain: Blockchain) -> PriceQuote | None:
            price_id = ids_by_key.get((symbol.lower(), chain))
            return quotes.get(price_id) if price_id is not None else None

        tokens = [self._finalize_token(b, quote_for(b.symbol, b.chain)) for b in balances]
        transactions = [
            self._finalize_transaction(tx, quote_for(tx.token_symbol, tx.chain))
            for tx in combined.transactions
        ]
        transactions.sort(key=lambda tx: tx.timestamp, reverse=True)

        return PortfolioAssets(
            tokens=tuple(tokens),
            nfts=combined.nfts,
            transactions=tuple(transactions[: self._max_transactions]),
            defi_positions=combined.defi_positions,
        )

    async def snapshot(self, wallets: Iterable[Wallet]) -> PortfolioSnapshot:
        """Aggregate and attach the portfolio value summary."""
        assets = await self.aggregate(wallets)
        return PortfolioSnapshot(
            assets=assets,
            value=compute_portfolio_value(assets.tokens, assets.defi_positions),
        )

    async def _run_adapter(self, adapter: ChainAdapter, wallets: list[Wallet]) -> AdapterResult:
        try:
            return await adapter.fetch(wallets, wallet_timeout=self._wallet_timeout)
        except Exception as e:
            logger.warning("%s adapter failed for %d wallet(s): %s", adapter.name, len(wallets), e)
        return AdapterResult.empty()

    async def _get_quotes(self, ids: Iterable[str]) -> dict[str, PriceQuote]:
        try:
            return await self._price_oracle.get_prices(ids)
        except Exception as e:
            logger.warning("Price lookup failed; pricing all assets at 0: %s", e)
            return {}

    @staticmethod
    def _finalize_token(balance: TokenBalance, quote: PriceQuote | None) -> Token:
        price = quote.usd if quote is not None else ZERO
        change: Decimal = ZERO
        if quote is not None and quote.usd_24h_change is not None:
            change = quote.usd_24h_change
        return Token.from_balance(balance, price=price, change_24h=change)

    @staticmethod
    def _finalize_transaction(tx: Transaction, quote: PriceQuote | None) -> Transaction:
        if tx.value_usd is not None:
            return tx
        value = tx.amount * quote.usd if quote is not None else ZERO
        return replace(tx, value_usd=value)

    async def aclose(self) -> None:
        """Close every adapter and the price oracle."""
        for adapter in self._adapters:
            await adapter.aclose()
        await self._price_oracle.aclose()

    async def __aenter__(self) -> PortfolioAggregator:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.aclose()
