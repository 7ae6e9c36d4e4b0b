"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from nexus_portfolio.adapters.base import AdapterResult, ChainAdapter
from nexus_portfolio.config import clear_settings_cache
from nexus_portfolio.portfolio.chains import Blockchain, ChainFamily
from nexus_portfolio.portfolio.models import Transaction, TransactionType, Wallet
from nexus_portfolio.pricing.oracle import PriceOracle, PriceQuote

PROVIDER_ENV_VARS = (
    "DATABASE_URL",
    "REDIS_URL",
    "MORALIS_API_KEY",
    "HELIUS_API_KEY",
    "COINGECKO_API_KEY",
    "BLOCKSTREAM_ENABLED",
    "LOG_LEVEL",
    "ALERTS_MIN_VALUE_USD",
)

EVM_ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"
SOL_ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
BTC_ADDRESS = "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Each test sees a fresh settings singleton without provider keys."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def evm_wallet() -> Wallet:
    return Wallet(address=EVM_ADDRESS, blockchain=Blockchain.ETHEREUM, id="w-eth")


@pytest.fixture
def sol_wallet() -> Wallet:
    return Wallet(address=SOL_ADDRESS, blockchain=Blockchain.SOLANA, id="w-sol")


@pytest.fixture
def btc_wallet() -> Wallet:
    return Wallet(address=BTC_ADDRESS, blockchain=Blockchain.BITCOIN, id="w-btc")


class StaticAdapter(ChainAdapter):
    """Adapter returning a canned result per wallet address."""

    name = "static"

    def __init__(
        self,
        family: ChainFamily,
        results: dict[str, AdapterResult] | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.family = family  # type: ignore[misc]
        self.results = results or {}
        self.error = error
        self.delay = delay
        self.delays = delays or {}
        self.seen: list[Sequence[Wallet]] = []
        self.closed = False

    async def fetch(
        self, wallets: Sequence[Wallet], *, wallet_timeout: float | None = None
    ) -> AdapterResult:
        self.seen.append(list(wallets))
        return await super().fetch(wallets, wallet_timeout=wallet_timeout)

    async def fetch_wallet(self, wallet: Wallet) -> AdapterResult:
        delay = self.delays.get(wallet.address, self.delay)
        if delay:
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error
        return self.results.get(wallet.address, AdapterResult.empty())

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def static_adapter() -> Callable[..., StaticAdapter]:
    """Factory for canned chain adapters."""
    return StaticAdapter


@pytest.fixture
def price_oracle() -> Callable[[dict[str, PriceQuote]], MagicMock]:
    """Factory for an oracle mock that answers from a fixed quote table."""

    def _make(quotes: dict[str, PriceQuote]) -> MagicMock:
        oracle = MagicMock(spec=PriceOracle)

        async def get_prices(ids):
            return {i: quotes[i] for i in set(ids) if i in quotes}

        oracle.get_prices = AsyncMock(side_effect=get_prices)
        oracle.aclose = AsyncMock()
        return oracle

    return _make


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for transactions with sensible defaults."""

    def _make(
        tx_hash: str = "0xabc",
        *,
        type: TransactionType = TransactionType.RECEIVE,
        symbol: str = "ETH",
        amount: str = "1",
        chain: Blockchain = Blockchain.ETHEREUM,
        timestamp: datetime | None = None,
        from_address: str = "0xsender",
        to_address: str = EVM_ADDRESS,
        value_usd: str | None = None,
        id: str | None = None,
    ) -> Transaction:
        return Transaction(
            id=id or f"{tx_hash}-native",
            hash=tx_hash,
            type=type,
            timestamp=timestamp or datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
            token_symbol=symbol,
            amount=Decimal(amount),
            from_address=from_address,
            to_address=to_address,
            chain=chain,
            value_usd=Decimal(value_usd) if value_usd is not None else None,
        )

    return _make
