"""Tests for the portfolio service."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from nexus_portfolio.aggregator import PortfolioAggregator
from nexus_portfolio.portfolio.chains import Blockchain
from nexus_portfolio.portfolio.models import (
    PortfolioAssets,
    PortfolioSnapshot,
    PortfolioValue,
    Token,
    TokenBalance,
    Wallet,
)
from nexus_portfolio.service import PortfolioService
from nexus_portfolio.storage.database import DatabaseManager

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _snapshot(total: str, *, computed_at: datetime = NOW, empty: bool = False) -> PortfolioSnapshot:
    tokens = ()
    if not empty:
        tokens = (
            Token.from_balance(
                TokenBalance(symbol="ETH", name="Ethereum", chain=Blockchain.ETHEREUM, amount=Decimal("1")),
                price=Decimal(total),
                change_24h=Decimal("0"),
            ),
        )
    return PortfolioSnapshot(
        assets=PortfolioAssets(tokens=tokens),
        value=PortfolioValue(total=Decimal(total)),
        computed_at=computed_at,
    )


@pytest.fixture
async def db(tmp_path: Path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()


@pytest.fixture
def aggregator() -> MagicMock:
    mock = MagicMock(spec=PortfolioAggregator)
    mock.snapshot = AsyncMock()
    return mock


WALLETS = [Wallet("0xabc", Blockchain.ETHEREUM)]


class TestPortfolioService:
    """Tests for PortfolioService."""

    @pytest.mark.asyncio
    async def test_refresh_records_changes(self, aggregator: MagicMock, db: DatabaseManager) -> None:
        aggregator.snapshot.side_effect = [
            _snapshot("1000"),
            _snapshot("1000.005", computed_at=NOW + timedelta(minutes=5)),
            _snapshot("1100", computed_at=NOW + timedelta(minutes=10)),
        ]
        service = PortfolioService(aggregator, db)

        for _ in range(3):
            await service.refresh("user-1", WALLETS)

        points = await service.history("user-1", now=NOW + timedelta(hours=1))
        assert [p.value for p in points] == [Decimal("1000"), Decimal("1100")]
        assert points[0].timestamp == NOW

    @pytest.mark.asyncio
    async def test_empty_portfolio_not_recorded(self, aggregator: MagicMock, db: DatabaseManager) -> None:
        aggregator.snapshot.return_value = _snapshot("0", empty=True)
        service = PortfolioService(aggregator, db)

        snapshot = await service.refresh("user-1", WALLETS)

        assert snapshot.assets.is_empty
        assert await service.history("user-1", now=NOW) == []

    @pytest.mark.asyncio
    async def test_history_window(self, aggregator: MagicMock, db: DatabaseManager) -> None:
        aggregator.snapshot.side_effect = [
            _snapshot("1", computed_at=NOW - timedelta(days=120)),
            _snapshot("2", computed_at=NOW - timedelta(days=10)),
        ]
        service = PortfolioService(aggregator, db)
        await service.refresh("user-1", WALLETS)
        await service.refresh("user-1", WALLETS)

        assert [p.value for p in await service.history("user-1", now=NOW)] == [Decimal("2")]
        assert len(await service.history("user-1", days=365, now=NOW)) == 2

    @pytest.mark.asyncio
    async def test_without_database(self, aggregator: MagicMock) -> None:
        aggregator.snapshot.return_value = _snapshot("10")
        service = PortfolioService(aggregator)

        snapshot = await service.refresh("user-1", WALLETS)

        assert snapshot.value.total == Decimal("10")
        assert await service.history("user-1") == []

    @pytest.mark.asyncio
    async def test_database_failure_still_returns_snapshot(self, aggregator: MagicMock) -> None:
        aggregator.snapshot.return_value = _snapshot("10")
        broken = MagicMock(spec=DatabaseManager)
        broken.get_async_session.side_effect = ConnectionError("db down")
        service = PortfolioService(aggregator, broken)

        snapshot = await service.refresh("user-1", WALLETS)

        assert snapshot.value.total == Decimal("10")
