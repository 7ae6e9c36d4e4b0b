"""Tests for storage repositories."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nexus_portfolio.storage.models import Base, PortfolioHistoryModel
from nexus_portfolio.storage.repos import PortfolioHistoryDTO, PortfolioHistoryRepository

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


# ============================================================================
# PortfolioHistoryRepository Tests
# ============================================================================


class TestPortfolioHistoryRepository:
    """Tests for PortfolioHistoryRepository."""

    @pytest.mark.asyncio
    async def test_get_latest_empty(self, async_session: AsyncSession) -> None:
        repo = PortfolioHistoryRepository(async_session)
        assert await repo.get_latest("user-1") is None

    @pytest.mark.asyncio
    async def test_insert_and_get_latest(self, async_session: AsyncSession, now: datetime) -> None:
        repo = PortfolioHistoryRepository(async_session)
        await repo.insert("user-1", Decimal("100.00"), timestamp=now - timedelta(hours=1))
        await repo.insert("user-1", Decimal("125.50"), timestamp=now)
        await repo.insert("user-2", Decimal("999"), timestamp=now + timedelta(hours=1))

        latest = await repo.get_latest("user-1")

        assert latest is not None
        assert latest.id is not None
        assert latest.value == Decimal("125.50")
        assert latest.timestamp == now

    @pytest.mark.asyncio
    async def test_record_if_changed(self, async_session: AsyncSession, now: datetime) -> None:
        """Movements of one cent or less are not recorded."""
        repo = PortfolioHistoryRepository(async_session)

        first = await repo.record_if_changed("user-1", Decimal("1000.00"), timestamp=now)
        unchanged = await repo.record_if_changed(
            "user-1", Decimal("1000.01"), timestamp=now + timedelta(minutes=5)
        )
        moved = await repo.record_if_changed(
            "user-1", Decimal("1000.02"), timestamp=now + timedelta(minutes=10)
        )

        assert first is not None
        assert unchanged is None
        assert moved is not None
        assert moved.value == Decimal("1000.02")

    @pytest.mark.asyncio
    async def test_list_since(self, async_session: AsyncSession, now: datetime) -> None:
        repo = PortfolioHistoryRepository(async_session)
        for days_ago, value in ((100, "1"), (30, "2"), (1, "3")):
            await repo.insert("user-1", Decimal(value), timestamp=now - timedelta(days=days_ago))
        await repo.insert("user-2", Decimal("4"), timestamp=now)

        points = await repo.list_since("user-1", now - timedelta(days=90))

        assert [p.value for p in points] == [Decimal("2"), Decimal("3")]
        assert all(p.user_id == "user-1" for p in points)

    @pytest.mark.asyncio
    async def test_delete_before(self, async_session: AsyncSession, now: datetime) -> None:
        repo = PortfolioHistoryRepository(async_session)
        await repo.insert("user-1", Decimal("1"), timestamp=now - timedelta(days=400))
        await repo.insert("user-2", Decimal("2"), timestamp=now - timedelta(days=500))
        await repo.insert("user-1", Decimal("3"), timestamp=now)

        deleted = await repo.delete_before(now - timedelta(days=365))

        assert deleted == 2
        remaining = await repo.list_since("user-1", now - timedelta(days=1000))
        assert [p.value for p in remaining] == [Decimal("3")]


# ============================================================================
# DTO Tests
# ============================================================================


class TestDTOs:
    """Tests for DTO conversion methods."""

    def test_portfolio_history_dto_from_model(self) -> None:
        model = PortfolioHistoryModel(
            id=1,
            user_id="user-1",
            value=Decimal("42.5"),
            timestamp=datetime(2024, 5, 1, 12, 0),
        )

        dto = PortfolioHistoryDTO.from_model(model)

        assert dto.id == 1
        assert dto.value == Decimal("42.5")
        assert dto.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def test_to_dict(self) -> None:
        dto = PortfolioHistoryDTO(
            user_id="user-1",
            value=Decimal("42.5"),
            timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        )
        assert dto.to_dict() == {"timestamp": "2024-05-01T12:00:00+00:00", "value": "42.5"}
