"""Repository pattern implementations for data access.

This module provides the data access abstraction for portfolio value
history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from nexus_portfolio.storage.models import PortfolioHistoryModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_THRESHOLD = Decimal("0.01")


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass
class PortfolioHistoryDTO:
    """Data transfer object for portfolio history points."""

    user_id: str
    value: Decimal
    timestamp: datetime
    id: int | None = None

    @classmethod
    def from_model(cls, model: PortfolioHistoryModel) -> PortfolioHistoryDTO:
        return cls(
            id=model.id,
            user_id=model.user_id,
            value=Decimal(model.value),
            timestamp=_as_utc(model.timestamp),
        )

    def to_dict(self) -> dict[str, str]:
        return {"timestamp": self.timestamp.isoformat(), "value": str(self.value)}


class PortfolioHistoryRepository:
    """Repository for portfolio value history."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def get_latest(self, user_id: str) -> PortfolioHistoryDTO | None:
        result = await self.session.execute(
            select(PortfolioHistoryModel)
            .where(PortfolioHistoryModel.user_id == user_id)
            .order_by(PortfolioHistoryModel.timestamp.desc(), PortfolioHistoryModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return PortfolioHistoryDTO.from_model(model) if model else None

    async def insert(
        self,
        user_id: str,
        value: Decimal,
        *,
        timestamp: datetime | None = None,
    ) -> PortfolioHistoryDTO:
        model = PortfolioHistoryModel(
            user_id=user_id,
            value=value,
            timestamp=timestamp or datetime.now(UTC),
        )
        self.session.add(model)
        await self.session.flush()
        return PortfolioHistoryDTO.from_model(model)

    async def record_if_changed(
        self,
        user_id: str,
        value: Decimal,
        *,
        timestamp: datetime | None = None,
        threshold: Decimal = DEFAULT_CHANGE_THRESHOLD,
    ) -> PortfolioHistoryDTO | None:
        """Record a value unless it is within `threshold` of the latest point.

        Returns:
            The new point, or None when nothing was written.
        """
        latest = await self.get_latest(user_id)
        if latest is not None and abs(latest.value - value) <= threshold:
            return None
        return await self.insert(user_id, value, timestamp=timestamp)

    async def list_since(self, user_id: str, since: datetime) -> list[PortfolioHistoryDTO]:
        """Points at or after `since`, oldest first."""
        result = await self.session.execute(
            select(PortfolioHistoryModel)
            .where(
                (PortfolioHistoryModel.user_id == user_id)
                & (PortfolioHistoryModel.timestamp >= since)
            )
            .order_by(PortfolioHistoryModel.timestamp.asc(), PortfolioHistoryModel.id.asc())
        )
        return [PortfolioHistoryDTO.from_model(m) for m in result.scalars().all()]

    async def delete_before(self, before: datetime) -> int:
        """Prune points older than `before` for all users.

        Returns:
            Number of rows deleted.
        """
        result = await self.session.execute(
            delete(PortfolioHistoryModel).where(PortfolioHistoryModel.timestamp < before)
        )
        deleted = int(result.rowcount or 0)
        if deleted:
            logger.info("Pruned %d portfolio history point(s) before %s", deleted, before.isoformat())
        return deleted
