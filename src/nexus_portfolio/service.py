"""Portfolio service: aggregation plus value history.

Refreshing a user's portfolio computes the snapshot and records its total
in the history table when it moved by more than one cent since the last
recorded point. History is best-effort; the snapshot is returned even when
the database is unavailable.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from nexus_portfolio.storage.repos import PortfolioHistoryDTO, PortfolioHistoryRepository

if TYPE_CHECKING:
    from nexus_portfolio.aggregator import PortfolioAggregator
    from nexus_portfolio.portfolio.models import PortfolioSnapshot, Wallet
    from nexus_portfolio.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_DAYS = 90


class PortfolioService:
    """Refreshes user portfolios and serves their value history.

    Example:
        ```python
        service = PortfolioService(aggregator, DatabaseManager(settings.database.url))
        snapshot = await service.refresh("user-1", wallets)
        points = await service.history("user-1", days=30)
        ```
    """

    def __init__(
        self,
        aggregator: PortfolioAggregator,
        db: DatabaseManager | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            aggregator: Portfolio aggregator.
            db: Database manager; history is disabled when None.
        """
        self._aggregator = aggregator
        self._db = db

    async def refresh(self, user_id: str, wallets: Iterable[Wallet]) -> PortfolioSnapshot:
        """Aggregate a user's wallets and record the total value."""
        snapshot = await self._aggregator.snapshot(wallets)
        if self._db is None or snapshot.assets.is_empty:
            return snapshot

        try:
            async with self._db.get_async_session() as session:
                repo = PortfolioHistoryRepository(session)
                point = await repo.record_if_changed(
                    user_id, snapshot.value.total, timestamp=snapshot.computed_at
                )
        except Exception as e:
            logger.warning("Failed to record portfolio history for %s: %s", user_id, e)
            return snapshot

        if point is not None:
            logger.debug("Recorded portfolio value %s for %s", point.value, user_id)
        return snapshot

    async def history(
        self,
        user_id: str,
        *,
        days: int = DEFAULT_HISTORY_DAYS,
        now: datetime | None = None,
    ) -> list[PortfolioHistoryDTO]:
        """Recorded values from the last `days` days, oldest first."""
        if self._db is None:
            return []
        since = (now or datetime.now(UTC)) - timedelta(days=days)
        async with self._db.get_async_session() as session:
            return await PortfolioHistoryRepository(session).list_since(user_id, since)
