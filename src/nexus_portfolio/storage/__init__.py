"""Storage layer - Database schemas and repositories."""

from nexus_portfolio.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from nexus_portfolio.storage.models import Base, PortfolioHistoryModel
from nexus_portfolio.storage.repos import PortfolioHistoryDTO, PortfolioHistoryRepository

__all__ = [
    "Base",
    "DatabaseManager",
    "PortfolioHistoryDTO",
    "PortfolioHistoryModel",
    "PortfolioHistoryRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
