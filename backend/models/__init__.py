"""SQLAlchemy ORM models."""

from .portfolio_asset import PortfolioAsset
from .portfolio_history import PortfolioHistoryEntry

__all__ = ["PortfolioAsset", "PortfolioHistoryEntry"]
