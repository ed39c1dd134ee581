"""PortfolioHistoryEntry model - one total-value snapshot per calendar day."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, Integer, Numeric

from database import Base


class PortfolioHistoryEntry(Base):
    """Total portfolio value (USD) recorded for a single day."""

    __tablename__ = "portfolio_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, unique=True, index=True, nullable=False)
    total_value = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
