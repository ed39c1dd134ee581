"""PortfolioAsset model - a tracked holding in the remote store."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from database import Base


class PortfolioAsset(Base):
    """A holding row: quantity, last known unit price and its currency."""

    __tablename__ = "portfolio_assets"
    # Ids are never reused after a delete
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String(16), nullable=False)  # "crypto" | "stock" | "bank"
    amount = Column(Numeric(24, 8), nullable=False, default=Decimal("0"))
    price = Column(Numeric(24, 10), nullable=False, default=Decimal("0"))
    coin_id = Column(String, nullable=True)
    original_currency = Column(String(3), nullable=False, default="USD")
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    last_fetched_at = Column(DateTime, nullable=True)
