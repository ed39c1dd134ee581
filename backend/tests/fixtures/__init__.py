"""Test fixtures and sample data."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from services.types import AssetType, Currency, Holding

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_holding(
    id: int,
    symbol: str = "BTC",
    asset_type: AssetType = AssetType.CRYPTO,
    amount: str = "1",
    price: str = "100",
    currency: Currency = Currency.USD,
    coin_id: Optional[str] = None,
    fetched_hours_ago: Optional[float] = None,
    is_hidden: bool = False,
    name: Optional[str] = None,
) -> Holding:
    """Build a Holding; ``fetched_hours_ago=None`` means never fetched."""
    last_fetched = None
    if fetched_hours_ago is not None:
        last_fetched = NOW - timedelta(hours=fetched_hours_ago)
    return Holding(
        id=id,
        symbol=symbol,
        name=name or symbol,
        asset_type=asset_type,
        amount=Decimal(amount),
        price=Decimal(price),
        original_currency=currency,
        coin_id=coin_id,
        last_fetched=last_fetched,
        is_hidden=is_hidden,
    )
