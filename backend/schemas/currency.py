"""Pydantic schemas for the display-currency endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from services.types import Currency


class CurrencySet(BaseModel):
    """Request body for changing the display currency."""

    currency: Currency


class CurrencyResponse(BaseModel):
    currency: Currency
    symbol: str
    exchange_rate: Decimal  # EUR per 1 USD
    rate_updated_at: Optional[datetime] = None
    rate_fresh: bool
