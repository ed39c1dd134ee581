"""Pydantic schemas for holdings endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field

from services.types import AssetType, Currency

# Raw form input: numbers or numeric strings, validated by the service
NumericInput = Union[Decimal, str]


class AssetCreate(BaseModel):
    """Request body for adding a holding.

    Bank holdings usually send ``amount="1"`` and the balance as
    ``manual_price`` in ``price_currency``.
    """

    symbol: str = Field(min_length=1)
    name: Optional[str] = None
    type: AssetType
    amount: Optional[NumericInput] = None
    manual_price: Optional[NumericInput] = None
    price_currency: Optional[Currency] = None


class AssetUpdate(BaseModel):
    """Partial update of user-editable fields. Unset fields are left alone."""

    amount: Optional[NumericInput] = None
    price: Optional[NumericInput] = None
    symbol: Optional[str] = None
    name: Optional[str] = None


class AssetResponse(BaseModel):
    """A holding with its values in entry and display currency."""

    id: int
    symbol: str
    name: str
    type: AssetType
    amount: Decimal
    price: Decimal
    original_currency: Currency
    coin_id: Optional[str] = None
    last_fetched: Optional[datetime] = None
    is_hidden: bool
    cache_valid: bool
    value: Decimal
    display_value: Decimal
    display_price: Decimal
    formatted_value: str
    formatted_price: str


class RefreshResponse(BaseModel):
    """Outcome of a manual price refresh."""

    skipped: bool
    in_progress: bool
    updated: list[int]
    failed: list[int]
    last_update: Optional[datetime] = None
