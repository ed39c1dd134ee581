"""Pydantic schemas for portfolio summary, allocation and history endpoints."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from services.types import AssetType, Currency


class GroupBy(str, Enum):
    """Allocation grouping."""

    type = "type"
    symbol = "symbol"


class PortfolioSummaryResponse(BaseModel):
    """Totals in base (USD) and display currency."""

    total_value: Decimal
    display_total: Decimal
    formatted_total: str
    currency: Currency
    exchange_rate: Decimal
    holdings_count: int
    visible_count: int
    # Percent change against the history entry about a month back
    change_percent: Decimal = Decimal("0.00")
    last_update: Optional[datetime] = None
    demo_mode: bool = False


class AllocationItem(BaseModel):
    key: str
    label: str
    type: Optional[AssetType] = None
    value: Decimal
    display_value: Decimal
    percent: Decimal


class AllocationResponse(BaseModel):
    group_by: GroupBy
    total_value: Decimal
    items: list[AllocationItem]


class HistoryPoint(BaseModel):
    date: date
    value: Decimal
    display_value: Decimal


class HistoryResponse(BaseModel):
    currency: Currency
    entries: list[HistoryPoint]


class MigrateResponse(BaseModel):
    success: bool
    message: str
    count: int = 0
