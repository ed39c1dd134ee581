"""Pydantic schemas for API request/response validation."""

from schemas.asset import AssetCreate, AssetResponse, AssetUpdate, RefreshResponse
from schemas.currency import CurrencyResponse, CurrencySet
from schemas.portfolio import (
    AllocationItem,
    AllocationResponse,
    GroupBy,
    HistoryPoint,
    HistoryResponse,
    MigrateResponse,
    PortfolioSummaryResponse,
)

__all__ = [
    "AllocationItem",
    "AllocationResponse",
    "AssetCreate",
    "AssetResponse",
    "AssetUpdate",
    "CurrencyResponse",
    "CurrencySet",
    "GroupBy",
    "HistoryPoint",
    "HistoryResponse",
    "MigrateResponse",
    "PortfolioSummaryResponse",
    "RefreshResponse",
]
