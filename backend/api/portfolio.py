"""Portfolio summary, allocation and history API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.helpers import get_portfolio_service
from schemas import (
    AllocationItem,
    AllocationResponse,
    GroupBy,
    HistoryPoint,
    HistoryResponse,
    MigrateResponse,
    PortfolioSummaryResponse,
)
from services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


@router.get("", response_model=PortfolioSummaryResponse)
def get_summary(service: PortfolioService = Depends(get_portfolio_service)):
    """Total value of visible holdings in USD and in the display currency."""
    summary = service.summary()
    return PortfolioSummaryResponse(
        total_value=summary.total_value,
        display_total=summary.display_total,
        formatted_total=summary.formatted_total,
        currency=summary.currency,
        exchange_rate=summary.exchange_rate,
        holdings_count=summary.holdings_count,
        visible_count=summary.visible_count,
        change_percent=summary.change_percent,
        last_update=summary.last_update,
        demo_mode=service.demo_mode,
    )


@router.get("/allocation", response_model=AllocationResponse)
def get_allocation(
    group_by: GroupBy = Query(GroupBy.type, description="Group by asset type or symbol"),
    limit: Optional[int] = Query(None, ge=1, description="Keep only the largest N groups"),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Allocation of visible holdings, largest first."""
    converter = service.currency.converter()
    buckets = service.allocation(group_by=group_by.value, limit=limit)
    return AllocationResponse(
        group_by=group_by,
        total_value=service.total_value(),
        items=[
            AllocationItem(
                key=b.key,
                label=b.label,
                type=b.asset_type,
                value=b.value,
                display_value=converter.convert(b.value),
                percent=b.percent,
            )
            for b in buckets
        ],
    )


@router.get("/history", response_model=HistoryResponse)
def get_history(service: PortfolioService = Depends(get_portfolio_service)):
    """Daily snapshots, oldest first, with values in the display currency."""
    converter = service.currency.converter()
    return HistoryResponse(
        currency=converter.currency,
        entries=[
            HistoryPoint(date=e.date, value=e.value, display_value=converter.convert(e.value))
            for e in service.history.history
        ],
    )


@router.post("/history/migrate", response_model=MigrateResponse)
def migrate_history(service: PortfolioService = Depends(get_portfolio_service)):
    """Upload the local snapshot list to the remote store."""
    result = service.history.migrate(service.total_value())
    if not result.success:
        logger.warning("History migration refused: %s", result.message)
        raise HTTPException(status_code=409 if service.demo_mode else 503, detail=result.message)
    return MigrateResponse(success=result.success, message=result.message, count=result.count)
