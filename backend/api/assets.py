"""Holdings API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.helpers import asset_response, get_portfolio_service
from schemas import AssetCreate, AssetResponse, AssetUpdate, RefreshResponse
from services.exceptions import (
    AssetCreationError,
    AssetNotFoundError,
    InvalidInputError,
    RemoteStoreError,
)
from services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.get("", response_model=list[AssetResponse])
def list_assets(service: PortfolioService = Depends(get_portfolio_service)):
    """List all holdings, hidden ones included, in insertion order."""
    converter = service.currency.converter()
    return [asset_response(h, converter) for h in service.assets.list_assets()]


@router.post("", response_model=AssetResponse, status_code=201)
def create_asset(body: AssetCreate, service: PortfolioService = Depends(get_portfolio_service)):
    """Add a holding. The price is looked up before anything is stored."""
    try:
        holding = service.assets.add_asset(body)
    except (AssetCreationError, InvalidInputError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RemoteStoreError as e:
        logger.warning("Failed to add asset %s: %s", body.symbol, e)
        raise HTTPException(status_code=503, detail="Could not save the asset")
    return asset_response(holding, service.currency.converter())


@router.post("/refresh", response_model=RefreshResponse)
def refresh_prices(service: PortfolioService = Depends(get_portfolio_service)):
    """Refresh stale prices now. A no-op while another refresh is running."""
    result = service.refresh_prices()
    return RefreshResponse(
        skipped=result.skipped,
        in_progress=result.in_progress,
        updated=result.updated_ids,
        failed=result.failed_ids,
        last_update=service.last_update,
    )


@router.get("/{asset_id}", response_model=AssetResponse)
def get_asset(asset_id: int, service: PortfolioService = Depends(get_portfolio_service)):
    try:
        holding = service.assets.get_asset(asset_id)
    except AssetNotFoundError:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset_response(holding, service.currency.converter())


@router.patch("/{asset_id}", response_model=AssetResponse)
def update_asset(
    asset_id: int,
    body: AssetUpdate,
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Edit amount, price, symbol or name. Nothing changes if any field is invalid."""
    try:
        holding = service.assets.update_asset(asset_id, body)
    except AssetNotFoundError:
        raise HTTPException(status_code=404, detail="Asset not found")
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RemoteStoreError as e:
        logger.warning("Failed to update asset %s: %s", asset_id, e)
        raise HTTPException(status_code=503, detail="Could not save the change")
    return asset_response(holding, service.currency.converter())


@router.post("/{asset_id}/toggle-hidden", response_model=AssetResponse)
def toggle_hidden(asset_id: int, service: PortfolioService = Depends(get_portfolio_service)):
    """Hide a holding from totals and allocation, or show it again."""
    try:
        holding = service.assets.toggle_hidden(asset_id)
    except AssetNotFoundError:
        raise HTTPException(status_code=404, detail="Asset not found")
    except RemoteStoreError as e:
        logger.warning("Failed to toggle asset %s: %s", asset_id, e)
        raise HTTPException(status_code=503, detail="Could not save the change")
    return asset_response(holding, service.currency.converter())


@router.delete("/{asset_id}", status_code=204)
def delete_asset(asset_id: int, service: PortfolioService = Depends(get_portfolio_service)):
    """Delete a holding permanently."""
    try:
        service.assets.delete_asset(asset_id)
    except AssetNotFoundError:
        raise HTTPException(status_code=404, detail="Asset not found")
    except RemoteStoreError as e:
        logger.warning("Failed to delete asset %s: %s", asset_id, e)
        raise HTTPException(status_code=503, detail="Could not delete the asset")
