"""Shared API helpers for route handlers.

The service graph is built once at startup (see ``main.lifespan``) and
handed to routes through ``get_portfolio_service``.
"""

from typing import Optional

from fastapi import HTTPException

from schemas import AssetResponse
from services.currency_service import CurrencyConverter
from services.portfolio_service import PortfolioService
from services.types import Holding, utcnow

_portfolio_service: Optional[PortfolioService] = None


def get_portfolio_service() -> PortfolioService:
    """Get the application's PortfolioService.

    Raises:
        HTTPException: 503 if the service has not been started yet.
    """
    if _portfolio_service is None:
        raise HTTPException(status_code=503, detail="Portfolio service is not ready")
    return _portfolio_service


def set_portfolio_service(service: Optional[PortfolioService]) -> None:
    """Install (or clear) the application's PortfolioService."""
    global _portfolio_service
    _portfolio_service = service


def asset_response(
    holding: Holding, converter: CurrencyConverter, now=None
) -> AssetResponse:
    """Build an AssetResponse with display-currency values for a holding.

    Args:
        holding: The holding to render.
        converter: Current rate and display currency.
        now: Reference time for the cache flag. Defaults to the current time.

    Returns:
        The response model.
    """
    now = now or utcnow()
    return AssetResponse(
        id=holding.id,
        symbol=holding.symbol,
        name=holding.name,
        type=holding.asset_type,
        amount=holding.amount,
        price=holding.price,
        original_currency=holding.original_currency,
        coin_id=holding.coin_id,
        last_fetched=holding.last_fetched,
        is_hidden=holding.is_hidden,
        cache_valid=holding.is_cache_valid(now),
        value=holding.value,
        display_value=converter.convert_from_original(holding.value, holding.original_currency),
        display_price=converter.convert_from_original(holding.price, holding.original_currency),
        formatted_value=converter.format_value_from_original(
            holding.value, holding.original_currency
        ),
        formatted_price=converter.format_price_from_original(
            holding.price, holding.original_currency
        ),
    )
