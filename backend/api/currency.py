"""Display currency and exchange rate API endpoints."""

from fastapi import APIRouter, Depends

from api.helpers import get_portfolio_service
from schemas import CurrencyResponse, CurrencySet
from services.currency_service import CurrencyService
from services.portfolio_service import PortfolioService

router = APIRouter(prefix="/api/currency", tags=["currency"])


def _to_response(currency: CurrencyService) -> CurrencyResponse:
    return CurrencyResponse(
        currency=currency.currency,
        symbol=currency.currency.symbol,
        exchange_rate=currency.rate,
        rate_updated_at=currency.rate_fetched_at,
        rate_fresh=currency.is_rate_fresh(),
    )


@router.get("", response_model=CurrencyResponse)
def get_currency(service: PortfolioService = Depends(get_portfolio_service)):
    return _to_response(service.currency)


@router.put("", response_model=CurrencyResponse)
def set_currency(body: CurrencySet, service: PortfolioService = Depends(get_portfolio_service)):
    """Change the display currency. Stored values stay in USD."""
    service.currency.set_currency(body.currency)
    return _to_response(service.currency)


@router.post("/refresh", response_model=CurrencyResponse)
def refresh_rate(service: PortfolioService = Depends(get_portfolio_service)):
    """Re-fetch the exchange rate, ignoring the cache. Keeps the old rate on failure."""
    service.currency.refresh_rate(force=True)
    return _to_response(service.currency)
