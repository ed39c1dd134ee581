"""Price proxy endpoints for CoinGecko and Yahoo Finance.

These forward lookups to the upstream sources so a browser client never
calls them directly. Upstream status codes are mapped onto the response
so the caller can tell a rate limit from a missing symbol.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.helpers import get_portfolio_service
from integrations.exceptions import PriceSourceAPIError, PriceSourceError
from services.portfolio_service import PortfolioService
from services.price_resolver import PriceResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["prices"])


def get_price_resolver(
    service: PortfolioService = Depends(get_portfolio_service),
) -> PriceResolver:
    return service.pricing.resolver


@router.get("/crypto-price")
def get_crypto_price(
    symbol: Optional[str] = Query(None, description="Ticker to resolve, e.g. BTC"),
    coin_ids: Optional[str] = Query(None, alias="coinIds", description="Comma-separated coin ids"),
    resolver: PriceResolver = Depends(get_price_resolver),
) -> dict[str, Any]:
    """USD prices keyed by coin id: ``{coin_id: {"price": ..., "coinId": ...}}``.

    ``coinIds`` wins over ``symbol``. Ids the upstream has no price for are
    left out of the result.
    """
    if not symbol and not coin_ids:
        raise HTTPException(status_code=400, detail="Symbol or coinIds is required")

    try:
        if not coin_ids:
            coin_ids = resolver.crypto_source.resolve_coin_id(symbol)
        if not coin_ids:
            raise HTTPException(status_code=404, detail="Coin ID not found")

        requested = [c.strip() for c in coin_ids.split(",") if c.strip()]
        prices = resolver.crypto_source.get_simple_prices(requested)
    except PriceSourceAPIError as e:
        if e.rate_limited:
            raise HTTPException(status_code=429, detail="Rate limit exceeded")
        logger.warning("Crypto price proxy error: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    except PriceSourceError as e:
        logger.warning("Crypto price proxy error: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    return {
        coin_id: {"price": prices[coin_id], "coinId": coin_id}
        for coin_id in requested
        if coin_id in prices
    }


@router.get("/stock-price")
def get_stock_price(
    symbol: Optional[str] = Query(None, description="Ticker, e.g. AAPL"),
    resolver: PriceResolver = Depends(get_price_resolver),
) -> dict[str, Any]:
    """Raw Yahoo Finance chart payload for a ticker."""
    if not symbol:
        raise HTTPException(status_code=400, detail="Symbol is required")
    ticker = symbol.upper()
    try:
        data = resolver.stock_source.get_chart(ticker)
    except PriceSourceAPIError as e:
        status = e.status_code or 502
        raise HTTPException(status_code=status, detail=f"Yahoo Finance error: {status}")
    except PriceSourceError as e:
        logger.warning("Stock price proxy error for %s: %s", ticker, e)
        raise HTTPException(status_code=502, detail=str(e))

    result = (data.get("chart") or {}).get("result") if isinstance(data, dict) else None
    if not result:
        logger.warning("No chart data found for %s", ticker)
        raise HTTPException(status_code=404, detail="No data found")
    return data
