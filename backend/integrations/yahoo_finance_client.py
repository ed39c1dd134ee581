"""Yahoo Finance quote source for stocks and ETFs."""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from integrations.exceptions import (
    PriceSourceAPIError,
    PriceSourceConnectionError,
    PriceSourceDataError,
)
from integrations.market_data_protocol import StockQuote

logger = logging.getLogger(__name__)

DEFAULT_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart"

# Yahoo rejects requests without a browser-like user agent.
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class ChartMeta(BaseModel):
    regularMarketPrice: Optional[Decimal] = None
    currency: Optional[str] = None
    symbol: Optional[str] = None


class ChartResult(BaseModel):
    meta: ChartMeta = ChartMeta()


class ChartBody(BaseModel):
    result: Optional[list[ChartResult]] = None


class ChartResponse(BaseModel):
    """Subset of the /v8/finance/chart payload used for spot quotes."""

    chart: ChartBody = ChartBody()


class YahooFinanceClient:
    """Quote source using the Yahoo Finance chart endpoint.

    Handles equities, ETFs, and other traditional securities. Crypto
    symbols are routed to CoinGecko by the PriceResolver.
    """

    def __init__(self, chart_url: str = DEFAULT_CHART_URL, timeout: float = 15.0):
        self._chart_url = chart_url.rstrip("/")
        self._client = httpx.Client(
            headers={"User-Agent": BROWSER_USER_AGENT},
            timeout=timeout,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @property
    def provider_name(self) -> str:
        return "yahoo"

    def get_chart(self, symbol: str) -> dict[str, Any]:
        """Fetch the raw chart payload for a ticker.

        Args:
            symbol: Ticker symbol (case-insensitive).

        Returns:
            The decoded JSON payload.

        Raises:
            PriceSourceConnectionError: Network failure.
            PriceSourceAPIError: Non-2xx upstream status (429 preserved).
            PriceSourceDataError: Body is not JSON.
        """
        ticker = symbol.upper()
        logger.info("Yahoo Finance: fetching %s", ticker)
        try:
            response = self._client.get(f"{self._chart_url}/{ticker}")
        except httpx.TransportError as e:
            raise PriceSourceConnectionError(
                f"Yahoo Finance: request for {ticker} failed: {e}", self.provider_name
            ) from e

        if response.is_error:
            logger.warning(
                "Yahoo Finance error for %s: %d", ticker, response.status_code
            )
            raise PriceSourceAPIError(
                f"Yahoo Finance error: {response.status_code}",
                self.provider_name,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise PriceSourceDataError(
                f"Yahoo Finance: invalid JSON for {ticker}", self.provider_name
            ) from e

    def get_quote(self, symbol: str) -> StockQuote:
        """Fetch the latest market price and its currency for a ticker.

        A payload without a result yields a quote whose price is None.
        """
        ticker = symbol.upper()
        payload = self.get_chart(ticker)
        try:
            chart = ChartResponse.model_validate(payload)
        except ValidationError as e:
            raise PriceSourceDataError(
                f"Yahoo Finance: malformed chart for {ticker}: {e}", self.provider_name
            ) from e

        if not chart.chart.result:
            return StockQuote(symbol=ticker, price=None, currency=None)

        meta = chart.chart.result[0].meta
        return StockQuote(
            symbol=ticker,
            price=meta.regularMarketPrice,
            currency=meta.currency,
        )
