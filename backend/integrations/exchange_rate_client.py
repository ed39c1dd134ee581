"""Exchange rate source backed by the exchangerate-api "latest" endpoint."""

import logging
from decimal import Decimal

import httpx
from pydantic import BaseModel, ValidationError

from integrations.exceptions import (
    PriceSourceAPIError,
    PriceSourceConnectionError,
    PriceSourceDataError,
)

logger = logging.getLogger(__name__)

DEFAULT_LATEST_URL = "https://api.exchangerate-api.com/v4/latest/USD"


class LatestRatesResponse(BaseModel):
    """Payload of the latest-rates endpoint."""

    base: str = "USD"
    rates: dict[str, Decimal] = {}


class ExchangeRateClient:
    """Fetches quote-per-USD rates."""

    def __init__(self, latest_url: str = DEFAULT_LATEST_URL, timeout: float = 15.0):
        self._latest_url = latest_url
        self._client = httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @property
    def provider_name(self) -> str:
        return "exchangerate-api"

    def get_rate(self, quote_currency: str) -> Decimal:
        """Return units of ``quote_currency`` per one USD.

        Raises:
            PriceSourceError: Network, HTTP or payload failure, or the quote
                currency is missing from the response.
        """
        try:
            response = self._client.get(self._latest_url)
        except httpx.TransportError as e:
            raise PriceSourceConnectionError(
                f"Exchange rates: request failed: {e}", self.provider_name
            ) from e

        if response.is_error:
            raise PriceSourceAPIError(
                f"Exchange rates error: {response.status_code}",
                self.provider_name,
                status_code=response.status_code,
            )

        try:
            data = LatestRatesResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PriceSourceDataError(
                f"Exchange rates: malformed response: {e}", self.provider_name
            ) from e

        rate = data.rates.get(quote_currency.upper())
        if rate is None or rate <= 0:
            raise PriceSourceDataError(
                f"Exchange rates: no usable {quote_currency} rate", self.provider_name
            )
        logger.info("Exchange rates: 1 %s = %s %s", data.base, rate, quote_currency)
        return rate
