"""CoinGecko price source for cryptocurrency prices."""

import logging
import time as time_module
from decimal import Decimal
from typing import Optional

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from integrations.exceptions import (
    PriceSourceAPIError,
    PriceSourceAuthError,
    PriceSourceConnectionError,
    PriceSourceDataError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"

# Max retries for rate-limited requests
_MAX_RETRIES = 3
_BASE_DELAY_SECONDS = 1.0


class CoinSearchHit(BaseModel):
    """One candidate from the /search endpoint."""

    id: str
    symbol: str
    name: Optional[str] = None
    market_cap_rank: Optional[int] = None


class CoinSearchResponse(BaseModel):
    """Payload of the /search endpoint (only the coin list is used)."""

    coins: list[CoinSearchHit] = []


class SimplePrice(BaseModel):
    """Per-id entry of the /simple/price endpoint."""

    usd: Optional[Decimal] = None


_simple_price_adapter = TypeAdapter(dict[str, SimplePrice])


class CoinGeckoClient:
    """Crypto price source using the CoinGecko API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = _MAX_RETRIES,
    ):
        """Initialize with optional API key.

        Args:
            api_key: CoinGecko demo API key. If provided, uses the
                     x-cg-demo-api-key header for higher rate limits.
                     If None, uses the keyless public API.
            base_url: API root, overridable for tests and proxies.
            timeout: Per-request timeout in seconds.
            max_retries: Attempts made when the API answers 429.
        """
        headers: dict[str, str] = {}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )
        self._max_retries = max_retries
        self._resolved_ids: dict[str, str] = {}

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @property
    def provider_name(self) -> str:
        return "coingecko"

    def resolve_coin_id(self, symbol: str) -> Optional[str]:
        """Resolve a ticker symbol to a CoinGecko coin ID.

        Checks ids resolved earlier in this process first, then queries
        the /search endpoint and takes the first coin whose symbol matches
        case-insensitively.

        Returns:
            The coin id, or None when the search has no matching coin.

        Raises:
            PriceSourceError: The search request itself failed.
        """
        upper = symbol.upper()
        if upper in self._resolved_ids:
            return self._resolved_ids[upper]

        response = self._request_with_retry("GET", "/search", params={"query": symbol})
        try:
            data = CoinSearchResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PriceSourceDataError(
                f"CoinGecko: malformed search response for {symbol}: {e}",
                self.provider_name,
            ) from e

        match = next((c for c in data.coins if c.symbol.upper() == upper), None)
        if match is None:
            logger.warning("CoinGecko: no matching coin for symbol %s", symbol)
            return None

        self._resolved_ids[upper] = match.id
        logger.info("CoinGecko: resolved %s -> %s", symbol, match.id)
        return match.id

    def get_simple_prices(self, coin_ids: list[str]) -> dict[str, Decimal]:
        """Fetch current USD prices for one or more coin ids in one request.

        Args:
            coin_ids: CoinGecko ids (e.g. ["bitcoin", "ethereum"]).

        Returns:
            Dict mapping each id that has a USD price to that price.

        Raises:
            PriceSourceError: Network, HTTP or payload failure.
        """
        if not coin_ids:
            return {}

        joined = ",".join(coin_ids)
        logger.info("CoinGecko: fetching prices for %s", joined)
        response = self._request_with_retry(
            "GET",
            "/simple/price",
            params={"ids": joined, "vs_currencies": "usd"},
        )
        try:
            payload = _simple_price_adapter.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            raise PriceSourceDataError(
                f"CoinGecko: malformed price response for {joined}: {e}",
                self.provider_name,
            ) from e

        return {
            coin_id: entry.usd
            for coin_id, entry in payload.items()
            if coin_id in coin_ids and entry.usd is not None
        }

    def _request_with_retry(
        self, method: str, path: str, **kwargs
    ) -> httpx.Response:
        """Make an HTTP request with retry on 429 rate limit responses.

        Translates transport and HTTP failures into the provider
        exception hierarchy.
        """
        for attempt in range(self._max_retries):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.TransportError as e:
                raise PriceSourceConnectionError(
                    f"CoinGecko: request to {path} failed: {e}", self.provider_name
                ) from e

            if response.status_code == 429:
                if attempt + 1 < self._max_retries:
                    delay = _BASE_DELAY_SECONDS * (2 ** attempt)
                    logger.warning(
                        "CoinGecko: rate limited, retrying in %.1fs (attempt %d/%d)",
                        delay, attempt + 1, self._max_retries,
                    )
                    time_module.sleep(delay)
                    continue
                break

            if response.status_code in (401, 403):
                raise PriceSourceAuthError(
                    f"CoinGecko: API key rejected ({response.status_code})",
                    self.provider_name,
                )
            if response.is_error:
                raise PriceSourceAPIError(
                    f"CoinGecko error: {response.status_code}",
                    self.provider_name,
                    status_code=response.status_code,
                )
            return response

        logger.warning("CoinGecko: rate limit persisted after %d attempts", self._max_retries)
        raise PriceSourceAPIError(
            "CoinGecko: rate limit exceeded",
            self.provider_name,
            status_code=429,
        )
