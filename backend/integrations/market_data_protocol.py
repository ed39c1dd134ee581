"""Price and rate source protocol definitions.

Defines the interfaces the pricing layer depends on, so tests can swap
in-memory sources for the CoinGecko, Yahoo Finance and exchange-rate
clients.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol


@dataclass
class StockQuote:
    """Latest quote for a ticker as reported by the chart endpoint."""

    symbol: str
    price: Optional[Decimal]
    currency: Optional[str]  # As reported upstream, e.g. "USD", "EUR", "GBp"


class CryptoPriceSource(Protocol):
    """Symbol search plus batched spot prices in USD."""

    @property
    def provider_name(self) -> str:
        ...

    def resolve_coin_id(self, symbol: str) -> Optional[str]:
        """Return the canonical coin id for a symbol, or None if unknown."""
        ...

    def get_simple_prices(self, coin_ids: list[str]) -> dict[str, Decimal]:
        """Fetch USD prices for the given ids in one request.

        Ids missing from the upstream response are absent from the result.
        """
        ...


class StockQuoteSource(Protocol):
    """Per-ticker quote lookups."""

    @property
    def provider_name(self) -> str:
        ...

    def get_chart(self, symbol: str) -> dict[str, Any]:
        """Return the raw chart payload for a ticker."""
        ...

    def get_quote(self, symbol: str) -> StockQuote:
        """Return the parsed latest quote for a ticker."""
        ...


class ExchangeRateSource(Protocol):
    """Latest exchange rates keyed by quote currency."""

    @property
    def provider_name(self) -> str:
        ...

    def get_rate(self, quote_currency: str) -> Decimal:
        """Return quote-currency units per one base-currency unit."""
        ...
