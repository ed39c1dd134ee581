"""Price resolver: routes a symbol to the right price source.

Crypto symbols go to CoinGecko (resolved to a coin id first), stocks to
Yahoo Finance, and bank/cash holdings never touch the network.
"""

import logging
from decimal import Decimal
from typing import Optional

from integrations.exceptions import PriceSourceAPIError, PriceSourceError
from integrations.market_data_protocol import CryptoPriceSource, StockQuoteSource
from services.exceptions import SymbolNotFoundError
from services.types import AssetType, Currency, PriceQuote

logger = logging.getLogger(__name__)

NO_UPDATE = Decimal("0")


class PriceResolver:
    """Resolves current unit prices for holdings.

    Resolution failures (unknown symbol) raise ``SymbolNotFoundError``.
    Transient failures (network, non-2xx, rate limits) never raise: they
    produce a quote with a zero price so callers keep their prior value.
    """

    def __init__(
        self,
        crypto_source: Optional[CryptoPriceSource] = None,
        stock_source: Optional[StockQuoteSource] = None,
    ):
        """Initialize with optional sources for dependency injection.

        Args:
            crypto_source: Crypto price source. If None, a CoinGeckoClient
                          is created on first use.
            stock_source: Stock quote source. If None, a YahooFinanceClient
                         is created on first use.
        """
        self._crypto_source = crypto_source
        self._stock_source = stock_source

    @property
    def crypto_source(self) -> CryptoPriceSource:
        """Get the crypto price source, creating if not provided."""
        if self._crypto_source is None:
            from config import settings
            from integrations.coingecko_client import CoinGeckoClient

            self._crypto_source = CoinGeckoClient(
                api_key=settings.COINGECKO_API_KEY or None,
                base_url=settings.COINGECKO_BASE_URL,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return self._crypto_source

    @property
    def stock_source(self) -> StockQuoteSource:
        """Get the stock quote source, creating if not provided."""
        if self._stock_source is None:
            from config import settings
            from integrations.yahoo_finance_client import YahooFinanceClient

            self._stock_source = YahooFinanceClient(
                chart_url=settings.YAHOO_CHART_URL,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return self._stock_source

    def close(self) -> None:
        """Close any HTTP clients this resolver created or was given."""
        for source in (self._crypto_source, self._stock_source):
            close = getattr(source, "close", None)
            if close is not None:
                close()

    def resolve(
        self,
        symbol: str,
        asset_type: AssetType,
        known_id: Optional[str] = None,
        entry_currency: Optional[Currency] = None,
    ) -> PriceQuote:
        """Look up the current unit price for a symbol.

        Args:
            symbol: User-facing ticker (case-insensitive).
            asset_type: Which source to consult.
            known_id: Previously resolved coin id (crypto only); skips the
                     symbol search.
            entry_currency: Currency for bank holdings (defaults to USD).

        Returns:
            A PriceQuote. ``quote.has_price`` is False after a transient
            failure.

        Raises:
            SymbolNotFoundError: The source has no such instrument.
        """
        asset_type = AssetType(asset_type)
        if asset_type is AssetType.CRYPTO:
            return self._resolve_crypto(symbol, known_id)
        if asset_type is AssetType.STOCK:
            return self._resolve_stock(symbol)
        return PriceQuote(
            price=Decimal("1"),
            original_currency=Currency(entry_currency or Currency.USD),
        )

    def fetch_batch(self, coin_ids: list[str]) -> dict[str, Decimal]:
        """Fetch USD prices for many coin ids in one request.

        Returns an empty dict on any transient failure.
        """
        if not coin_ids:
            return {}
        try:
            return self.crypto_source.get_simple_prices(coin_ids)
        except PriceSourceError as e:
            self._log_transient("batch " + ",".join(coin_ids), e)
            return {}

    def _resolve_crypto(self, symbol: str, known_id: Optional[str]) -> PriceQuote:
        coin_id = known_id
        try:
            if not coin_id:
                coin_id = self.crypto_source.resolve_coin_id(symbol)
                if coin_id is None:
                    raise SymbolNotFoundError(symbol, AssetType.CRYPTO.value)
            prices = self.crypto_source.get_simple_prices([coin_id])
        except PriceSourceError as e:
            self._log_transient(symbol, e)
            return PriceQuote(price=NO_UPDATE, original_currency=Currency.USD, coin_id=coin_id)

        return PriceQuote(
            price=prices.get(coin_id, NO_UPDATE),
            original_currency=Currency.USD,
            coin_id=coin_id,
        )

    def _resolve_stock(self, symbol: str) -> PriceQuote:
        ticker = symbol.upper()
        try:
            quote = self.stock_source.get_quote(ticker)
        except PriceSourceAPIError as e:
            if e.status_code == 404:
                raise SymbolNotFoundError(ticker, AssetType.STOCK.value) from e
            self._log_transient(ticker, e)
            return PriceQuote(price=NO_UPDATE)
        except PriceSourceError as e:
            self._log_transient(ticker, e)
            return PriceQuote(price=NO_UPDATE)

        if quote.price is None or quote.price <= 0:
            raise SymbolNotFoundError(ticker, AssetType.STOCK.value)

        return PriceQuote(
            price=quote.price,
            original_currency=Currency.from_quote(quote.currency),
        )

    @staticmethod
    def _log_transient(label: str, error: PriceSourceError) -> None:
        if isinstance(error, PriceSourceAPIError) and error.rate_limited:
            logger.warning("Rate limit hit for %s, skipping update", label)
        else:
            logger.warning("Failed to fetch %s: %s", label, error, exc_info=True)
