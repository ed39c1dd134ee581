"""Mock price and rate sources for testing."""

import threading
from decimal import Decimal
from typing import Optional

from integrations.exceptions import PriceSourceAPIError, PriceSourceConnectionError
from integrations.market_data_protocol import StockQuote


def _failure(provider: str, status_code: Optional[int]):
    if status_code is None:
        return PriceSourceConnectionError(f"{provider} unreachable", provider)
    return PriceSourceAPIError(f"{provider} error: {status_code}", provider, status_code=status_code)


class MockCryptoSource:
    """Mock CoinGecko-like source.

    Args:
        coins: Mapping of uppercase symbol -> coin id returned by search.
        prices: Mapping of coin id -> USD price.
        should_fail: If True, every call raises.
        status_code: HTTP status of the failure (None means a network error).
        fail_batches: If True, only multi-id price requests fail.
    """

    def __init__(
        self,
        coins: Optional[dict[str, str]] = None,
        prices: Optional[dict[str, Decimal]] = None,
        should_fail: bool = False,
        status_code: Optional[int] = None,
        fail_batches: bool = False,
    ):
        self.coins = coins or {}
        self.prices = prices or {}
        self.should_fail = should_fail
        self.status_code = status_code
        self.fail_batches = fail_batches
        self.search_calls: list[str] = []
        self.price_calls: list[list[str]] = []
        self._lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return "mock_crypto"

    def resolve_coin_id(self, symbol: str) -> Optional[str]:
        with self._lock:
            self.search_calls.append(symbol)
        if self.should_fail:
            raise _failure(self.provider_name, self.status_code)
        return self.coins.get(symbol.upper())

    def get_simple_prices(self, coin_ids: list[str]) -> dict[str, Decimal]:
        with self._lock:
            self.price_calls.append(list(coin_ids))
        if self.should_fail or (self.fail_batches and len(coin_ids) > 1):
            raise _failure(self.provider_name, self.status_code)
        return {c: self.prices[c] for c in coin_ids if c in self.prices}


class MockStockSource:
    """Mock Yahoo-like source.

    Args:
        quotes: Mapping of uppercase ticker -> (price, currency).
        should_fail: If True, every call raises.
        status_code: HTTP status of the failure (None means a network error).
    """

    def __init__(
        self,
        quotes: Optional[dict[str, tuple[Decimal, str]]] = None,
        should_fail: bool = False,
        status_code: Optional[int] = None,
    ):
        self.quotes = quotes or {}
        self.should_fail = should_fail
        self.status_code = status_code
        self.calls: list[str] = []
        self._lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return "mock_stock"

    def get_chart(self, symbol: str) -> dict:
        ticker = symbol.upper()
        with self._lock:
            self.calls.append(ticker)
        if self.should_fail:
            raise _failure(self.provider_name, self.status_code)
        if ticker not in self.quotes:
            return {"chart": {"result": None, "error": {"code": "Not Found"}}}
        price, currency = self.quotes[ticker]
        return {
            "chart": {
                "result": [
                    {
                        "meta": {
                            "symbol": ticker,
                            "currency": currency,
                            "regularMarketPrice": float(price),
                        }
                    }
                ],
                "error": None,
            }
        }

    def get_quote(self, symbol: str) -> StockQuote:
        ticker = symbol.upper()
        chart = self.get_chart(ticker)
        result = chart["chart"]["result"]
        if not result:
            return StockQuote(symbol=ticker, price=None, currency=None)
        price, currency = self.quotes[ticker]
        return StockQuote(symbol=ticker, price=Decimal(price), currency=currency)


class MockRateSource:
    """Mock exchange-rate source returning a fixed EUR rate."""

    def __init__(self, rate: Decimal = Decimal("0.90"), should_fail: bool = False):
        self.rate = rate
        self.should_fail = should_fail
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return "mock_rates"

    def get_rate(self, quote_currency: str) -> Decimal:
        self.calls += 1
        if self.should_fail:
            raise PriceSourceConnectionError("rates unreachable", self.provider_name)
        return self.rate


class BlockingCryptoSource(MockCryptoSource):
    """Crypto source whose price calls wait until ``release`` is set.

    Used to hold a refresh cycle open while a second one is attempted.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_simple_prices(self, coin_ids: list[str]) -> dict[str, Decimal]:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().get_simple_prices(coin_ids)


SAMPLE_COINS = {"BTC": "bitcoin", "ETH": "ethereum", "SOL": "solana"}

SAMPLE_CRYPTO_PRICES = {
    "bitcoin": Decimal("50000"),
    "ethereum": Decimal("3000"),
    "solana": Decimal("150"),
}

SAMPLE_STOCK_QUOTES = {
    "AAPL": (Decimal("190.50"), "USD"),
    "SAP": (Decimal("120.00"), "EUR"),
}
