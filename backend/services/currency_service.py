"""Currency conversion between entry, base and display currencies.

``CurrencyConverter`` is a pure value object holding one rate (EUR per
USD) and the user's display currency. ``CurrencyService`` owns the
process-wide copy of both, persists them to client storage and refreshes
the rate from the rate source when the cached value is older than the
freshness window.
"""

import logging
import threading
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Literal, Optional

from integrations.exceptions import PriceSourceError
from integrations.market_data_protocol import ExchangeRateSource
from services.client_storage import CURRENCY_KEY, EXCHANGE_RATE_KEY, ClientStorage
from services.types import BASE_CURRENCY, Currency, as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE_RATE = Decimal("0.92")
RATE_CACHE_TTL = timedelta(hours=6)

Precision = Literal["price", "value"]


def price_decimals(amount: Decimal) -> int:
    """Number of decimals to show for a unit price of this magnitude."""
    magnitude = abs(amount)
    if magnitude == 0:
        return 2
    if magnitude < Decimal("0.0001"):
        return 8
    if magnitude < Decimal("0.01"):
        return 6
    if magnitude < 1:
        return 4
    return 2


class CurrencyConverter:
    """Converts amounts between USD (base) and EUR using a single rate."""

    def __init__(self, rate: Decimal, currency: Currency = Currency.USD):
        if rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {rate}")
        self.rate = Decimal(rate)
        self.currency = Currency(currency)

    def __repr__(self) -> str:
        return f"CurrencyConverter(rate={self.rate}, currency={self.currency.value})"

    @property
    def symbol(self) -> str:
        return self.currency.symbol

    def convert(self, amount_base: Decimal) -> Decimal:
        """Base currency (USD) -> display currency."""
        return self.convert_between(amount_base, BASE_CURRENCY, self.currency)

    def convert_to_base(
        self, amount: Decimal, source_currency: Currency = Currency.USD
    ) -> Decimal:
        """Any supported currency -> base currency (USD)."""
        return self.convert_between(amount, source_currency, BASE_CURRENCY)

    def convert_from_base(self, amount_base: Decimal, target_currency: Currency) -> Decimal:
        """Base currency (USD) -> any supported currency."""
        return self.convert_between(amount_base, BASE_CURRENCY, target_currency)

    def convert_from_original(
        self, amount: Decimal, original_currency: Currency = Currency.USD
    ) -> Decimal:
        """Entry currency -> display currency."""
        return self.convert_between(amount, original_currency, self.currency)

    def convert_between(
        self, amount: Decimal, source: Currency, target: Currency
    ) -> Decimal:
        amount = Decimal(amount)
        if source == target:
            return amount
        if source is Currency.USD and target is Currency.EUR:
            return amount * self.rate
        # EUR -> USD
        return amount / self.rate

    def format_money(
        self,
        amount: Decimal,
        currency: Optional[Currency] = None,
        precision: Precision = "value",
    ) -> str:
        """Render an amount already expressed in ``currency``.

        ``precision="price"`` picks decimals from the magnitude (see
        :func:`price_decimals`); ``"value"`` always uses 2.
        """
        currency = currency or self.currency
        amount = Decimal(amount)
        decimals = price_decimals(amount) if precision == "price" else 2
        quantum = Decimal(1).scaleb(-decimals)
        rounded = amount.quantize(quantum, rounding=ROUND_HALF_UP)
        sign = "-" if rounded < 0 else ""
        return f"{sign}{currency.symbol}{abs(rounded):,.{decimals}f}"

    def format_value(self, amount_base: Decimal) -> str:
        return self.format_money(self.convert(amount_base), precision="value")

    def format_price(self, price_base: Decimal) -> str:
        return self.format_money(self.convert(price_base), precision="price")

    def format_value_from_original(
        self, amount: Decimal, original_currency: Currency = Currency.USD
    ) -> str:
        return self.format_money(
            self.convert_from_original(amount, original_currency), precision="value"
        )

    def format_price_from_original(
        self, price: Decimal, original_currency: Currency = Currency.USD
    ) -> str:
        return self.format_money(
            self.convert_from_original(price, original_currency), precision="price"
        )


class CurrencyService:
    """Process-wide exchange rate and display-currency preference."""

    def __init__(
        self,
        storage: ClientStorage,
        rate_source: Optional[ExchangeRateSource] = None,
        default_rate: Decimal = DEFAULT_EXCHANGE_RATE,
        ttl: timedelta = RATE_CACHE_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize with storage and an optional rate source.

        Args:
            storage: Durable client storage for preference and rate cache.
            rate_source: Rate provider. If None, an ExchangeRateClient is
                        created on first use.
            default_rate: Rate used when nothing is cached and the source
                         is unreachable.
            ttl: Freshness window of the cached rate.
            clock: Returns the current aware UTC time.
        """
        self._storage = storage
        self._rate_source = rate_source
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._rate = Decimal(default_rate)
        self._rate_fetched_at: Optional[datetime] = None
        self._currency = Currency.USD
        self._listeners: list[Callable[[CurrencyConverter], None]] = []

    @property
    def rate_source(self) -> ExchangeRateSource:
        """Get the rate source, creating the default client if not provided."""
        if self._rate_source is None:
            from config import settings
            from integrations.exchange_rate_client import ExchangeRateClient

            self._rate_source = ExchangeRateClient(
                latest_url=settings.EXCHANGE_RATE_URL,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return self._rate_source

    @property
    def currency(self) -> Currency:
        return self._currency

    @property
    def rate(self) -> Decimal:
        return self._rate

    @property
    def rate_fetched_at(self) -> Optional[datetime]:
        return self._rate_fetched_at

    def converter(self) -> CurrencyConverter:
        with self._lock:
            return CurrencyConverter(self._rate, self._currency)

    def subscribe(self, listener: Callable[[CurrencyConverter], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def load(self) -> CurrencyConverter:
        """Hydrate preference and rate from storage, then refresh if stale."""
        saved = self._storage.get(CURRENCY_KEY)
        if saved in (Currency.USD.value, Currency.EUR.value):
            self._currency = Currency(saved)

        cached = self._read_cached_rate()
        if cached is not None:
            self._rate, self._rate_fetched_at = cached
            logger.debug("Currency: hydrated cached rate %s", self._rate)

        self.refresh_rate()
        return self.converter()

    def is_rate_fresh(self) -> bool:
        if self._rate_fetched_at is None:
            return False
        return self._clock() - self._rate_fetched_at < self._ttl

    def refresh_rate(self, force: bool = False) -> Decimal:
        """Fetch a new rate unless the cached one is fresh.

        Never raises: on failure the last known (or default) rate stays.
        """
        if not force and self.is_rate_fresh():
            logger.debug("Currency: using cached exchange rate %s", self._rate)
            return self._rate

        try:
            rate = self.rate_source.get_rate(Currency.EUR.value)
        except PriceSourceError:
            logger.warning("Currency: failed to fetch exchange rate, keeping %s", self._rate, exc_info=True)
            return self._rate

        now = self._clock()
        with self._lock:
            self._rate = rate
            self._rate_fetched_at = now
        self._storage.set(
            EXCHANGE_RATE_KEY, {"rate": str(rate), "timestamp": now.isoformat()}
        )
        logger.info("Currency: exchange rate updated to %s", rate)
        self._notify()
        return rate

    def set_currency(self, currency: Currency) -> CurrencyConverter:
        """Persist the display currency preference."""
        currency = Currency(currency)
        with self._lock:
            self._currency = currency
        self._storage.set(CURRENCY_KEY, currency.value)
        logger.info("Currency: display currency set to %s", currency.value)
        self._notify()
        return self.converter()

    def _read_cached_rate(self) -> Optional[tuple[Decimal, datetime]]:
        cached = self._storage.get(EXCHANGE_RATE_KEY)
        if not isinstance(cached, dict):
            return None
        try:
            rate = Decimal(str(cached["rate"]))
            timestamp = as_utc(datetime.fromisoformat(cached["timestamp"]))
        except (KeyError, TypeError, ValueError, ArithmeticError):
            logger.debug("Currency: ignoring invalid cached rate %r", cached)
            return None
        if rate <= 0:
            return None
        return rate, timestamp

    def _notify(self) -> None:
        converter = self.converter()
        for listener in list(self._listeners):
            try:
                listener(converter)
            except Exception:
                logger.warning("Currency listener failed", exc_info=True)
