"""Domain types shared by the pricing, history and portfolio services."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

PRICE_CACHE_TTL = timedelta(hours=6)


class AssetType(str, Enum):
    """Asset class of a holding."""

    CRYPTO = "crypto"
    STOCK = "stock"
    BANK = "bank"


class Currency(str, Enum):
    """Currencies a price can be denominated in. USD is the base."""

    USD = "USD"
    EUR = "EUR"

    @property
    def symbol(self) -> str:
        return "$" if self is Currency.USD else "€"

    @classmethod
    def from_quote(cls, raw: Optional[str]) -> "Currency":
        """Map an upstream currency code to a supported currency.

        Anything other than EUR is treated as USD.
        """
        if raw is not None and raw.upper() == cls.EUR.value:
            return cls.EUR
        return cls.USD


BASE_CURRENCY = Currency.USD


@dataclass(frozen=True)
class Holding:
    """A tracked position. Instances are immutable; edits go through replace()."""

    id: int
    symbol: str
    name: str
    asset_type: AssetType
    amount: Decimal
    price: Decimal
    original_currency: Currency = Currency.USD
    coin_id: Optional[str] = None
    last_fetched: Optional[datetime] = None
    is_hidden: bool = False

    @property
    def value(self) -> Decimal:
        """Position value in ``original_currency``."""
        return self.amount * self.price

    def is_cache_valid(self, now: datetime, ttl: timedelta = PRICE_CACHE_TTL) -> bool:
        """True while ``now`` is inside ``[last_fetched, last_fetched + ttl)``."""
        if self.last_fetched is None:
            return False
        return now - as_utc(self.last_fetched) < ttl

    def with_price(
        self, price: Decimal, fetched_at: datetime, coin_id: Optional[str] = None
    ) -> "Holding":
        """Return a copy carrying a freshly fetched price."""
        return replace(
            self,
            price=price,
            coin_id=coin_id if coin_id is not None else self.coin_id,
            last_fetched=fetched_at,
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Total portfolio value (USD) for one calendar day."""

    date: date
    value: Decimal


@dataclass(frozen=True)
class PriceQuote:
    """Result of resolving a symbol against a price source.

    A price of zero means "no update": the caller keeps its prior value.
    """

    price: Decimal
    original_currency: Currency = Currency.USD
    coin_id: Optional[str] = None

    @property
    def has_price(self) -> bool:
        return self.price > 0


@dataclass
class RefreshResult:
    """Outcome of one pricing cycle."""

    holdings: list[Holding]
    updated_ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)
    skipped: bool = False
    in_progress: bool = False
    completed_at: Optional[datetime] = None


@dataclass
class SyncResult:
    """Outcome of a bulk history upload."""

    success: bool
    message: str
    count: int = 0


@dataclass
class AllocationBucket:
    """One slice of the allocation breakdown (values in USD)."""

    key: str
    label: str
    asset_type: Optional[AssetType]
    value: Decimal
    percent: Decimal


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
