"""Portfolio service: totals, allocation and the refresh/snapshot loop.

Holds no state of its own beyond the last computed total and holdings
count: holdings live in ``HoldingsState``, the rate and display currency
in ``CurrencyService``, snapshots in ``HistoryService``. This service
wires them together so that any change to the total schedules a history
snapshot, and any change to the number of holdings schedules a price
refresh.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Literal, Optional, Sequence

from services.asset_service import AssetService
from services.currency_service import CurrencyConverter, CurrencyService
from services.history_service import HistoryService
from services.holdings_state import HoldingsState
from services.price_resolver import PriceResolver
from services.pricing_service import PricingService
from services.types import (
    AllocationBucket,
    AssetType,
    Currency,
    HistoryEntry,
    Holding,
    RefreshResult,
)
from utils.debounce import DebouncedTask

logger = logging.getLogger(__name__)

GroupBy = Literal["type", "symbol"]

TYPE_LABELS = {
    AssetType.CRYPTO: "Crypto",
    AssetType.STOCK: "Stocks",
    AssetType.BANK: "Cash",
}

PERCENT_QUANTUM = Decimal("0.01")

# Trend baseline: the history entry this many places from the end
TREND_LOOKBACK = 30


@dataclass
class PortfolioSummary:
    """Current totals for the dashboard header."""

    total_value: Decimal
    display_total: Decimal
    formatted_total: str
    currency: Currency
    exchange_rate: Decimal
    holdings_count: int
    visible_count: int
    last_update: Optional[datetime]
    change_percent: Decimal


def total_value(holdings: Iterable[Holding], converter: CurrencyConverter) -> Decimal:
    """Sum of visible holdings, each converted from its entry currency to USD."""
    return sum(
        (
            converter.convert_to_base(h.value, h.original_currency)
            for h in holdings
            if not h.is_hidden
        ),
        Decimal("0"),
    )


def change_percent(total: Decimal, history: Sequence[HistoryEntry]) -> Decimal:
    """Percent change of ``total`` against the value about a month back.

    The baseline is the entry ``TREND_LOOKBACK`` places from the end, or
    the oldest entry when history is shorter, or ``total`` itself when
    there is none. A non-positive baseline gives 0.
    """
    if len(history) >= TREND_LOOKBACK:
        baseline = history[-TREND_LOOKBACK].value
    elif history:
        baseline = history[0].value
    else:
        baseline = total
    if baseline <= 0:
        return Decimal("0.00")
    return ((total - baseline) / baseline * 100).quantize(
        PERCENT_QUANTUM, rounding=ROUND_HALF_UP
    )


def allocation(
    holdings: Iterable[Holding],
    converter: CurrencyConverter,
    group_by: GroupBy = "type",
    limit: Optional[int] = None,
) -> list[AllocationBucket]:
    """Break the visible holdings down by asset type or symbol.

    Buckets are sorted by USD value, largest first; equal values keep the
    order in which their group first appeared. Percentages are of the
    total of all visible holdings, so they still sum to 100 when ``limit``
    drops the tail.
    """
    groups: dict[str, AllocationBucket] = {}
    for holding in holdings:
        if holding.is_hidden:
            continue
        usd = converter.convert_to_base(holding.value, holding.original_currency)
        if group_by == "symbol":
            key, label, asset_type = holding.symbol, holding.name, holding.asset_type
        else:
            key = holding.asset_type.value
            label, asset_type = TYPE_LABELS[holding.asset_type], holding.asset_type

        bucket = groups.get(key)
        if bucket is None:
            groups[key] = AllocationBucket(
                key=key, label=label, asset_type=asset_type, value=usd, percent=Decimal("0")
            )
        else:
            bucket.value += usd
            if bucket.asset_type is not asset_type:
                bucket.asset_type = None

    total = sum((b.value for b in groups.values()), Decimal("0"))
    buckets = sorted(groups.values(), key=lambda b: b.value, reverse=True)
    for bucket in buckets:
        if total != 0:
            bucket.percent = (bucket.value / total * 100).quantize(
                PERCENT_QUANTUM, rounding=ROUND_HALF_UP
            )
    return buckets[:limit] if limit is not None else buckets


class PortfolioService:
    """Coordinates pricing, currency and history around the holdings state."""

    def __init__(
        self,
        state: HoldingsState,
        assets: AssetService,
        pricing: PricingService,
        currency: CurrencyService,
        history: HistoryService,
        refresh_delay: float = 1.0,
        demo_mode: bool = False,
    ):
        self.state = state
        self.assets = assets
        self.pricing = pricing
        self.currency = currency
        self.history = history
        self.demo_mode = demo_mode
        self._lock = threading.Lock()
        self._last_total: Optional[Decimal] = None
        self._last_update: Optional[datetime] = None
        self._holdings_count = len(state.holdings)
        self._refresh_task = DebouncedTask(
            lambda _: self.refresh_prices(), refresh_delay, name="price-refresh"
        )
        self._unsubscribers = [
            state.subscribe(self._on_holdings_changed),
            currency.subscribe(lambda converter: self._on_total_changed()),
        ]

    @property
    def last_update(self) -> Optional[datetime]:
        return self._last_update

    @property
    def refresh_pending(self) -> bool:
        return self._refresh_task.pending

    def load(self) -> None:
        """Startup sequence: currency, holdings, then history (local, then remote)."""
        self.currency.load()
        self.assets.load()
        self.history.load_local()
        self.history.fetch_remote()
        logger.info("Portfolio: loaded, total %s USD", self.total_value())

    def schedule_initial_refresh(self) -> None:
        """Run one price refresh shortly after startup, off the request path."""
        self._refresh_task.arm(None)

    def refresh_prices(self) -> RefreshResult:
        """Run a pricing cycle and swap the refreshed holdings in.

        The swap only replaces the holdings the cycle priced, so edits made
        while fetches were in flight are not lost.
        """
        result = self.pricing.refresh_all(self.state.holdings)
        if result.skipped:
            return result

        updated_ids = set(result.updated_ids)
        refreshed = {h.id: h for h in result.holdings if h.id in updated_ids}
        if refreshed:
            self.state.update(
                lambda current: [
                    replace(h, **_price_fields(refreshed[h.id])) if h.id in refreshed else h
                    for h in current
                ]
            )
            if not self.demo_mode:
                self.assets.save_prices(list(refreshed.values()))

        self._last_update = result.completed_at
        logger.info(
            "Portfolio: refresh done, %d updated, %d failed",
            len(result.updated_ids),
            len(result.failed_ids),
        )
        return result

    def total_value(self) -> Decimal:
        return total_value(self.state.holdings, self.currency.converter())

    def allocation(
        self, group_by: GroupBy = "type", limit: Optional[int] = None
    ) -> list[AllocationBucket]:
        return allocation(self.state.holdings, self.currency.converter(), group_by, limit)

    def summary(self) -> PortfolioSummary:
        holdings = self.state.holdings
        converter = self.currency.converter()
        total = total_value(holdings, converter)
        return PortfolioSummary(
            total_value=total,
            display_total=converter.convert(total),
            formatted_total=converter.format_value(total),
            currency=converter.currency,
            exchange_rate=converter.rate,
            holdings_count=len(holdings),
            visible_count=sum(1 for h in holdings if not h.is_hidden),
            last_update=self._last_update,
            change_percent=change_percent(total, self.history.history),
        )

    def close(self) -> None:
        """Stop timers and flush a pending snapshot."""
        self._refresh_task.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.history.flush()
        self.history.close()
        self.pricing.resolver.close()

    def _on_holdings_changed(self, holdings: tuple[Holding, ...], version: int) -> None:
        count = len(holdings)
        with self._lock:
            count_changed = count != self._holdings_count
            self._holdings_count = count
        if count_changed:
            # Added or removed holdings: price them without waiting for a request
            self._refresh_task.arm(None)
        self._on_total_changed()

    def _on_total_changed(self) -> None:
        total = self.total_value()
        with self._lock:
            if total == self._last_total:
                return
            self._last_total = total
        self.history.schedule_snapshot(total)


def _price_fields(holding: Holding) -> dict:
    return {
        "price": holding.price,
        "coin_id": holding.coin_id,
        "last_fetched": holding.last_fetched,
    }


def create_portfolio_service(settings, storage, session_factory=None) -> PortfolioService:
    """Build the service graph from application settings.

    In demo mode no session factory is handed to any service, so nothing
    touches the remote store.
    """
    demo = settings.DEMO_MODE
    remote = None if demo else session_factory

    state = HoldingsState()
    resolver = PriceResolver()
    currency = CurrencyService(
        storage,
        default_rate=Decimal(str(settings.DEFAULT_EXCHANGE_RATE)),
        ttl=timedelta(hours=settings.RATE_CACHE_TTL_HOURS),
    )
    assets = AssetService(state, storage, session_factory=remote, resolver=resolver, demo_mode=demo)
    pricing = PricingService(
        resolver=resolver,
        ttl=timedelta(hours=settings.PRICE_CACHE_TTL_HOURS),
        max_workers=settings.PRICE_FETCH_WORKERS,
    )
    history = HistoryService(
        storage,
        session_factory=remote,
        demo_mode=demo,
        sync_delay=settings.HISTORY_SYNC_DELAY_SECONDS,
    )
    return PortfolioService(
        state,
        assets,
        pricing,
        currency,
        history,
        refresh_delay=settings.INITIAL_REFRESH_DELAY_SECONDS,
        demo_mode=demo,
    )
