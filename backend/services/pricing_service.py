"""Pricing service: refreshes stale holding prices in one cycle.

A cycle takes a snapshot of the holdings, fans out price fetches on a
thread pool, waits for every fetch to settle, and returns the merged list
in a single step. Crypto holdings with a known coin id share one batched
CoinGecko request; everything else is fetched individually.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Optional

from services.exceptions import SymbolNotFoundError
from services.price_resolver import PriceResolver
from services.types import (
    PRICE_CACHE_TTL,
    AssetType,
    Holding,
    PriceQuote,
    RefreshResult,
    utcnow,
)

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class PricingService:
    """Time-to-live price cache over a collection of holdings."""

    def __init__(
        self,
        resolver: Optional[PriceResolver] = None,
        ttl: timedelta = PRICE_CACHE_TTL,
        max_workers: int = 8,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._resolver = resolver
        self._ttl = ttl
        self._max_workers = max_workers
        self._clock = clock
        # Guards the IDLE -> REFRESHING transition; never waited on.
        self._cycle_lock = threading.Lock()
        self._state = RefreshState.IDLE

    @property
    def resolver(self) -> PriceResolver:
        """Get the price resolver, creating the default one if not provided."""
        if self._resolver is None:
            self._resolver = PriceResolver()
        return self._resolver

    @property
    def state(self) -> RefreshState:
        return self._state

    def is_refresh_in_progress(self) -> bool:
        return self._state is RefreshState.REFRESHING

    def needs_refresh(self, holding: Holding, now: datetime) -> bool:
        """Bank holdings never refresh; others refresh once the TTL lapses."""
        if holding.asset_type is AssetType.BANK:
            return False
        return not holding.is_cache_valid(now, self._ttl)

    def refresh_all(
        self, holdings: Iterable[Holding], now: Optional[datetime] = None
    ) -> RefreshResult:
        """Refresh every stale holding and return the merged collection.

        The returned list has the same length and order as the input; only
        ``price``, ``coin_id`` and ``last_fetched`` change, and only for
        holdings whose fetch succeeded.

        A call made while another cycle is running returns the input
        unchanged with ``in_progress=True``.
        """
        snapshot = list(holdings)
        now = now or self._clock()

        stale = [h for h in snapshot if self.needs_refresh(h, now)]
        if not stale:
            logger.debug("Pricing: all %d holdings cached, skipping cycle", len(snapshot))
            return RefreshResult(holdings=snapshot, skipped=True)

        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Pricing: refresh already in progress, ignoring request")
            return RefreshResult(holdings=snapshot, skipped=True, in_progress=True)

        self._state = RefreshState.REFRESHING
        logger.info("Pricing: refreshing %d of %d holdings", len(stale), len(snapshot))
        try:
            quotes = self._fetch_quotes(stale)
            return self._merge(snapshot, stale, quotes, now)
        finally:
            self._state = RefreshState.IDLE
            self._cycle_lock.release()

    def _fetch_quotes(self, stale: list[Holding]) -> dict[int, PriceQuote]:
        """Fetch quotes for the stale holdings, keyed by holding id."""
        batched = [h for h in stale if h.asset_type is AssetType.CRYPTO and h.coin_id]
        batched_ids = {h.id for h in batched}
        individual = [h for h in stale if h.id not in batched_ids]
        coin_ids = list(dict.fromkeys(h.coin_id for h in batched))

        quotes: dict[int, PriceQuote] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            batch_future: Optional[Future] = None
            if coin_ids:
                batch_future = pool.submit(self.resolver.fetch_batch, coin_ids)
            futures: dict[int, Future] = {
                h.id: pool.submit(self._fetch_one, h) for h in individual
            }

            if batch_future is not None:
                batch_prices: dict[str, Decimal] = batch_future.result()
                for holding in batched:
                    price = batch_prices.get(holding.coin_id)
                    if price is not None and price > 0:
                        quotes[holding.id] = PriceQuote(price=price, coin_id=holding.coin_id)
                    else:
                        # Missing from the batch: fall back to a single lookup
                        futures[holding.id] = pool.submit(self._fetch_one, holding)

            for holding_id, future in futures.items():
                quote = future.result()
                if quote is not None:
                    quotes[holding_id] = quote

        return quotes

    def _fetch_one(self, holding: Holding) -> Optional[PriceQuote]:
        """Resolve a single holding. Never raises; None means keep the old price."""
        try:
            quote = self.resolver.resolve(
                holding.symbol,
                holding.asset_type,
                known_id=holding.coin_id,
                entry_currency=holding.original_currency,
            )
        except SymbolNotFoundError:
            logger.warning("Pricing: %s no longer resolves, keeping last price", holding.symbol)
            return None
        except Exception:
            logger.warning("Pricing: failed to fetch %s", holding.symbol, exc_info=True)
            return None
        return quote if quote.has_price else None

    def _merge(
        self,
        snapshot: list[Holding],
        stale: list[Holding],
        quotes: dict[int, PriceQuote],
        fetched_at: datetime,
    ) -> RefreshResult:
        merged: list[Holding] = []
        updated_ids: list[int] = []
        for holding in snapshot:
            quote = quotes.get(holding.id)
            if quote is None:
                merged.append(holding)
                continue
            merged.append(holding.with_price(quote.price, fetched_at, coin_id=quote.coin_id))
            updated_ids.append(holding.id)

        failed_ids = [h.id for h in stale if h.id not in quotes]
        if failed_ids:
            logger.info("Pricing: %d holdings kept stale prices", len(failed_ids))

        return RefreshResult(
            holdings=merged,
            updated_ids=updated_ids,
            failed_ids=failed_ids,
            completed_at=self._clock(),
        )
