"""Deterministic demo dataset served when DEMO_MODE is on.

The history is a seeded random walk with drift, so the chart looks the
same on every start while still resembling market data.
"""

import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from services.types import AssetType, Currency, HistoryEntry, Holding, utcnow

_MASK32 = 0xFFFFFFFF

DEMO_SEED = 42
DEMO_HISTORY_DAYS = 365
# Daily volatility (~0.8%, typical for a mixed portfolio)
DAILY_VOLATILITY = 0.008


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def mulberry32(seed: int) -> Callable[[], float]:
    """Seeded PRNG returning floats in [0, 1). Deterministic across platforms for a given seed."""
    state = seed & _MASK32

    def next_float() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & _MASK32
        t = _imul(state ^ (state >> 15), 1 | state)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296

    return next_float


def demo_holdings(now: Optional[datetime] = None) -> list[Holding]:
    """Six holdings across all asset types, priced as of ``now``."""
    fetched = now or utcnow()
    rows = [
        (1, "BTC", "Bitcoin", AssetType.CRYPTO, "0.487", "94847.32", "bitcoin"),
        (2, "ETH", "Ethereum", AssetType.CRYPTO, "5.234", "3187.45", "ethereum"),
        (3, "AAPL", "Apple Inc.", AssetType.STOCK, "27", "182.63", None),
        (4, "TSLA", "Tesla Inc.", AssetType.STOCK, "12", "248.92", None),
        (5, "SAV", "Savings Account", AssetType.BANK, "14873.56", "1", None),
        (6, "EMG", "Emergency Fund", AssetType.BANK, "8250.00", "1", None),
    ]
    return [
        Holding(
            id=asset_id,
            symbol=symbol,
            name=name,
            asset_type=asset_type,
            amount=Decimal(amount),
            price=Decimal(price),
            original_currency=Currency.USD,
            coin_id=coin_id,
            last_fetched=fetched,
        )
        for asset_id, symbol, name, asset_type, amount, price, coin_id in rows
    ]


def demo_total() -> Decimal:
    return sum((h.value for h in demo_holdings()), Decimal("0"))


def generate_history(
    days: int,
    start_value: float,
    end_value: float,
    today: date,
    seed: int = DEMO_SEED,
) -> list[HistoryEntry]:
    """Random walk with drift from ``start_value`` towards ``end_value``.

    Normal draws come from a Box-Muller transform; a mean-reverting
    momentum term produces multi-day trends.
    """
    rand = mulberry32(seed)
    daily_drift = (end_value / start_value) ** (1 / days) - 1

    history: list[HistoryEntry] = []
    current = start_value
    momentum = 0.0
    for offset in range(days - 1, -1, -1):
        history.append(
            HistoryEntry(
                date=today - timedelta(days=offset),
                value=Decimal(str(round(current, 2))),
            )
        )

        u1 = rand() or 1e-12
        u2 = rand()
        normal = math.sqrt(-2 * math.log(u1)) * math.cos(2 * math.pi * u2)

        daily_return = daily_drift + DAILY_VOLATILITY * normal + momentum * 0.3
        momentum = momentum * 0.7 + normal * DAILY_VOLATILITY * 0.3
        current = current * (1 + daily_return)

    return history


def demo_history(today: date, days: int = DEMO_HISTORY_DAYS) -> list[HistoryEntry]:
    """A year of history ending today, growing ~20% to the demo total."""
    total = float(demo_total())
    return generate_history(days, total / 1.2, total, today)
