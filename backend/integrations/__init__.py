"""External API integrations.

This package contains:
- Price source protocols: interfaces the pricing layer depends on
- CoinGecko client: crypto symbol search and batched spot prices
- Yahoo Finance client: stock quotes via the chart endpoint
- Exchange rate client: USD-based conversion rates
"""

from integrations.market_data_protocol import (
    CryptoPriceSource,
    ExchangeRateSource,
    StockQuote,
    StockQuoteSource,
)

__all__ = [
    "CryptoPriceSource",
    "ExchangeRateSource",
    "StockQuote",
    "StockQuoteSource",
]
