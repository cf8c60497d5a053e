"""Pricing services for symbol USD valuation."""

from crypto_oneview.pricing.binance import BinanceTickerPricing
from crypto_oneview.pricing.cache import CacheEntry, PriceCache
from crypto_oneview.pricing.coingecko import CoinGeckoPricing
from crypto_oneview.pricing.oracle import PriceOracle

__all__ = [
    "BinanceTickerPricing",
    "CacheEntry",
    "CoinGeckoPricing",
    "PriceCache",
    "PriceOracle",
]
