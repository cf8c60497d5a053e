"""Price oracle combining stablecoin pinning, caching, and provider fallback."""

import logging
import time
from decimal import Decimal
from typing import Any

from crypto_oneview.core.models import PriceQuote
from crypto_oneview.data import get_cache_ttl, get_stablecoins
from crypto_oneview.pricing.cache import PriceCache

logger = logging.getLogger(__name__)

STABLECOIN_PRICE = Decimal("1")


class PriceOracle:
    """
    Resolves symbols to USD prices with graceful degradation.

    Resolution order per call:
    1. Stablecoins are pinned to 1 USD without a network call
    2. Fresh cache hits are reused
    3. Remaining symbols are sent to the primary provider in one batch
    4. If the primary resolves none of them, the batch goes to the fallback

    Unresolved symbols are absent from the result. This class never raises
    for network or payload failures.

    Parameters
    ----------
    primary : Any
        Pricing service with ``async get_prices(symbols) -> dict[str, Decimal]``
    fallback : Any | None
        Pricing service used when the primary resolves nothing
    cache : PriceCache | None
        Price cache. A new cache with the configured TTL is created if None.
    stablecoins : frozenset[str] | None
        Symbols pinned to 1 USD. Uses configuration if None.

    """

    def __init__(
        self,
        primary: Any,
        fallback: Any | None = None,
        cache: PriceCache | None = None,
        stablecoins: frozenset[str] | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.cache = cache if cache is not None else PriceCache(ttl=get_cache_ttl())
        self.stablecoins = stablecoins if stablecoins is not None else get_stablecoins()

    async def get_prices(self, symbols: list[str] | set[str]) -> dict[str, PriceQuote]:
        """
        Resolve USD prices for a set of symbols.

        Parameters
        ----------
        symbols : list[str] | set[str]
            Ticker symbols

        Returns
        -------
        dict[str, PriceQuote]
            Mapping of symbol to quote for every resolved symbol

        """
        now_ms = int(time.time() * 1000)
        result: dict[str, PriceQuote] = {}
        pending: list[str] = []

        for symbol in dict.fromkeys(symbols):
            if symbol in self.stablecoins:
                result[symbol] = PriceQuote(symbol=symbol, price_usd=STABLECOIN_PRICE, timestamp=now_ms)
                continue

            cached = self.cache.get(symbol)
            if cached is not None:
                result[symbol] = cached
                continue

            pending.append(symbol)

        if not pending:
            return result

        prices = await self._query(self.primary, pending)
        if not prices and self.fallback is not None:
            logger.warning(
                "Primary price source resolved none of %d symbol(s), falling back to %s",
                len(pending),
                getattr(self.fallback, "name", type(self.fallback).__name__),
            )
            prices = await self._query(self.fallback, pending)

        for symbol, price in prices.items():
            if symbol not in pending:
                continue
            quote = PriceQuote(symbol=symbol, price_usd=price, timestamp=now_ms)
            self.cache.set(quote)
            result[symbol] = quote

        return result

    async def _query(self, provider: Any, symbols: list[str]) -> dict[str, Decimal]:
        try:
            return await provider.get_prices(list(symbols))
        except Exception:
            logger.exception("Price provider %s failed", getattr(provider, "name", type(provider).__name__))
            return {}

    async def get_price(self, symbol: str) -> Decimal | None:
        """
        Resolve the USD price of a single symbol.

        Returns
        -------
        Decimal | None
            USD price or None if unresolved

        """
        quote = (await self.get_prices([symbol])).get(symbol)
        return quote.price_usd if quote else None
