"""TTL-based caching for resolved USD prices."""

import time

from crypto_oneview.core.models import PriceQuote


class CacheEntry:
    """
    Cache entry with TTL support.

    Parameters
    ----------
    quote : PriceQuote
        Cached price
    ttl : int
        Time-to-live in seconds
    created_at : float | None
        Creation timestamp. Uses current time if None.

    """

    def __init__(self, quote: PriceQuote, ttl: int, created_at: float | None = None) -> None:
        self.quote = quote
        self.ttl = ttl
        self.created_at = created_at if created_at is not None else time.time()

    def is_expired(self) -> bool:
        """
        Check if cache entry has expired.

        Returns
        -------
        bool
            True if expired, False otherwise

        """
        return (time.time() - self.created_at) >= self.ttl


class PriceCache:
    """
    In-memory price cache keyed by symbol.

    Only resolved prices are stored; a miss means "ask the network again".

    Parameters
    ----------
    ttl : int
        Time-to-live in seconds for cache entries

    """

    def __init__(self, ttl: int = 60) -> None:
        self.ttl = ttl
        self._cache: dict[str, CacheEntry] = {}

    def get(self, symbol: str) -> PriceQuote | None:
        """
        Get cached quote if it exists and hasn't expired.

        Parameters
        ----------
        symbol : str
            Ticker symbol

        Returns
        -------
        PriceQuote | None
            Cached quote if found and valid, None otherwise

        """
        entry = self._cache.get(symbol)

        if entry is None:
            return None

        if entry.is_expired():
            del self._cache[symbol]
            return None

        return entry.quote

    def set(self, quote: PriceQuote, created_at: float | None = None) -> None:
        """Store a resolved quote under its symbol."""
        self._cache[quote.symbol] = CacheEntry(quote, self.ttl, created_at)

    def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
