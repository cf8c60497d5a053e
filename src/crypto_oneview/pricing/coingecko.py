"""CoinGecko pricing service, used as the fallback price source."""

import logging
import math
from decimal import Decimal

import httpx

from crypto_oneview.data import get_coingecko_ids

logger = logging.getLogger(__name__)


class CoinGeckoPricing:
    """
    Fetches USD prices from CoinGecko's simple price API.

    CoinGecko identifies coins by slug, so only symbols present in the
    symbol-to-id mapping can be priced.

    Parameters
    ----------
    base_url : str
        CoinGecko API base URL
    client : httpx.AsyncClient | None
        Shared HTTP client. A private client is created if None.
    coin_ids : dict[str, str] | None
        Symbol to CoinGecko id mapping. Uses configuration if None.

    """

    name = "coingecko"

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        client: httpx.AsyncClient | None = None,
        coin_ids: dict[str, str] | None = None,
    ) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self.coin_ids = coin_ids if coin_ids is not None else get_coingecko_ids()

    async def get_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """
        Fetch USD prices for multiple symbols.

        Parameters
        ----------
        symbols : list[str]
            Ticker symbols

        Returns
        -------
        dict[str, Decimal]
            Mapping of symbol to USD price; unmapped or unpriced symbols are absent

        """
        wanted = {symbol: self.coin_ids[symbol] for symbol in symbols if symbol in self.coin_ids}
        if not wanted:
            return {}

        data = await self._fetch_simple_prices(sorted(set(wanted.values())))

        result = {}
        for symbol, coin_id in wanted.items():
            entry = data.get(coin_id)
            usd = entry.get("usd") if isinstance(entry, dict) else None
            if isinstance(usd, int | float) and math.isfinite(usd) and usd > 0:
                result[symbol] = Decimal(str(usd))

        return result

    async def _fetch_simple_prices(self, coin_ids: list[str]) -> dict:
        """
        Fetch prices from CoinGecko API.

        Parameters
        ----------
        coin_ids : list[str]
            CoinGecko coin ids

        Returns
        -------
        dict
            Raw API response keyed by coin id; empty on failure

        """
        try:
            response = await self.client.get(
                f"{self.base_url}/simple/price",
                params={"ids": ",".join(coin_ids), "vs_currencies": "usd"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("CoinGecko request failed: %s", e)
            return {}
        except ValueError as e:
            logger.warning("CoinGecko payload invalid: %s", e)
            return {}

        return data if isinstance(data, dict) else {}

    async def aclose(self) -> None:
        """Close HTTP client if owned."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "CoinGeckoPricing":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        await self.aclose()
