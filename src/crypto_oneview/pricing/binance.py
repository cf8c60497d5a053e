"""Binance ticker pricing service for symbol USD prices."""

import logging
from decimal import Decimal, InvalidOperation

import httpx
from pydantic import BaseModel, TypeAdapter

from crypto_oneview.data import get_quote_preference

logger = logging.getLogger(__name__)


class _Ticker(BaseModel):
    symbol: str
    price: str


_TICKERS = TypeAdapter(list[_Ticker])


class BinanceTickerPricing:
    """
    Fetches USD prices from Binance's all-pairs ticker endpoint.

    One request returns every trading pair; each symbol is priced against the
    first stable quote currency (e.g., BTCUSDT, then BTCUSDC) with a positive
    price.

    Parameters
    ----------
    base_url : str
        Binance API base URL
    client : httpx.AsyncClient | None
        Shared HTTP client. A private client is created if None.
    quote_preference : list[str] | None
        Quote currencies to probe in order. Uses configuration if None.

    """

    name = "binance"

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        client: httpx.AsyncClient | None = None,
        quote_preference: list[str] | None = None,
    ) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self.quote_preference = quote_preference or get_quote_preference()

    async def get_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """
        Fetch USD prices for multiple symbols.

        Parameters
        ----------
        symbols : list[str]
            Ticker symbols (e.g., ['BTC', 'ETH'])

        Returns
        -------
        dict[str, Decimal]
            Mapping of symbol to USD price; unresolved symbols are absent

        """
        if not symbols:
            return {}

        tickers = await self._fetch_tickers()
        if not tickers:
            return {}

        result = {}
        for symbol in symbols:
            price = self._probe(symbol, tickers)
            if price is not None:
                result[symbol] = price

        return result

    def _probe(self, symbol: str, tickers: dict[str, Decimal]) -> Decimal | None:
        for quote in self.quote_preference:
            price = tickers.get(f"{symbol}{quote}")
            if price is not None and price > 0:
                return price
        return None

    async def _fetch_tickers(self) -> dict[str, Decimal]:
        """
        Fetch all ticker prices.

        Returns
        -------
        dict[str, Decimal]
            Mapping of pair (e.g., 'BTCUSDT') to last price; empty on failure

        """
        try:
            response = await self.client.get(f"{self.base_url}/api/v3/ticker/price")
            response.raise_for_status()
            tickers = _TICKERS.validate_python(response.json())
        except httpx.HTTPError as e:
            logger.warning("Binance ticker request failed: %s", e)
            return {}
        except ValueError as e:
            logger.warning("Binance ticker payload invalid: %s", e)
            return {}

        prices = {}
        for ticker in tickers:
            try:
                price = Decimal(ticker.price)
            except InvalidOperation:
                continue
            if price.is_finite():
                prices[ticker.symbol] = price
        return prices

    async def aclose(self) -> None:
        """Close HTTP client if owned."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "BinanceTickerPricing":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        await self.aclose()
