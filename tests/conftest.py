"""Pytest configuration and shared fakes for crypto-oneview tests."""

import asyncio
from decimal import Decimal

import httpx
import pytest

from crypto_oneview.core.models import CredentialRef, DecryptedCredential, PriceQuote, WalletRef

ETH_ADDRESS = "0x" + "ab" * 20


class FakeCredentials:
    """In-memory credential registry."""

    def __init__(self, credentials: dict[str, tuple[str, DecryptedCredential | None]] | None = None) -> None:
        # source_id -> (kind, credential)
        self.credentials = credentials or {}

    def list(self) -> list[CredentialRef]:
        return [CredentialRef(source_id=source_id, kind=kind) for source_id, (kind, _) in self.credentials.items()]

    def get_decrypted(self, source_id: str) -> DecryptedCredential | None:
        return self.credentials[source_id][1]


class FakeWallets:
    """In-memory wallet registry."""

    def __init__(self, wallets: list[WalletRef] | None = None, api_keys: dict[str, str] | None = None) -> None:
        self.wallets = wallets or []
        self.api_keys = api_keys or {}

    def list(self) -> list[WalletRef]:
        return list(self.wallets)

    def get_api_key(self, wallet_id: str) -> str | None:
        return self.api_keys.get(wallet_id)


class FakeOracle:
    """Oracle returning fixed prices and recording every requested symbol set."""

    def __init__(self, prices: dict[str, str] | None = None) -> None:
        self.prices = {symbol: Decimal(price) for symbol, price in (prices or {}).items()}
        self.calls: list[set[str]] = []

    async def get_prices(self, symbols) -> dict[str, PriceQuote]:
        self.calls.append(set(symbols))
        return {
            symbol: PriceQuote(symbol=symbol, price_usd=self.prices[symbol], timestamp=0)
            for symbol in symbols
            if symbol in self.prices
        }


class FakePriceProvider:
    """Pricing service returning fixed prices and recording calls."""

    def __init__(self, prices: dict[str, str] | None = None, error: Exception | None = None) -> None:
        self.name = "fake"
        self.prices = {symbol: Decimal(price) for symbol, price in (prices or {}).items()}
        self.error = error
        self.calls: list[list[str]] = []

    async def get_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        self.calls.append(list(symbols))
        if self.error is not None:
            raise self.error
        return {symbol: self.prices[symbol] for symbol in symbols if symbol in self.prices}


def wallet(wallet_id: str, chain: str, address: str, source_label: str = "ledger_cold", **kwargs) -> WalletRef:
    """Build a wallet reference for tests."""
    return WalletRef(id=wallet_id, chain=chain, address=address, source_label=source_label, **kwargs)


@pytest.fixture
def run():
    """Run a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def mock_client():
    """Factory for an AsyncClient whose requests are answered by ``handler``."""

    def factory(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
