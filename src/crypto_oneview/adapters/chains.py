"""On-chain balance adapters for Bitcoin, Ethereum, and Cardano."""

import re
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from crypto_oneview.adapters.base import (
    AdapterError,
    BaseBalanceAdapter,
    PayloadDecodeError,
    UnsupportedSourceError,
    to_decimal,
)
from crypto_oneview.core.models import BalanceRecord
from crypto_oneview.core.registry import AdapterRegistry
from crypto_oneview.data import get_chain_config

SATOSHIS_PER_BTC = Decimal(10**8)
WEI_PER_ETH = Decimal(10**18)
LOVELACE_PER_ADA = Decimal(10**6)

_ETH_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_EXTENDED_KEY = re.compile(r"^[xyz]pub")


class _BlockchainInfoBalance(BaseModel):
    final_balance: int = 0
    n_tx: int = 0


class _BlockchainInfoWallet(BaseModel):
    final_balance: int = 0


class _MultiAddress(BaseModel):
    wallet: _BlockchainInfoWallet


class _EtherscanResponse(BaseModel):
    status: str
    message: str = ""
    result: Any = None


class _KoiosAddressInfo(BaseModel):
    balance: Any = "0"


class _KoiosAccountInfo(BaseModel):
    total_balance: Any = "0"


class ChainAdapter(BaseBalanceAdapter):
    """Single-asset adapter for a chain's native coin."""

    @property
    def symbol(self) -> str:
        return get_chain_config(self.provider)["symbol"]

    def _single(self, amount: Decimal) -> list[BalanceRecord]:
        return self._positive_records([(self.symbol, amount)])


@AdapterRegistry.register
class BitcoinAdapter(ChainAdapter):
    """
    Bitcoin balances from blockchain.info.

    Accepts a single address or an ``xpub``. Extended keys are resolved with
    the ``multiaddr`` endpoint, which derives legacy (BIP44) addresses
    server-side.

    """

    provider = "BTC"
    base_url = "https://blockchain.info"

    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[BalanceRecord]:
        address: str = credential_or_address.strip()
        if _EXTENDED_KEY.match(address):
            return await self._fetch_extended_key(address)

        data = await self._request_json("GET", f"{self.base_url}/balance", params={"active": address})
        if not isinstance(data, dict) or address not in data:
            msg = "BTC address lookup failed"
            raise AdapterError(msg)
        info = self._decode(_BlockchainInfoBalance, data[address])
        return self._single(Decimal(info.final_balance) / SATOSHIS_PER_BTC)

    async def _fetch_extended_key(self, extended_key: str) -> list[BalanceRecord]:
        if not extended_key.startswith("xpub"):
            msg = "Only xpub extended keys are supported; use an xpub or a single address"
            raise UnsupportedSourceError(msg)

        data = await self._request_json(
            "GET",
            f"{self.base_url}/multiaddr",
            params={"active": extended_key, "n": "0"},
        )
        summary = self._decode(_MultiAddress, data)
        return self._single(Decimal(summary.wallet.final_balance) / SATOSHIS_PER_BTC)


@AdapterRegistry.register
class EthereumAdapter(ChainAdapter):
    """
    Native ETH balance from the Etherscan v2 API.

    Works without an API key at a low rate limit; a key lifts the limit.
    Rate-limit rejections raise ``AdapterError`` with ``rate_limited=True``.

    """

    provider = "ETH"
    base_url = "https://api.etherscan.io/v2/api"

    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[BalanceRecord]:
        address: str = credential_or_address.strip()
        if not _ETH_ADDRESS.match(address):
            msg = "Invalid ETH address format"
            raise AdapterError(msg)

        params = {
            "chainid": "1",
            "module": "account",
            "action": "balance",
            "address": address,
            "tag": "latest",
        }
        if api_key:
            params["apikey"] = api_key

        data = await self._request_json("GET", self.base_url, params=params)
        response = self._decode(_EtherscanResponse, data)

        if response.status != "1":
            result = str(response.result or "")
            if "rate limit" in result.lower():
                msg = "Etherscan API rate limit reached"
                raise AdapterError(msg, rate_limited=True)
            raise AdapterError(result or response.message or "ETH balance lookup failed")

        try:
            wei = Decimal(str(response.result))
        except ArithmeticError as e:
            msg = f"Unexpected Etherscan balance: {response.result!r}"
            raise PayloadDecodeError(msg) from e
        if not wei.is_finite():
            msg = f"Unexpected Etherscan balance: {response.result!r}"
            raise PayloadDecodeError(msg)
        return self._single(wei / WEI_PER_ETH)


@AdapterRegistry.register
class CardanoAdapter(ChainAdapter):
    """
    ADA balances from the Koios API.

    Stake addresses (``stake1...``) report the whole account including
    available rewards; payment addresses report only that address.

    """

    provider = "ADA"
    base_url = "https://api.koios.rest/api/v1"

    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[BalanceRecord]:
        address: str = credential_or_address.strip()
        if address.startswith("stake1"):
            rows = await self._post_rows("/account_info", {"_stake_addresses": [address]})
            lovelace = to_decimal(self._decode(_KoiosAccountInfo, rows[0]).total_balance)
        else:
            rows = await self._post_rows("/address_info", {"_addresses": [address]})
            lovelace = to_decimal(self._decode(_KoiosAddressInfo, rows[0]).balance)

        return self._single(lovelace / LOVELACE_PER_ADA)

    async def _post_rows(self, path: str, body: dict[str, list[str]]) -> list[Any]:
        data = await self._request_json("POST", f"{self.base_url}{path}", json=body)
        if not isinstance(data, list):
            msg = "Unexpected Koios payload: expected a list"
            raise PayloadDecodeError(msg)
        if not data:
            msg = "ADA address lookup failed"
            raise AdapterError(msg)
        return data
