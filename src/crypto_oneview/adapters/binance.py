"""Binance account-type balance adapters."""

import hashlib
import hmac
import time
from abc import abstractmethod
from decimal import Decimal
from typing import Any, ClassVar
from urllib.parse import urlencode

from pydantic import BaseModel, Field

from crypto_oneview.adapters.base import AdapterError, BaseBalanceAdapter, PayloadDecodeError, to_decimal
from crypto_oneview.core.models import BalanceRecord, DecryptedCredential, ErrorPolicy
from crypto_oneview.core.registry import AdapterRegistry
from crypto_oneview.data import get_account_type_label, get_exchange_config

SPOT_BASE_URL = "https://api.binance.com"
USDT_FUTURES_BASE_URL = "https://fapi.binance.com"
COIN_FUTURES_BASE_URL = "https://dapi.binance.com"


class _AssetBalance(BaseModel):
    asset: str
    free: Any = "0"
    locked: Any = "0"


class _SpotAccount(BaseModel):
    balances: list[_AssetBalance] = Field(default_factory=list)


class _FlexiblePosition(BaseModel):
    asset: str
    totalAmount: Any = "0"


class _LockedPosition(BaseModel):
    asset: str
    amount: Any = "0"


class _FlexiblePositions(BaseModel):
    rows: list[_FlexiblePosition] = Field(default_factory=list)


class _LockedPositions(BaseModel):
    rows: list[_LockedPosition] = Field(default_factory=list)


class _FuturesBalance(BaseModel):
    asset: str
    balance: Any = "0"


def sign(query_string: str, secret: str) -> str:
    """
    Sign a Binance query string.

    Parameters
    ----------
    query_string : str
        URL-encoded query string including ``timestamp``
    secret : str
        API secret

    Returns
    -------
    str
        Hex-encoded HMAC-SHA256 signature

    """
    return hmac.new(secret.encode(), query_string.encode(), hashlib.sha256).hexdigest()


class BinanceAdapter(BaseBalanceAdapter):
    """
    Common signing and error handling for Binance account types.

    Subclasses set ``account_type``, ``base_url``, ``path`` and implement
    ``_parse``.

    """

    provider = "binance"
    base_url: ClassVar[str] = SPOT_BASE_URL
    path: ClassVar[str] = ""
    method: ClassVar[str] = "GET"
    extra_params: ClassVar[dict[str, str]] = {}

    def default_source(self) -> str:
        return get_exchange_config(self.provider)["source_type"]

    @property
    def label(self) -> str:
        return get_account_type_label(self.provider, self.account_type or "")

    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[BalanceRecord]:
        credential: DecryptedCredential = credential_or_address
        if not credential.api_key or not credential.secret:
            msg = "Binance API requires an API key and secret"
            raise AdapterError(msg)

        data = await self._signed_request(credential)
        return self._positive_records(self._parse(data))

    async def _signed_request(self, credential: DecryptedCredential) -> Any:
        params = {**self.extra_params, "timestamp": str(int(time.time() * 1000))}
        query_string = urlencode(params)
        signature = sign(query_string, credential.secret)
        url = f"{self.base_url}{self.path}?{query_string}&signature={signature}"
        return await self._request_json(self.method, url, headers={"X-MBX-APIKEY": credential.api_key})

    @abstractmethod
    def _parse(self, data: Any) -> list[tuple[str, Decimal]]:
        """Extract (symbol, amount) pairs from the decoded payload."""

    @staticmethod
    def _as_list(data: Any) -> list[Any]:
        if not isinstance(data, list):
            msg = "Unexpected payload: expected a list"
            raise PayloadDecodeError(msg)
        return data


@AdapterRegistry.register
class BinanceSpotAdapter(BinanceAdapter):
    """Spot wallet: free + locked per asset."""

    account_type = "spot"
    path = "/api/v3/account"

    def _parse(self, data: Any) -> list[tuple[str, Decimal]]:
        account = self._decode(_SpotAccount, data)
        return [(b.asset, to_decimal(b.free) + to_decimal(b.locked)) for b in account.balances]


@AdapterRegistry.register
class BinanceEarnFlexibleAdapter(BinanceAdapter):
    """Simple Earn flexible products."""

    account_type = "earn_flexible"
    on_error = ErrorPolicy.SWALLOW
    path = "/sapi/v1/simple-earn/flexible/position"
    extra_params = {"size": "100"}

    def _parse(self, data: Any) -> list[tuple[str, Decimal]]:
        positions = self._decode(_FlexiblePositions, data)
        return [(row.asset, to_decimal(row.totalAmount)) for row in positions.rows]


@AdapterRegistry.register
class BinanceEarnLockedAdapter(BinanceAdapter):
    """Simple Earn locked products."""

    account_type = "earn_locked"
    on_error = ErrorPolicy.SWALLOW
    path = "/sapi/v1/simple-earn/locked/position"
    extra_params = {"size": "100"}

    def _parse(self, data: Any) -> list[tuple[str, Decimal]]:
        positions = self._decode(_LockedPositions, data)
        return [(row.asset, to_decimal(row.amount)) for row in positions.rows]


@AdapterRegistry.register
class BinanceFundingAdapter(BinanceAdapter):
    """Funding wallet, read through a signed POST."""

    account_type = "funding"
    path = "/sapi/v1/asset/get-funding-asset"
    method = "POST"

    def _parse(self, data: Any) -> list[tuple[str, Decimal]]:
        balances = [self._decode(_AssetBalance, item) for item in self._as_list(data)]
        return [(b.asset, to_decimal(b.free) + to_decimal(b.locked)) for b in balances]


@AdapterRegistry.register
class BinanceUsdtFuturesAdapter(BinanceAdapter):
    """USDT-margined futures wallet balances."""

    account_type = "futures_usdt"
    base_url = USDT_FUTURES_BASE_URL
    path = "/fapi/v2/balance"

    def _parse(self, data: Any) -> list[tuple[str, Decimal]]:
        balances = [self._decode(_FuturesBalance, item) for item in self._as_list(data)]
        return [(b.asset, to_decimal(b.balance)) for b in balances]


@AdapterRegistry.register
class BinanceCoinFuturesAdapter(BinanceUsdtFuturesAdapter):
    """COIN-margined futures wallet balances."""

    account_type = "futures_coin"
    base_url = COIN_FUTURES_BASE_URL
    path = "/dapi/v1/balance"
