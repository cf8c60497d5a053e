"""OKX account-type balance adapters."""

import base64
import hashlib
import hmac
from abc import abstractmethod
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel, Field

from crypto_oneview.adapters.base import AdapterError, BaseBalanceAdapter, to_decimal
from crypto_oneview.core.models import BalanceRecord, DecryptedCredential, ErrorPolicy
from crypto_oneview.core.registry import AdapterRegistry
from crypto_oneview.data import get_account_type_label, get_exchange_config

BASE_URL = "https://www.okx.com"


class _Envelope(BaseModel):
    code: str
    msg: str = ""
    data: list[dict[str, Any]] = Field(default_factory=list)


class _TradingDetail(BaseModel):
    ccy: str
    cashBal: Any = "0"


class _TradingAccount(BaseModel):
    details: list[_TradingDetail] = Field(default_factory=list)


class _SavingsItem(BaseModel):
    ccy: str
    amt: Any = "0"


class _FundingItem(BaseModel):
    ccy: str
    availBal: Any = "0"
    frozenBal: Any = "0"


class _StakingOrder(BaseModel):
    ccy: str
    investAmt: Any = "0"


def sign(timestamp: str, method: str, request_path: str, secret: str, body: str = "") -> str:
    """
    Sign an OKX request.

    Parameters
    ----------
    timestamp : str
        ISO-8601 UTC timestamp with milliseconds (e.g., '2024-01-01T00:00:00.000Z')
    method : str
        HTTP method in upper case
    request_path : str
        Path including query string
    secret : str
        API secret
    body : str
        Request body for POST requests

    Returns
    -------
    str
        Base64-encoded HMAC-SHA256 signature

    """
    message = f"{timestamp}{method}{request_path}{body}"
    digest = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _iso_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class OKXAdapter(BaseBalanceAdapter):
    """
    Common signing and envelope decoding for OKX account types.

    OKX wraps every response in ``{"code": "0", "msg": "", "data": [...]}``;
    a non-zero code is a provider error even on HTTP 200.

    """

    provider = "okx"
    path: ClassVar[str] = ""

    def default_source(self) -> str:
        return get_exchange_config(self.provider)["source_type"]

    @property
    def label(self) -> str:
        return get_account_type_label(self.provider, self.account_type or "")

    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[BalanceRecord]:
        credential: DecryptedCredential = credential_or_address
        if not credential.passphrase:
            msg = "OKX API requires a passphrase"
            raise AdapterError(msg)

        timestamp = _iso_timestamp()
        headers = {
            "OK-ACCESS-KEY": credential.api_key,
            "OK-ACCESS-SIGN": sign(timestamp, "GET", self.path, credential.secret),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": credential.passphrase,
            "Content-Type": "application/json",
        }
        payload = await self._request_json("GET", f"{BASE_URL}{self.path}", headers=headers)
        envelope = self._decode(_Envelope, payload)
        if envelope.code != "0":
            raise AdapterError(envelope.msg or f"OKX API error {envelope.code}")

        return self._positive_records(self._parse(envelope.data))

    def _describe_http_error(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("msg"):
            return f"HTTP {response.status_code}: {payload['msg']}"
        return f"HTTP {response.status_code}"

    @abstractmethod
    def _parse(self, data: list[dict[str, Any]]) -> list[tuple[str, Decimal]]:
        """Extract (symbol, amount) pairs from the decoded payload."""


@AdapterRegistry.register
class OKXTradingAdapter(OKXAdapter):
    """Trading (unified) account cash balances."""

    account_type = "spot"
    path = "/api/v5/account/balance"

    def _parse(self, data: list[dict[str, Any]]) -> list[tuple[str, Decimal]]:
        items = []
        for raw in data:
            account = self._decode(_TradingAccount, raw)
            items.extend((detail.ccy, to_decimal(detail.cashBal)) for detail in account.details)
        return items


@AdapterRegistry.register
class OKXSavingsAdapter(OKXAdapter):
    """Simple Earn savings balances."""

    account_type = "savings"
    on_error = ErrorPolicy.SWALLOW
    path = "/api/v5/finance/savings/balance"

    def _parse(self, data: list[dict[str, Any]]) -> list[tuple[str, Decimal]]:
        items = [self._decode(_SavingsItem, raw) for raw in data]
        return [(item.ccy, to_decimal(item.amt)) for item in items]


@AdapterRegistry.register
class OKXFundingAdapter(OKXAdapter):
    """Funding account: available + frozen."""

    account_type = "funding"
    path = "/api/v5/asset/balances"

    def _parse(self, data: list[dict[str, Any]]) -> list[tuple[str, Decimal]]:
        items = [self._decode(_FundingItem, raw) for raw in data]
        return [(item.ccy, to_decimal(item.availBal) + to_decimal(item.frozenBal)) for item in items]


@AdapterRegistry.register
class OKXStakingAdapter(OKXAdapter):
    """Active on-chain earn (staking/DeFi) orders."""

    account_type = "staking"
    on_error = ErrorPolicy.SWALLOW
    path = "/api/v5/finance/staking-defi/orders-active"

    def _parse(self, data: list[dict[str, Any]]) -> list[tuple[str, Decimal]]:
        items = [self._decode(_StakingOrder, raw) for raw in data]
        return [(item.ccy, to_decimal(item.investAmt)) for item in items]
