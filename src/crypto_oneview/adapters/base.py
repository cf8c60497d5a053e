"""Base balance adapter class with common HTTP and decoding functionality."""

import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from crypto_oneview.core.models import BalanceRecord, ErrorPolicy

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

_SECRET_PATTERNS = [
    (re.compile(r"apikey=[^&\s]+", re.IGNORECASE), "apikey=***"),
    (re.compile(r"signature=[^&\s]+", re.IGNORECASE), "signature=***"),
    (re.compile(r"[A-Za-z0-9]{32,}"), "***"),
    (re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "*.*.*.*"),
]


def sanitize_error_message(message: str) -> str:
    """
    Scrub credentials and network identifiers from an error message.

    Removes ``apikey=`` and ``signature=`` values, runs of 32 or more
    alphanumeric characters, and IPv4 addresses.

    Parameters
    ----------
    message : str
        Raw error message

    Returns
    -------
    str
        Message safe to show to the user

    """
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class AdapterError(Exception):
    """
    Exception raised when a balance source cannot be read.

    Parameters
    ----------
    message : str
        Descriptive message; credentials are scrubbed before storing
    rate_limited : bool
        Whether the provider rejected the request for rate limiting

    """

    def __init__(self, message: str, *, rate_limited: bool = False) -> None:
        self.message = sanitize_error_message(message)
        self.rate_limited = rate_limited
        super().__init__(self.message)


class PayloadDecodeError(AdapterError):
    """Exception raised when a provider response does not match its expected shape."""


class UnsupportedSourceError(AdapterError):
    """Exception raised for an address or key format the adapter cannot read."""


def to_decimal(value: Any) -> Decimal:
    """
    Convert a provider numeric field (string or number) to Decimal.

    Empty, missing, unparseable and non-finite values become zero.

    """
    if value is None or value == "":
        return Decimal("0")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


class BaseBalanceAdapter(ABC):
    """
    Abstract base class for balance adapters.

    All adapters should inherit from this class and implement ``fetch``.

    Attributes
    ----------
    provider : str
        Exchange or chain identifier (must be set in subclass)
    account_type : str | None
        Exchange sub-account, None for chain adapters
    on_error : ErrorPolicy
        Whether failures are reported to the user or swallowed

    Parameters
    ----------
    client : httpx.AsyncClient
        Shared HTTP client
    source : str | None
        Source identifier stamped on produced records

    """

    provider: ClassVar[str] = ""
    account_type: ClassVar[str | None] = None
    on_error: ClassVar[ErrorPolicy] = ErrorPolicy.SURFACE

    def __init__(self, client: httpx.AsyncClient, source: str | None = None) -> None:
        if not self.provider:
            msg = f"{self.__class__.__name__} must define 'provider' attribute"
            raise ValueError(msg)
        self.client = client
        self.source = source or self.default_source()

    def default_source(self) -> str:
        """Source identifier used when none is given."""
        return self.provider

    @property
    def label(self) -> str:
        """Category shown in error messages."""
        return self.account_type or self.provider

    @abstractmethod
    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[BalanceRecord]:
        """
        Fetch balances and normalize them to records.

        Must be implemented by subclasses.

        Parameters
        ----------
        credential_or_address : Any
            Decrypted exchange credential or wallet address
        api_key : str | None
            Optional explorer API key

        Returns
        -------
        list[BalanceRecord]
            Records with strictly positive amounts

        Raises
        ------
        AdapterError
            If the provider cannot be read

        """
        ...

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        """
        Issue one HTTP request and return the decoded JSON body.

        Raises
        ------
        AdapterError
            On transport failure or non-2xx status
        PayloadDecodeError
            If the body is not JSON

        """
        try:
            response = await self.client.request(method, url, params=params, headers=headers, json=json)
        except httpx.TimeoutException as e:
            msg = f"Request timeout: {e}"
            raise AdapterError(msg) from e
        except httpx.HTTPError as e:
            msg = f"HTTP request failed: {e}"
            raise AdapterError(msg) from e

        if response.is_error:
            raise AdapterError(self._describe_http_error(response))

        try:
            return response.json()
        except ValueError as e:
            msg = f"Invalid JSON response (HTTP {response.status_code})"
            raise PayloadDecodeError(msg) from e

    def _describe_http_error(self, response: httpx.Response) -> str:
        """
        Build an error message from a failed response.

        Uses the provider's ``msg`` field when the body is JSON.

        """
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("msg"):
            return str(payload["msg"])
        return f"HTTP {response.status_code}"

    @staticmethod
    def _decode(model: type[PayloadT], data: Any) -> PayloadT:
        """
        Validate a provider payload against its model.

        Raises
        ------
        PayloadDecodeError
            If the payload does not match

        """
        try:
            return model.model_validate(data)
        except ValidationError as e:
            msg = f"Unexpected {model.__name__} payload: {e.error_count()} validation error(s)"
            raise PayloadDecodeError(msg) from e

    def _record(self, symbol: str, amount: Decimal) -> BalanceRecord:
        return BalanceRecord(
            symbol=symbol,
            amount=amount,
            source=self.source,
            account_type=self.account_type,
        )

    def _positive_records(self, items: list[tuple[str, Decimal]]) -> list[BalanceRecord]:
        """Build records from (symbol, amount) pairs, dropping non-positive amounts."""
        records = [self._record(symbol, amount) for symbol, amount in items if symbol and amount > 0]
        logger.debug("%s %s: %d balance(s)", self.provider, self.label, len(records))
        return records
