"""Data models for balance records, prices, and portfolio summaries."""

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class ErrorPolicy(StrEnum):
    """How the aggregator treats a failed adapter fetch."""

    SURFACE = "surface"
    SWALLOW = "swallow"


class BalanceRecord(BaseModel):
    """
    One observation of a holding at a specific source.

    Attributes
    ----------
    symbol : str
        Uppercase ticker (e.g., 'BTC', 'USDT')
    amount : Decimal
        Holding in native asset units, already converted from subunits
    source : str
        Origin identifier (e.g., 'binance_cex', 'ledger_cold')
    account_type : str | None
        Sub-account within the source (e.g., 'spot', 'earn_flexible')

    """

    symbol: str
    amount: Decimal
    source: str
    account_type: str | None = None

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        return value.strip().upper()


class PriceQuote(BaseModel):
    """
    USD unit price for a symbol.

    Attributes
    ----------
    symbol : str
        Ticker symbol
    price_usd : Decimal
        Price of one unit in USD
    timestamp : int
        Fetch time in epoch milliseconds

    """

    symbol: str
    price_usd: Decimal = Field(ge=0)
    timestamp: int


class SourceBreakdown(BaseModel):
    """Amount of one asset held at one (source, account type) pair."""

    source: str
    account_type: str | None = None
    amount: Decimal


class AssetSummary(BaseModel):
    """
    Aggregated view of one asset across every source holding it.

    Attributes
    ----------
    symbol : str
        Ticker symbol
    total_amount : Decimal
        Sum of all contributing record amounts
    price_usd : Decimal
        USD unit price, 0 when unknown
    value_usd : Decimal
        ``total_amount * price_usd``
    percentage : Decimal
        Share of total portfolio value (0-100)
    sources : list[SourceBreakdown]
        Per-origin breakdown, one entry per (source, account_type)

    """

    symbol: str
    total_amount: Decimal = Decimal("0")
    price_usd: Decimal = Decimal("0")
    value_usd: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")
    sources: list[SourceBreakdown] = Field(default_factory=list)


class PortfolioSnapshot(BaseModel):
    """
    Read-only view of the aggregator state for presentation layers.

    Attributes
    ----------
    asset_summaries : list[AssetSummary]
        Retained summaries sorted by USD value, descending
    total_value_usd : Decimal
        Sum of retained summary values
    errors : list[str]
        Human-readable per-source warnings from the last pass
    last_updated : int | None
        Epoch milliseconds of the last completed pass
    is_loading : bool
        Whether a refresh pass is running

    """

    asset_summaries: list[AssetSummary] = Field(default_factory=list)
    total_value_usd: Decimal = Decimal("0")
    errors: list[str] = Field(default_factory=list)
    last_updated: int | None = None
    is_loading: bool = False


class CredentialRef(BaseModel):
    """Stored exchange credential, without secrets."""

    source_id: str
    kind: str


class DecryptedCredential(BaseModel):
    """Exchange API credential in plain text."""

    api_key: str
    secret: str
    passphrase: str | None = None


class WalletRef(BaseModel):
    """
    Stored wallet address.

    Attributes
    ----------
    id : str
        Registry identifier
    chain : str
        Chain identifier ('BTC', 'ETH', 'ADA')
    address : str
        Address, extended public key, or stake address
    source_label : str
        Wallet source (e.g., 'ledger_cold')
    label : str | None
        User-facing nickname
    has_api_key : bool
        Whether an explorer API key is stored for this address

    """

    id: str
    chain: str
    address: str
    source_label: str
    label: str | None = None
    has_api_key: bool = False
