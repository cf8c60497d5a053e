"""Core functionality including models and the adapter registry.

The aggregation engine lives in :mod:`crypto_oneview.core.aggregator`.
"""

from crypto_oneview.core.models import (
    AssetSummary,
    BalanceRecord,
    CredentialRef,
    DecryptedCredential,
    ErrorPolicy,
    PortfolioSnapshot,
    PriceQuote,
    SourceBreakdown,
    WalletRef,
)
from crypto_oneview.core.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "AssetSummary",
    "BalanceRecord",
    "CredentialRef",
    "DecryptedCredential",
    "ErrorPolicy",
    "PortfolioSnapshot",
    "PriceQuote",
    "SourceBreakdown",
    "WalletRef",
]
