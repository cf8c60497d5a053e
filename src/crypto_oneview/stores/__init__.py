"""Local encrypted storage for exchange credentials and wallet addresses."""

from crypto_oneview.stores.credentials import CredentialRegistry
from crypto_oneview.stores.vault import (
    InvalidPasswordError,
    Vault,
    VaultError,
    VaultLockedError,
    default_home,
)
from crypto_oneview.stores.wallets import DuplicateAddressError, WalletRegistry

__all__ = [
    "CredentialRegistry",
    "DuplicateAddressError",
    "InvalidPasswordError",
    "Vault",
    "VaultError",
    "VaultLockedError",
    "WalletRegistry",
    "default_home",
]
