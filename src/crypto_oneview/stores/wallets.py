"""Wallet address registry with optional encrypted explorer API keys."""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

from crypto_oneview.core.models import WalletRef
from crypto_oneview.data import get_all_supported_chains, get_wallet_sources
from crypto_oneview.stores.vault import Vault, VaultError

logger = logging.getLogger(__name__)


class DuplicateAddressError(ValueError):
    """Exception raised when an address is already tracked for the same source and chain."""


class _StoredWallet(BaseModel):
    id: str
    source_label: str
    chain: str
    address: str
    label: str | None = None
    encrypted_api_key: str | None = None
    created_at: int


_STORED = TypeAdapter(list[_StoredWallet])


class WalletRegistry:
    """
    Tracked wallet addresses grouped by wallet source.

    Addresses and labels are stored in clear. Explorer API keys are encrypted
    with the vault key, so adding one requires an unlocked vault.

    Parameters
    ----------
    vault : Vault
        Vault providing the session key
    path : Path | None
        JSON file backing the registry. Defaults to ``wallets.json`` in the
        vault's home directory.

    """

    def __init__(self, vault: Vault, path: Path | None = None) -> None:
        self.vault = vault
        self.path = path if path is not None else vault.home / "wallets.json"
        self._items = self._load()

    def list(self) -> list[WalletRef]:
        """List tracked wallets."""
        return [
            WalletRef(
                id=item.id,
                chain=item.chain,
                address=item.address,
                source_label=item.source_label,
                label=item.label,
                has_api_key=item.encrypted_api_key is not None,
            )
            for item in self._items
        ]

    def get_api_key(self, wallet_id: str) -> str | None:
        """
        Decrypt the explorer API key of a wallet.

        Returns
        -------
        str | None
            API key, or None if absent, the vault is locked, or decryption fails

        """
        item = self._find(wallet_id)
        if item is None or item.encrypted_api_key is None or not self.vault.is_unlocked:
            return None

        try:
            return self.vault.decrypt(item.encrypted_api_key)
        except VaultError as e:
            logger.error("Failed to decrypt API key for wallet %s: %s", wallet_id, e)
            return None

    def add_address(
        self,
        source_label: str,
        chain: str,
        address: str,
        label: str | None = None,
        api_key: str | None = None,
    ) -> WalletRef:
        """
        Track a new address.

        Parameters
        ----------
        source_label : str
            Wallet source (e.g., 'ledger_cold')
        chain : str
            Chain id ('BTC', 'ETH', 'ADA')
        address : str
            Address, xpub, or stake address
        label : str | None
            Optional nickname
        api_key : str | None
            Optional explorer API key

        Returns
        -------
        WalletRef
            The stored wallet

        Raises
        ------
        ValueError
            If the source or chain is unknown, or the address is empty
        DuplicateAddressError
            If the address is already tracked for this source and chain
        VaultLockedError
            If an API key is given while the vault is locked

        """
        chain = chain.upper()
        address = address.strip()

        if source_label not in get_wallet_sources():
            msg = f"Unknown wallet source: {source_label}"
            raise ValueError(msg)
        if chain not in get_all_supported_chains():
            msg = f"Unsupported chain: {chain}"
            raise ValueError(msg)
        if not address:
            msg = "Address must not be empty"
            raise ValueError(msg)

        if any(
            w.address == address and w.source_label == source_label and w.chain == chain for w in self._items
        ):
            msg = f"{address} is already tracked for {source_label} {chain}"
            raise DuplicateAddressError(msg)

        item = _StoredWallet(
            id=f"{source_label}_{chain}_{uuid.uuid4().hex[:8]}",
            source_label=source_label,
            chain=chain,
            address=address,
            label=label or None,
            encrypted_api_key=self.vault.encrypt(api_key) if api_key else None,
            created_at=int(time.time() * 1000),
        )
        self._items.append(item)
        self._save()

        logger.info("Tracking %s address for %s", chain, source_label)
        return next(w for w in self.list() if w.id == item.id)

    def update_label(self, wallet_id: str, label: str | None) -> bool:
        """
        Rename a wallet.

        Returns
        -------
        bool
            True if the wallet exists

        """
        item = self._find(wallet_id)
        if item is None:
            return False
        item.label = label or None
        self._save()
        return True

    def remove_address(self, wallet_id: str) -> bool:
        """
        Stop tracking a wallet.

        Returns
        -------
        bool
            True if a wallet was removed

        """
        remaining = [w for w in self._items if w.id != wallet_id]
        removed = len(remaining) != len(self._items)
        self._items = remaining
        self._save()
        return removed

    def clear_all(self) -> None:
        """Remove every wallet."""
        self._items = []
        self._save()

    def _find(self, wallet_id: str) -> _StoredWallet | None:
        return next((w for w in self._items if w.id == wallet_id), None)

    def _load(self) -> list[_StoredWallet]:
        if not self.path.exists():
            return []
        try:
            return _STORED.validate_json(self.path.read_bytes())
        except ValidationError as e:
            logger.error("Failed to load wallets from %s: %s", self.path, e)
            return []

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = _STORED.dump_python(self._items, mode="json")
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
