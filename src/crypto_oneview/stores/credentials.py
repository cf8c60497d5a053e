"""Encrypted exchange credential registry."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

from crypto_oneview.core.models import CredentialRef, DecryptedCredential
from crypto_oneview.data import get_all_supported_exchanges, get_exchange_config
from crypto_oneview.stores.vault import Vault, VaultError

logger = logging.getLogger(__name__)


class _StoredCredential(BaseModel):
    source_id: str
    kind: str
    encrypted_data: str


_STORED = TypeAdapter(list[_StoredCredential])


class CredentialRegistry:
    """
    Exchange API credentials, one per exchange, encrypted with the vault key.

    The API key, secret, and passphrase are encrypted together as a single
    blob; only the exchange kind and identifier are stored in clear.

    Parameters
    ----------
    vault : Vault
        Vault providing the session key
    path : Path | None
        JSON file backing the registry. Defaults to ``credentials.json`` in
        the vault's home directory.

    """

    def __init__(self, vault: Vault, path: Path | None = None) -> None:
        self.vault = vault
        self.path = path if path is not None else vault.home / "credentials.json"
        self._items = self._load()

    def list(self) -> list[CredentialRef]:
        """List stored credentials without secrets."""
        return [CredentialRef(source_id=item.source_id, kind=item.kind) for item in self._items]

    def get_decrypted(self, source_id: str) -> DecryptedCredential | None:
        """
        Decrypt one credential.

        Parameters
        ----------
        source_id : str
            Credential identifier

        Returns
        -------
        DecryptedCredential | None
            Credential, or None if unknown, the vault is locked, or decryption fails

        """
        item = next((c for c in self._items if c.source_id == source_id), None)
        if item is None or not self.vault.is_unlocked:
            return None

        try:
            return DecryptedCredential.model_validate_json(self.vault.decrypt(item.encrypted_data))
        except (VaultError, ValidationError) as e:
            logger.error("Failed to decrypt credential %s: %s", source_id, e)
            return None

    def set_credential(
        self,
        kind: str,
        api_key: str,
        secret: str,
        passphrase: str | None = None,
    ) -> CredentialRef:
        """
        Store or replace the credential for an exchange.

        Parameters
        ----------
        kind : str
            Exchange id (e.g., 'binance', 'okx')
        api_key : str
            API key
        secret : str
            API secret
        passphrase : str | None
            API passphrase, required by some exchanges

        Returns
        -------
        CredentialRef
            Reference to the stored credential

        Raises
        ------
        ValueError
            If the exchange is unknown or a required passphrase is missing
        VaultLockedError
            If the vault is locked

        """
        if kind not in get_all_supported_exchanges():
            msg = f"Unknown exchange: {kind}"
            raise ValueError(msg)
        if get_exchange_config(kind).get("requires_passphrase") and not passphrase:
            msg = f"{get_exchange_config(kind)['name']} requires a passphrase"
            raise ValueError(msg)

        credential = DecryptedCredential(api_key=api_key, secret=secret, passphrase=passphrase or None)
        encrypted = self.vault.encrypt(credential.model_dump_json(exclude_none=True))

        existing = next((c for c in self._items if c.kind == kind), None)
        if existing:
            existing.encrypted_data = encrypted
            stored = existing
        else:
            stored = _StoredCredential(
                source_id=f"{kind}_{int(time.time() * 1000)}",
                kind=kind,
                encrypted_data=encrypted,
            )
            self._items.append(stored)

        self._save()
        logger.info("Stored credential for %s", kind)
        return CredentialRef(source_id=stored.source_id, kind=stored.kind)

    def remove_credential(self, kind: str) -> bool:
        """
        Remove the credential for an exchange.

        Returns
        -------
        bool
            True if a credential was removed

        """
        remaining = [c for c in self._items if c.kind != kind]
        removed = len(remaining) != len(self._items)
        self._items = remaining
        self._save()
        return removed

    def clear_all(self) -> None:
        """Remove every credential."""
        self._items = []
        self._save()

    def _load(self) -> list[_StoredCredential]:
        if not self.path.exists():
            return []
        try:
            return _STORED.validate_json(self.path.read_bytes())
        except ValidationError as e:
            logger.error("Failed to load credentials from %s: %s", self.path, e)
            return []

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = _STORED.dump_python(self._items, mode="json")
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
