"""Password-protected vault for encrypting stored secrets."""

import base64
import json
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

HOME_ENV = "CRYPTO_ONEVIEW_HOME"
DEFAULT_HOME = "~/.crypto-oneview"

SESSION_TIMEOUT_SECONDS = 30 * 60
KDF_ITERATIONS = 390_000

_CHECK_PLAINTEXT = b"crypto-oneview"


def default_home() -> Path:
    """
    Resolve the data directory.

    Returns
    -------
    Path
        ``$CRYPTO_ONEVIEW_HOME`` or ``~/.crypto-oneview``

    """
    return Path(os.environ.get(HOME_ENV, DEFAULT_HOME)).expanduser()


class VaultError(Exception):
    """Base exception for vault failures."""


class VaultLockedError(VaultError):
    """Exception raised when secrets are accessed while the vault is locked."""


class InvalidPasswordError(VaultError):
    """Exception raised when an unlock password does not match."""


def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """
    Derive a Fernet key from a password.

    Parameters
    ----------
    password : str
        User password
    salt : bytes
        Random per-vault salt
    iterations : int
        PBKDF2 iteration count

    Returns
    -------
    bytes
        URL-safe base64 encoded 32-byte key

    """
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))


class Vault:
    """
    Holds the session key used to encrypt credentials and API keys.

    The password itself is never stored. A check token encrypted with the
    derived key is kept next to the salt in ``vault.json`` and is used to
    verify the password on unlock. The session locks itself after
    ``session_timeout`` seconds without activity.

    Parameters
    ----------
    home : Path | None
        Data directory. Uses ``default_home()`` if None.
    session_timeout : float
        Seconds of inactivity before auto-lock
    iterations : int
        PBKDF2 iteration count for new vaults
    clock : Callable[[], float]
        Monotonic time source

    """

    def __init__(
        self,
        home: Path | None = None,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        iterations: int = KDF_ITERATIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.home = home if home is not None else default_home()
        self.session_timeout = session_timeout
        self.iterations = iterations
        self._clock = clock
        self._fernet: Fernet | None = None
        self._last_activity = 0.0

    @property
    def path(self) -> Path:
        """Location of the vault file."""
        return self.home / "vault.json"

    @property
    def is_configured(self) -> bool:
        """Whether a password has been set."""
        return self.path.exists()

    @property
    def is_unlocked(self) -> bool:
        """Whether the session key is available; expires idle sessions."""
        if self._fernet is None:
            return False
        if self._clock() - self._last_activity >= self.session_timeout:
            logger.info("Session timeout: auto-locked after %d minutes of inactivity", self.session_timeout // 60)
            self.lock()
            return False
        return True

    def set_password(self, password: str) -> None:
        """
        Create the vault with a new password and unlock it.

        Parameters
        ----------
        password : str
            New password

        Raises
        ------
        ValueError
            If the password is empty

        """
        if not password:
            msg = "Password must not be empty"
            raise ValueError(msg)

        salt = os.urandom(16)
        fernet = Fernet(derive_key(password, salt, self.iterations))

        self.home.mkdir(parents=True, exist_ok=True)
        payload = {
            "salt": base64.b64encode(salt).decode("ascii"),
            "iterations": self.iterations,
            "check": fernet.encrypt(_CHECK_PLAINTEXT).decode("ascii"),
        }
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

        self._start_session(fernet)

    def unlock(self, password: str) -> None:
        """
        Verify the password and start a session.

        Raises
        ------
        VaultError
            If no password has been set or the vault file is unreadable
        InvalidPasswordError
            If the password does not match

        """
        if not self.is_configured:
            msg = "No password set; run set-password first"
            raise VaultError(msg)

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            salt = base64.b64decode(payload["salt"])
            fernet = Fernet(derive_key(password, salt, payload.get("iterations", KDF_ITERATIONS)))
            check = payload["check"].encode("ascii")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            msg = "Vault file is corrupted"
            raise VaultError(msg) from e

        try:
            fernet.decrypt(check)
        except InvalidToken as e:
            msg = "Invalid password"
            raise InvalidPasswordError(msg) from e

        self._start_session(fernet)

    def lock(self) -> None:
        """Drop the session key."""
        self._fernet = None

    def record_activity(self) -> None:
        """Restart the inactivity timer of an unlocked session."""
        if self.is_unlocked:
            self._last_activity = self._clock()

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string with the session key.

        Raises
        ------
        VaultLockedError
            If the vault is locked

        """
        token = self._session().encrypt(plaintext.encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Decrypt a token produced by ``encrypt``.

        Raises
        ------
        VaultLockedError
            If the vault is locked
        VaultError
            If the token was not encrypted with this vault's key

        """
        try:
            plaintext = self._session().decrypt(token.encode("ascii"))
        except InvalidToken as e:
            msg = "Stored secret could not be decrypted"
            raise VaultError(msg) from e
        return plaintext.decode("utf-8")

    def _session(self) -> Fernet:
        if not self.is_unlocked:
            msg = "Vault is locked"
            raise VaultLockedError(msg)
        self._last_activity = self._clock()
        return self._fernet

    def _start_session(self, fernet: Fernet) -> None:
        self._fernet = fernet
        self._last_activity = self._clock()
