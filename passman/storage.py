"""
Session store for the password manager.

Holds the single decrypted credential collection for the lifetime of a
session and mediates every read and write, so the exit hook always has a
consistent snapshot to re-seal. The menu layer goes through this class only;
it never touches the codec or the vault file.
"""

import os
import logging
import threading
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from . import config
from . import crypto
from . import utils
from .errors import (
    AuthError,
    DecryptError,
    EncryptError,
    PassmanError,
    PersistError,
    ValidationError,
    VaultLockedError,
)
from .models import CredentialEntry, deserialize_collection, serialize_collection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Session:
    """Path, passphrase and collection of an unlocked vault.

    Replaced as a whole, never mutated, so an exit handler interrupting a
    swap sees either the old session or the new one.
    """
    vault_path: str
    passphrase: bytearray
    entries: List[CredentialEntry]


def _same_file(first: str, second: str) -> bool:
    if os.path.exists(first) and os.path.exists(second):
        return os.path.samefile(first, second)
    return os.path.normcase(os.path.abspath(first)) == os.path.normcase(os.path.abspath(second))


class SessionStore:
    """Owns the in-memory vault: path, passphrase and collection."""

    def __init__(self, vault_path: str, kdf: int = config.DEFAULT_KDF):
        """
        Initialize the session store.

        Args:
            vault_path: Path to the encrypted vault file
            kdf: Key derivation function used when sealing
        """
        self._locked_path = vault_path
        self._kdf = kdf
        # Re-entrant: a signal handler may persist while the main loop holds the lock
        self._lock = threading.RLock()
        self._crypto = crypto.CryptoManager()
        self._session: Optional[_Session] = None

    @property
    def vault_path(self) -> str:
        session = self._session
        return session.vault_path if session is not None else self._locked_path

    def is_unlocked(self) -> bool:
        """Check if the session is authenticated."""
        return self._session is not None

    def vault_exists(self) -> bool:
        return os.path.exists(self.vault_path)

    def _require_unlocked(self) -> _Session:
        session = self._session
        if session is None:
            raise VaultLockedError("Vault is locked")
        return session

    def _load(self, vault_path: str, passphrase: str) -> List[CredentialEntry]:
        """Decrypt and validate a vault file without touching session state."""
        try:
            plaintext = crypto.open_from_file(vault_path, passphrase)
        except DecryptError as e:
            logger.warning(f"Unlock: could not decrypt {vault_path}: {e}")
            utils.log_action("UNLOCK_FAILED", vault_path)
            raise AuthError(config.AUTH_FAILED_MESSAGE) from e

        try:
            entries = deserialize_collection(plaintext)
        except ValidationError as e:
            logger.error(f"Unlock: {vault_path} decrypted but its payload is invalid: {e}")
            utils.log_action("UNLOCK_INVALID_PAYLOAD", vault_path)
            raise
        return entries

    def _set_session(self, vault_path: str, passphrase: str, entries: List[CredentialEntry]) -> None:
        old = self._session
        self._session = _Session(vault_path, bytearray(passphrase.encode('utf-8')), entries)
        if old is not None:
            self._crypto.clear_bytes(old.passphrase)

    @staticmethod
    def _check_new_passphrase(passphrase: str) -> None:
        if not passphrase:
            raise ValidationError("Master password cannot be empty")

    def unlock(self, vault_path: str, passphrase: str) -> List[CredentialEntry]:
        """
        Decrypt an existing vault and start the session.

        Args:
            vault_path: Vault file to open
            passphrase: The master password

        Returns:
            Snapshot of the decrypted collection

        Raises:
            AuthError: Wrong passphrase or unreadable/corrupt container
            ValidationError: Decrypted payload is not a valid collection
        """
        with self._lock:
            if self._session is not None:
                raise PassmanError("A session is already unlocked; use switch_vault()")
            self._check_new_passphrase(passphrase)
            entries = self._load(vault_path, passphrase)
            self._set_session(vault_path, passphrase, entries)
            logger.info(f"Unlocked {vault_path} ({len(entries)} entries)")
            utils.log_action("UNLOCK", vault_path)
            return self.get_all()

    def initialize_empty(self, vault_path: str, passphrase: str) -> None:
        """
        Start a session on a vault that does not exist yet.

        Nothing is written until the session is persisted.
        """
        with self._lock:
            if self._session is not None:
                raise PassmanError("A session is already unlocked")
            self._check_new_passphrase(passphrase)
            self._set_session(vault_path, passphrase, [])
            logger.info(f"Initialized empty vault for {vault_path}")
            utils.log_action("CREATE", vault_path)

    def get_all(self) -> List[CredentialEntry]:
        """Get a copy of all entries."""
        with self._lock:
            return [replace(e) for e in self._require_unlocked().entries]

    def replace_all(self, entries: Sequence[CredentialEntry]) -> None:
        """
        Replace the whole collection. The only mutation primitive.

        Raises:
            ValidationError: If any entry is invalid (collection unchanged)
        """
        with self._lock:
            session = self._require_unlocked()
            for position, entry in enumerate(entries, 1):
                if not isinstance(entry, CredentialEntry):
                    raise ValidationError(f"Entry #{position} is not a CredentialEntry")
                try:
                    entry.validate()
                except ValidationError as e:
                    raise ValidationError(f"Entry #{position}: {e}") from e
            self._session = replace(session, entries=[replace(e) for e in entries])
            logger.debug(f"Collection replaced ({len(entries)} entries)")

    def verify_passphrase(self, candidate: str) -> bool:
        """Constant-time check of candidate against the session passphrase."""
        with self._lock:
            session = self._require_unlocked()
            return self._crypto.secure_compare(candidate.encode('utf-8'), bytes(session.passphrase))

    def rekey(self, new_passphrase: str, current_passphrase: Optional[str] = None) -> None:
        """
        Re-seal the in-memory collection under a new passphrase, right away.

        The new passphrase only takes effect once the vault file has been
        replaced; on any failure the old passphrase and file stay valid.

        Args:
            new_passphrase: The new master password
            current_passphrase: If given, must match the session passphrase

        Raises:
            AuthError: current_passphrase does not match
            ValidationError: new_passphrase is empty
            PersistError: Sealing or writing failed
        """
        with self._lock:
            session = self._require_unlocked()
            if current_passphrase is not None and not self.verify_passphrase(current_passphrase):
                utils.log_action("REKEY_DENIED", session.vault_path)
                raise AuthError("Current master password is incorrect")
            self._check_new_passphrase(new_passphrase)

            self._write(session, new_passphrase)
            self._set_session(session.vault_path, new_passphrase, session.entries)
            logger.info(f"Master password changed for {session.vault_path}")
            utils.log_action("REKEY", session.vault_path)

    def switch_vault(self, new_path: str, passphrase: str) -> List[CredentialEntry]:
        """
        Replace the session with another vault file.

        The other vault is decrypted and validated first, then the current
        collection is saved, then path, passphrase and collection change
        together. A failure at any step leaves the current session intact.

        Raises:
            PassmanError: new_path is the vault already open
            AuthError, ValidationError: The other vault cannot be opened
            PersistError: The current vault could not be saved first
        """
        with self._lock:
            session = self._require_unlocked()
            if _same_file(new_path, session.vault_path):
                raise PassmanError(f"{new_path} is the vault already open")
            entries = self._load(new_path, passphrase)
            self.persist()
            self._set_session(new_path, passphrase, entries)
            logger.info(f"Switched vault from {session.vault_path} to {new_path}")
            utils.log_action("SWITCH", f"{session.vault_path} -> {new_path}")
            return self.get_all()

    def persist(self) -> None:
        """
        Seal the current collection and atomically replace the vault file.

        Raises:
            PersistError: Sealing or writing failed (previous file intact)
        """
        with self._lock:
            session = self._require_unlocked()
            self._write(session, session.passphrase.decode('utf-8'))
            logger.info(f"Saved {len(session.entries)} entries to {session.vault_path}")
            utils.log_action("SAVE", session.vault_path)

    def _write(self, session: _Session, passphrase: str) -> None:
        plaintext = serialize_collection(session.entries)
        try:
            crypto.seal_to_file(session.vault_path, plaintext, passphrase, self._kdf)
        except EncryptError as e:
            raise PersistError(f"Failed to encrypt vault: {e}") from e

    def scrub(self) -> None:
        """Wipe the passphrase and collection and lock the session."""
        with self._lock:
            session = self._session
            if session is None:
                return
            self._locked_path = session.vault_path
            self._session = None
            self._crypto.clear_bytes(session.passphrase)
