"""
Exception hierarchy for the Passman password manager.

Messages must never contain passphrases, derived keys or decrypted content.
"""


class PassmanError(Exception):
    """Base class for all Passman errors."""


class EncryptError(PassmanError):
    """The cipher engine failed while sealing a container."""


class DecryptError(PassmanError):
    """A container could not be opened: wrong passphrase, tampering, truncation or unknown format."""


class AuthError(PassmanError):
    """Unlock failed. Wrong passphrase and corrupt container are reported identically."""


class PersistError(PassmanError):
    """The vault could not be written to disk. The previous file is left untouched."""


class ValidationError(PassmanError):
    """Data is structurally invalid: a decrypted payload or a credential entry."""


class VaultLockedError(PassmanError):
    """An operation needs an unlocked session."""


class ConfigError(PassmanError):
    """A settings value is invalid."""
