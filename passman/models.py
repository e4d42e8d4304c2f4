"""
Credential entry model and collection (de)serialization.

An entry has exactly one identification path: either direct (email and/or
username for the site itself) or federated (logged_in_via plus a mandatory
linked_email). Empty fields are left out of the serialized form.
"""

import json
import datetime
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .errors import ValidationError

ENTRY_FIELDS = (
    "website",
    "email",
    "username",
    "password",
    "logged_in_via",
    "linked_email",
    "recovery_email",
    "added",
)


def now_timestamp(now: Optional[datetime.datetime] = None) -> str:
    """Timestamp string used for the `added` field."""
    return (now or datetime.datetime.now()).strftime(config.TIMESTAMP_FORMAT)


@dataclass
class CredentialEntry:
    """Represents a single stored credential."""
    website: str
    email: str = ""
    username: str = ""
    password: str = ""
    logged_in_via: str = ""
    linked_email: str = ""
    recovery_email: str = ""
    added: str = ""

    @property
    def is_federated(self) -> bool:
        return bool(self.logged_in_via)

    @property
    def account_email(self) -> str:
        """The email that identifies the account, whichever path is used."""
        return self.linked_email if self.is_federated else self.email

    def validate(self) -> None:
        """
        Check the identification-path invariant.

        Raises:
            ValidationError: If the entry is not storable
        """
        for name in ENTRY_FIELDS:
            if not isinstance(getattr(self, name), str):
                raise ValidationError(f"Field '{name}' must be a string")

        if not self.website.strip():
            raise ValidationError("Website/service name cannot be empty")

        if self.is_federated:
            if self.email:
                raise ValidationError(
                    f"Entry '{self.website}': email must be empty when logging in via {self.logged_in_via}"
                )
            if not self.linked_email:
                raise ValidationError(
                    f"Entry '{self.website}': linked email is required when logging in via {self.logged_in_via}"
                )
        else:
            if self.linked_email:
                raise ValidationError(f"Entry '{self.website}': linked email requires a login service")
            if not (self.email or self.username):
                raise ValidationError(f"Entry '{self.website}': an email or a username is required")

    def touch(self, now: Optional[datetime.datetime] = None) -> None:
        """Refresh the last-modified marker."""
        self.added = now_timestamp(now)

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for serialization, dropping empty fields."""
        return {k: v for k, v in asdict(self).items() if v}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialEntry':
        """
        Create from a dictionary and validate.

        Raises:
            ValidationError: On unknown keys, non-string values or a broken invariant
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Credential entry must be an object, got {type(data).__name__}")
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValidationError(f"Unknown credential field(s): {', '.join(sorted(unknown))}")
        if "website" not in data:
            raise ValidationError("Credential entry has no website")
        # JSON null is treated like an absent field
        entry = cls(**{k: ("" if v is None else v) for k, v in data.items()})
        entry.validate()
        return entry


def serialize_collection(entries: Iterable[CredentialEntry]) -> bytes:
    """Serialize entries to the vault plaintext (a UTF-8 JSON array)."""
    return json.dumps([e.to_dict() for e in entries], indent=2, ensure_ascii=False).encode('utf-8')


def deserialize_collection(plaintext: bytes) -> List[CredentialEntry]:
    """
    Parse vault plaintext into entries.

    Raises:
        ValidationError: If the payload is not a JSON array of valid entries
    """
    try:
        data = json.loads(plaintext.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Vault payload is not valid JSON: {e.__class__.__name__}") from e

    if not isinstance(data, list):
        raise ValidationError(f"Vault payload must be a list of entries, got {type(data).__name__}")

    entries = []
    for position, item in enumerate(data, 1):
        try:
            entries.append(CredentialEntry.from_dict(item))
        except ValidationError as e:
            raise ValidationError(f"Entry #{position}: {e}") from e
    return entries
