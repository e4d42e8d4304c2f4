"""Filtering of credential entries by field."""

from typing import Dict, List, Sequence, Tuple

from . import config
from .models import CredentialEntry

SEARCH_FIELDS = (
    "website",
    "email",
    "username",
    "logged_in_via",
    "linked_email",
    "recovery_email",
)

FIELD_LABELS = {
    "website": "Website",
    "email": "Email",
    "username": "Username",
    "logged_in_via": "Logged in via",
    "linked_email": "Linked email",
    "recovery_email": "Recovery email",
}


def search_entries(entries: Sequence[CredentialEntry], filters: Dict[str, str],
                   mode: str = config.DEFAULT_SEARCH_MODE) -> List[Tuple[int, CredentialEntry]]:
    """
    Case-insensitive substring search.

    Args:
        entries: Collection to search
        filters: Field name -> text the field must contain; blank values are ignored
        mode: "and" (every filter matches) or "or" (any filter matches)

    Returns:
        (index, entry) pairs in collection order, index being the 0-based
        position in entries. No filters returns every entry.

    Raises:
        ValueError: Unknown field or mode
    """
    if mode not in config.SEARCH_MODES:
        raise ValueError(f"Unknown search mode '{mode}'")
    unknown = set(filters) - set(SEARCH_FIELDS)
    if unknown:
        raise ValueError(f"Cannot search on: {', '.join(sorted(unknown))}")

    needles = {name: text.strip().lower() for name, text in filters.items() if text and text.strip()}
    if not needles:
        return list(enumerate(entries))

    combine = all if mode == "and" else any
    return [
        (index, entry)
        for index, entry in enumerate(entries)
        if combine(needle in getattr(entry, name).lower() for name, needle in needles.items())
    ]
