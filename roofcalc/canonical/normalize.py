"""Canonical keys for historical line-item descriptions.

Normalization rules (must stay stable: stored pattern keys depend on them):
- Lowercase
- Strip every character that is not a-z, 0-9 or whitespace
- Collapse whitespace runs to a single space
- Trim, then truncate to 100 characters
"""

from __future__ import annotations

import re

MAX_KEY_LENGTH = 100

_DISALLOWED = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_key(text: str | None) -> str:
    """Normalize a free-text description (or item code) to its pattern key.

    Args:
        text: Input string

    Returns:
        Normalized key, "" for None/empty input

    Example:
        >>> normalize_key("Re-Point Ridge, Capping!!")
        'repoint ridge capping'
    """
    if not text:
        return ""

    key = text.lower()
    key = _DISALLOWED.sub("", key)
    key = _WHITESPACE.sub(" ", key)
    key = key.strip()

    # rstrip keeps the key idempotent when the cut lands on a space
    return key[:MAX_KEY_LENGTH].rstrip()


def normalize_item_code(code: str | None) -> str:
    """Case-insensitive item code used for catalog lookups."""
    if not code:
        return ""
    return code.strip().lower()
