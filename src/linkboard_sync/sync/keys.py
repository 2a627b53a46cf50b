"""Natural-key normalization.

Every equality test between a local and a remote entity (same tag, same
post) goes through :func:`natural_key`.
"""

from __future__ import annotations


def natural_key(value: str | None) -> str:
    """Return the comparison key for a tag name or post URL.

    ``None`` maps to the empty string, which callers treat as "no key".
    """
    if not value:
        return ""
    return value.strip().lower()
