"""
Identifier utilities.

Project and rating identifiers are opaque strings ("PRJ-0042", "RAT-1718000000")
that arrive from several import paths with inconsistent whitespace and types.
"""

import re
from typing import Any, Optional

_DIGIT_RUN = re.compile(r"(\d+)")
_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


def normalize_id(value: Any) -> Optional[str]:
    """
    Normalize an identifier to a stripped string.

    Args:
        value: Raw identifier (str, int, or None)

    Returns:
        Stripped string, or None if empty

    Examples:
        >>> normalize_id("  PRJ-1 ")
        'PRJ-1'
        >>> normalize_id(42)
        '42'
        >>> normalize_id("") is None
        True
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def natural_key(identifier: str) -> tuple:
    """
    Sort key that orders embedded numbers numerically.

    Examples:
        >>> sorted(["RAT-10", "RAT-9"], key=natural_key)
        ['RAT-9', 'RAT-10']
    """
    parts = _DIGIT_RUN.split(identifier)
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in parts if part != "")


def loose_id(identifier: Optional[str]) -> Optional[str]:
    """
    Case- and punctuation-insensitive form of an identifier, for match suggestions.

    Examples:
        >>> loose_id("prj_0042 ")
        'prj0042'
        >>> loose_id("PRJ-0042")
        'prj0042'
    """
    if not identifier:
        return None
    folded = _NON_ALNUM.sub("", identifier).lower()
    return folded or None
