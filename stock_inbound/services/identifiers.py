from __future__ import annotations

import re
from typing import Any

"""Identifier (IMEI) validation and in-batch deduplication.

An identifier is valid when exactly 15 digits remain after stripping every non-digit
character. Invalid values are reported, never corrected. Deduplication against the
store is a separate check done by reconciliation.
"""

__all__ = [
    "IDENTIFIER_LENGTH",
    "clean_identifier",
    "is_valid_identifier",
    "IdentifierDeduplicator",
]

IDENTIFIER_LENGTH = 15

_NON_DIGIT_RE = re.compile(r"\D")


def clean_identifier(value: Any) -> str:
    """Digits of a cell value.

    Integral float cells are read as integers; any other value keeps every digit it
    contains, so text like `"35693803564380.0"` yields 15 digits.

    >>> clean_identifier(" 35-693803-564380-9 ")
    '356938035643809'
    >>> clean_identifier(356938035643809.0)
    '356938035643809'
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _NON_DIGIT_RE.sub("", str(value))


def is_valid_identifier(cleaned: str) -> bool:
    return len(cleaned) == IDENTIFIER_LENGTH and cleaned.isdigit()


class IdentifierDeduplicator:
    """Set of identifiers admitted so far in one parsed batch."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def admit(self, identifier: str) -> bool:
        """True the first time an identifier is seen, False for repeats."""
        if identifier in self._seen:
            return False
        self._seen.add(identifier)
        return True

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._seen

    def __len__(self) -> int:
        return len(self._seen)
