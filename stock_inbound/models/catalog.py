from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""Device catalog model.

The catalog is owned by the store (`devices` table) and loaded read-only once per
import. Entries are never mutated while an import runs.
"""

__all__ = [
    "DeviceCatalogEntry",
    "canonical_key",
]


def canonical_key(value: Any) -> str:
    """Upper-case and strip every non-alphanumeric character.

    >>> canonical_key(" fmb-140 bt ")
    'FMB140BT'
    """
    text = "" if value is None else str(value)
    return "".join(ch for ch in text.upper() if ch.isascii() and ch.isalnum())


@dataclass(frozen=True)
class DeviceCatalogEntry:
    """One device of the catalog.

    Attributes:
        canonical_key: normalized catalog key (see `canonical_key`)
        display_name: name shown to operators and printed on labels
        active: inactive entries never take part in resolution
        device_id: store primary key (None for catalogs built in memory)
    """
    canonical_key: str
    display_name: str
    active: bool = True
    device_id: Any = None

    @staticmethod
    def from_row(device_id: Any, canonical_name: Any, display: Any, active: Any) -> DeviceCatalogEntry:
        """Build an entry from a `devices` row; display falls back to the canonical name."""
        canonical = str(canonical_name or "")
        return DeviceCatalogEntry(
            canonical_key=canonical_key(canonical),
            display_name=str(display or canonical).strip(),
            active=active is not False,
            device_id=device_id,
        )
