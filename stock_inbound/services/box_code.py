from __future__ import annotations

import re
from typing import Any

from stock_inbound.excel.reader import cell_text

"""Box code extraction from compound master-box text.

Vendor master-box cells embed the box number after a model code, e.g.
`FMB140BTZ9FD-076-004` -> `076-004`:

1. a trailing `<2-4 digits><separator><2-4 digits>` pair, anchored at the end
2. otherwise the last two standalone numeric runs of 2-4 digits, joined with `-`
3. otherwise no code: the row is reported, a box number is never made up
"""

__all__ = [
    "extract_box_code",
    "raw_device_prefix",
]

_TRAILING_PAIR_RE = re.compile(r"(?<!\d)(\d{2,4})\s*[-_/. ]\s*(\d{2,4})\s*$")
_NUMERIC_RUN_RE = re.compile(r"(?<!\d)\d{2,4}(?!\d)")
_LETTER_RE = re.compile(r"[A-Za-z]")


def extract_box_code(value: Any) -> str | None:
    """Box code `NNN-NNN` from a master box cell, or None (never invented).

    A trailing digit pair (2–4 digits each, any of `-_/. ` between) wins; otherwise the
    last two 2–4 digit runs of the text are joined.

    >>> extract_box_code("FMB140BTZ9FD-076-004")
    '076-004'
    >>> extract_box_code("FMC9202MAUWU-041-2")
    '9202-041'
    >>> extract_box_code("BOX-7") is None
    True
    """
    text = cell_text(value)
    if not text:
        return None
    match = _TRAILING_PAIR_RE.search(text)
    if match:
        return f"{match.group(1)}-{match.group(2)}"
    runs = _NUMERIC_RUN_RE.findall(text)
    if len(runs) >= 2:
        return f"{runs[-2]}-{runs[-1]}"
    return None


def raw_device_prefix(value: Any) -> str | None:
    """Model code in front of the first `-` of a compound cell, if it contains letters.

    >>> raw_device_prefix("FMC234WC3XWU-025-007")
    'FMC234WC3XWU'
    >>> raw_device_prefix("076-004") is None
    True
    """
    text = cell_text(value)
    prefix = text.split("-", 1)[0].strip()
    if not prefix or not _LETTER_RE.search(prefix):
        return None
    return prefix
