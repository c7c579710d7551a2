from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import accumulate
from typing import Any

from stock_inbound.models.rejection import ImportRejected

from .reader import RawGrid, cell_text

"""Layout detection for vendor spreadsheets.

1. Header row: the first row within the scan window holding both an identifier header
   ("imei", "serial", ...) and a box header ("box", "carton", ...). Not finding one is a
   fatal structural error: the file is rejected, never guessed.
2. Column groups: vendors repeat the same table side by side (one block per device).
   Every identifier column opens a group; box columns are searched leftward from it,
   inside a bounded window that stops at the previous identifier column. The leftmost box
   column is the master box, the next one (if any) the inner box.
3. Device hint: the cell one row above the header in the group's master box column.
4. Master box carry-forward: vendors print the master box once per box and leave the
   following rows blank; `carry_forward` threads the last non-blank value down a column.
"""

__all__ = [
    "HeaderRowNotFoundError",
    "NoColumnGroupsError",
    "ColumnGroup",
    "BoxCarry",
    "normalize_header",
    "matches_any",
    "find_header_row",
    "detect_groups",
    "device_hint",
    "advance",
    "carry_forward",
]

logger = logging.getLogger(__name__)


class HeaderRowNotFoundError(ImportRejected):
    reason = "HEADER_NOT_FOUND"


class NoColumnGroupsError(ImportRejected):
    reason = "NO_COLUMN_GROUPS"


@dataclass(frozen=True)
class ColumnGroup:
    """One repeated vendor block: master box column, optional inner box column, identifier column."""
    box_col: int
    identifier_col: int
    inner_col: int | None = None
    device_hint: str | None = None

    @property
    def key(self) -> tuple[int, int, int | None]:
        return (self.box_col, self.identifier_col, self.inner_col)

    def to_dict(self) -> dict[str, Any]:
        return {
            "box_col": self.box_col,
            "inner_col": self.inner_col,
            "identifier_col": self.identifier_col,
            "device_hint": self.device_hint,
        }


def normalize_header(value: Any) -> str:
    return " ".join(cell_text(value).lower().split())


def matches_any(header: str, synonyms: Iterable[str]) -> bool:
    return bool(header) and any(s in header for s in synonyms)


def find_header_row(
    grid: RawGrid,
    identifier_synonyms: Sequence[str],
    box_synonyms: Sequence[str],
    scan_rows: int = 40,
) -> int:
    """Return the index of the first row carrying identifier AND box headers.

    Raises:
        HeaderRowNotFoundError: no such row within the first `scan_rows` rows
    """
    for idx, row in enumerate(grid[:scan_rows]):
        cells = [normalize_header(c) for c in row]
        has_identifier = any(matches_any(c, identifier_synonyms) for c in cells)
        has_box = any(matches_any(c, box_synonyms) and not matches_any(c, identifier_synonyms) for c in cells)
        if has_identifier and has_box:
            logger.debug("header row detected at index=%d cells=%s", idx, cells)
            return idx

    preview = [" | ".join(cell_text(c) for c in row) for row in grid[:5]]
    raise HeaderRowNotFoundError(
        f"could not detect a header row in the first {scan_rows} rows: a row must contain both an "
        f"identifier header ({', '.join(identifier_synonyms)}) and a box header ({', '.join(box_synonyms)})",
        offending=preview,
    )


def device_hint(grid: RawGrid, header_row: int, group: ColumnGroup) -> str | None:
    """Device label printed one row above the header.

    Read from the group's master box column; when that cell is blank (merged title cells
    keep their value in the leftmost cell only) the first non-blank cell of the same row
    inside the group span is used.
    """
    if header_row < 1:
        return None
    above = grid[header_row - 1]
    primary = cell_text(above[group.box_col]) if group.box_col < len(above) else ""
    if primary:
        return primary
    for col in range(group.box_col, min(group.identifier_col + 1, len(above))):
        text = cell_text(above[col])
        if text:
            return text
    return None


def detect_groups(
    grid: RawGrid,
    header_row: int,
    identifier_synonyms: Sequence[str],
    box_synonyms: Sequence[str],
    window: int = 15,
) -> list[ColumnGroup]:
    """Enumerate one ColumnGroup per (box column(s), identifier column) block.

    An identifier column without any box column inside its window yields no group.
    Groups are deduplicated by (box column, identifier column, inner column) and returned
    left to right.
    """
    header = [normalize_header(c) for c in grid[header_row]]
    identifier_cols = [c for c, h in enumerate(header) if matches_any(h, identifier_synonyms)]

    groups: list[ColumnGroup] = []
    seen: set[tuple[int, int, int | None]] = set()
    previous_identifier = -1
    for identifier_col in identifier_cols:
        lower = max(previous_identifier + 1, identifier_col - window, 0)
        box_cols = [
            c
            for c in range(lower, identifier_col)
            if matches_any(header[c], box_synonyms) and not matches_any(header[c], identifier_synonyms)
        ]
        previous_identifier = identifier_col
        if not box_cols:
            logger.debug("identifier column %d has no box column within window", identifier_col)
            continue
        group = ColumnGroup(
            box_col=box_cols[0],
            identifier_col=identifier_col,
            inner_col=box_cols[1] if len(box_cols) > 1 else None,
        )
        if group.key in seen:
            continue
        seen.add(group.key)
        groups.append(
            ColumnGroup(
                box_col=group.box_col,
                identifier_col=group.identifier_col,
                inner_col=group.inner_col,
                device_hint=device_hint(grid, header_row, group),
            )
        )

    logger.debug("detected %d column group(s): %s", len(groups), [g.to_dict() for g in groups])
    return groups


@dataclass(frozen=True)
class BoxCarry:
    """Accumulator state: last non-blank master box text seen in a group column."""
    current: str | None = None


def advance(carry: BoxCarry, cell: Any) -> BoxCarry:
    """Fold step: a non-blank cell replaces the carried value, a blank cell keeps it."""
    text = cell_text(cell)
    return BoxCarry(text) if text else carry


def carry_forward(cells: Iterable[Any]) -> list[str | None]:
    """Master box value in effect for each cell of a column.

    >>> carry_forward(["A-01-02", None, "", "A-01-03", None])
    ['A-01-02', 'A-01-02', 'A-01-02', 'A-01-03', 'A-01-03']
    """
    states = accumulate(cells, advance, initial=BoxCarry())
    next(states)  # drop the initial state
    return [state.current for state in states]
