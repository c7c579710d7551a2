from __future__ import annotations

import logging
import re
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from stock_inbound.services.identifiers import clean_identifier, is_valid_identifier

from .reader import RawGrid, cell_text

"""Column inference for flat, single-table files.

Used when the header row exists but the file is not laid out as vendor blocks. Header
text is not trusted to place a role; each role is inferred by scoring a bounded sample
of data cells:

- identifier column: most cells holding a strict 15-digit identifier
- box column: most box-shaped cells (bare 2–6 digit numbers, `NN-NN` pairs, "box N")
- device column: most cells containing letters

Each role is an independent predicate; `pick_column` takes the argmax. A tie goes to the
column whose header names the role (a "Model" column scores as box-shaped through its
digits just like the real "Box" column), otherwise to the lowest column index. A role that scores zero falls back to column 0 (device),
1 (box) or 2 (identifier); row validation reports what that loose fallback gets wrong.
"""

__all__ = [
    "FALLBACK_COLUMNS",
    "InferredColumns",
    "is_identifier_cell",
    "is_box_cell",
    "is_device_cell",
    "sample_rows",
    "pick_column",
    "infer_columns",
]

logger = logging.getLogger(__name__)

FALLBACK_COLUMNS = {"device": 0, "box": 1, "identifier": 2}

_BARE_BOX_RE = re.compile(r"^\d{2,6}$")
_PAIR_BOX_RE = re.compile(r"^\d{2,4}-\d{1,4}$")
_TEXT_BOX_RE = re.compile(r"^box\s*\d+", re.IGNORECASE)
_LETTER_RE = re.compile(r"[A-Za-z]")

CellPredicate = Callable[[Any], bool]


def is_identifier_cell(value: Any) -> bool:
    return is_valid_identifier(clean_identifier(value))


def _box_shaped(text: str) -> bool:
    return bool(text) and bool(
        _BARE_BOX_RE.match(text) or _PAIR_BOX_RE.match(text) or _TEXT_BOX_RE.match(text)
    )


def is_box_cell(value: Any) -> bool:
    raw = cell_text(value)
    digits = clean_identifier(value)
    if is_valid_identifier(digits):
        return False
    return _box_shaped(raw) or _box_shaped(digits)


def is_device_cell(value: Any) -> bool:
    return bool(_LETTER_RE.search(cell_text(value)))


@dataclass(frozen=True)
class InferredColumns:
    device_col: int
    box_col: int
    identifier_col: int
    scores: dict[str, int] = field(default_factory=dict)
    fallback: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_col": self.device_col,
            "box_col": self.box_col,
            "identifier_col": self.identifier_col,
            "scores": dict(self.scores),
            "fallback": list(self.fallback),
        }


def sample_rows(grid: RawGrid, header_row: int, size: int = 60) -> RawGrid:
    return grid[header_row + 1: header_row + 1 + size]


def pick_column(
    sample: RawGrid,
    predicate: CellPredicate,
    column_count: int,
    exclude: Collection[int] = (),
    prefer: int | None = None,
) -> tuple[int | None, int]:
    """Column with the most `predicate` hits in `sample`.

    Args:
        sample: data rows below the header
        predicate: cell test for the role
        column_count: number of columns to consider
        exclude: columns already taken by another role
        prefer: column that wins a tie for the best score (header hint)

    Returns:
        (column, hits); (None, 0) when no cell matches
    """
    best_col: int | None = None
    best_score = 0
    for col in range(column_count):
        if col in exclude:
            continue
        score = sum(1 for row in sample if col < len(row) and predicate(row[col]))
        if score > best_score or (score == best_score and score > 0 and col == prefer):
            best_col, best_score = col, score
    return best_col, best_score


def _column_count(grid: RawGrid, header_row: int, sample: Sequence[Sequence[Any]]) -> int:
    widths = [len(grid[header_row])] + [len(r) for r in sample]
    return max(widths) if widths else 0


def infer_columns(
    grid: RawGrid,
    header_row: int,
    sample_size: int = 60,
    header_hints: Mapping[str, int] | None = None,
) -> InferredColumns:
    """Infer (device, box, identifier) columns from the data below `header_row`.

    Args:
        grid: the sheet
        header_row: 0-based header row index
        sample_size: data rows scored per column
        header_hints: role ("box", "identifier") -> column whose header names it; used
            only to break ties

    Returns:
        InferredColumns; roles that scored nothing are listed in `fallback`
    """
    hints = dict(header_hints or {})
    sample = sample_rows(grid, header_row, sample_size)
    width = _column_count(grid, header_row, sample)

    identifier_col, identifier_score = pick_column(
        sample, is_identifier_cell, width, prefer=hints.get("identifier")
    )
    taken = [c for c in (identifier_col,) if c is not None]
    box_col, box_score = pick_column(sample, is_box_cell, width, exclude=taken, prefer=hints.get("box"))
    taken += [c for c in (box_col,) if c is not None]
    device_col, device_score = pick_column(sample, is_device_cell, width, exclude=taken)

    fallback: list[str] = []
    if device_col is None:
        device_col = FALLBACK_COLUMNS["device"]
        fallback.append("device")
    if box_col is None:
        box_col = FALLBACK_COLUMNS["box"]
        fallback.append("box")
    if identifier_col is None:
        identifier_col = FALLBACK_COLUMNS["identifier"]
        fallback.append("identifier")

    inferred = InferredColumns(
        device_col=device_col,
        box_col=box_col,
        identifier_col=identifier_col,
        scores={"device": device_score, "box": box_score, "identifier": identifier_score},
        fallback=tuple(fallback),
    )
    if fallback:
        logger.warning("column inference fell back to default position(s) for: %s", ", ".join(fallback))
    logger.debug("inferred columns: %s", inferred.to_dict())
    return inferred
