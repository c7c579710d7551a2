from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Parsed row and row-level issue models.

ParsedRow values are produced by the grid parser and consumed by reconciliation; they
are never persisted. RowIssue records the reason a row was excluded (or, for warnings,
flagged) so the operator can fix the source file.
"""

__all__ = [
    "IssueCode",
    "ParsedRow",
    "RowIssue",
]


class IssueCode(Enum):
    """Row-level issue classification (UPPER_SNAKE, stable for the error log)."""
    MISSING_IDENTIFIER = "MISSING_IDENTIFIER"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    DUPLICATE_IDENTIFIER = "DUPLICATE_IDENTIFIER"
    MISSING_BOX = "MISSING_BOX"
    BOX_CODE_UNEXTRACTABLE = "BOX_CODE_UNEXTRACTABLE"
    MISSING_DEVICE = "MISSING_DEVICE"
    DEVICE_NOT_RECOGNIZED = "DEVICE_NOT_RECOGNIZED"
    BOX_DEVICE_MISMATCH = "BOX_DEVICE_MISMATCH"  # warning only


@dataclass(frozen=True)
class ParsedRow:
    """One validated spreadsheet row (identifier + resolved device + box code)."""
    row_index: int  # 0-based index in the raw grid
    device_raw: str
    device_resolved: str | None
    box_no: str
    identifier: str

    @property
    def row_number(self) -> int:
        """1-based sheet row number as shown by spreadsheet tools."""
        return self.row_index + 1


@dataclass(frozen=True)
class RowIssue:
    """A problem found on one row. Errors exclude the row; warnings do not."""
    row_number: int  # 1-based sheet row, -1 for file-level
    field: str  # device | box_no | identifier
    code: IssueCode
    message: str
    value: str = ""
    blocking: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "row": self.row_number,
            "field": self.field,
            "code": self.code.value,
            "message": self.message,
            "value": self.value,
            "blocking": self.blocking,
        }
