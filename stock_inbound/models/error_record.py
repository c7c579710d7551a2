from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""One line of the JSON Lines issue log.

The key set is fixed: timestamp, file, row, field, error_type, message. `row` is the
1-based sheet row, or -1 when the error concerns the whole file (structural rejection,
identifier conflict, store failure).
"""

__all__ = [
    "ErrorRecord",
    "utc_timestamp",
]


def utc_timestamp() -> str:
    """Current time as ISO8601 UTC with a `Z` suffix."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ErrorRecord:
    timestamp: str
    file: str
    row: int
    field: str  # device | box_no | identifier | <FILE_LEVEL>
    error_type: str  # IssueCode value or rejection reason
    message: str

    @classmethod
    def create(cls, file: str, row: int, field: str, error_type: str, message: str) -> ErrorRecord:
        return cls(utc_timestamp(), file, row, field, error_type, message)

    def to_json_line(self) -> str:
        # asdict keeps the key set equal to the dataclass fields
        return json.dumps(asdict(self), ensure_ascii=False)
