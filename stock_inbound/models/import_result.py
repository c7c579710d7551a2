from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .box_group import Label
from .parsed_row import RowIssue

"""Import result models.

ImportResult is what `run_import` returns for both outcomes: on success it carries the
labels and aggregate counts, on failure an ImportFailure with a reason code and a bounded
list of offending values.
"""

__all__ = [
    "ImportCounts",
    "CommitReceipt",
    "ImportFailure",
    "ImportResult",
]


@dataclass(frozen=True)
class ImportCounts:
    devices: int = 0
    boxes: int = 0
    items: int = 0


@dataclass(frozen=True)
class CommitReceipt:
    """What the commit executor actually wrote."""
    import_id: Any
    boxes_created: int
    boxes_reused: int
    items_inserted: int


@dataclass(frozen=True)
class ImportFailure:
    reason: str  # UPPER_SNAKE
    message: str
    offending: list[str] = field(default_factory=list)
    total_offending: int = 0


@dataclass(frozen=True)
class ImportResult:
    file_name: str
    location: str
    ok: bool
    status: str  # committed | preview | rejected
    start_time: datetime
    end_time: datetime
    counts: ImportCounts = ImportCounts()
    labels: list[Label] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)
    unknown_devices: list[str] = field(default_factory=list)
    failure: ImportFailure | None = None
    receipt: CommitReceipt | None = None
    layout: dict[str, Any] | None = None

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self, issue_limit: int | None = None) -> dict[str, Any]:
        """JSON-friendly view (datetimes as ISO8601, issues optionally truncated)."""
        issues = self.issues if issue_limit is None else self.issues[:issue_limit]
        return {
            "ok": self.ok,
            "status": self.status,
            "file": self.file_name,
            "location": self.location,
            "counts": {
                "devices": self.counts.devices,
                "boxes": self.counts.boxes,
                "items": self.counts.items,
            },
            "labels": [label.to_dict() for label in self.labels],
            "issues": [issue.to_dict() for issue in issues],
            "issues_total": len(self.issues),
            "unknown_devices": list(self.unknown_devices),
            "failure": None if self.failure is None else {
                "reason": self.failure.reason,
                "message": self.failure.message,
                "offending": list(self.failure.offending),
                "total_offending": self.failure.total_offending,
            },
            "committed": None if self.receipt is None else {
                "import_id": self.receipt.import_id,
                "boxes_created": self.receipt.boxes_created,
                "boxes_reused": self.receipt.boxes_reused,
                "items_inserted": self.receipt.items_inserted,
            },
            "layout": self.layout,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
        }
