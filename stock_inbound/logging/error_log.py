from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from stock_inbound.models.error_record import ErrorRecord
from stock_inbound.models.parsed_row import RowIssue

"""Per-run issue log.

Row issues and file-level failures are collected while a request runs and written on
flush() as JSON Lines (schema: ErrorRecord). A process writes at most one file,
`logs/inbound-errors-YYYYMMDD-HHMMSS.log` (UTC stamp taken at first write); a clean
run creates no file at all.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "FILE_LEVEL",
]

DEFAULT_LOGS_DIR = Path("logs")
STAMP_FORMAT = "%Y%m%d-%H%M%S"
FILE_LEVEL = "<FILE_LEVEL>"


class ErrorLogBuffer:
    """Pending ErrorRecords for one run (not thread safe)."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._logs_dir = DEFAULT_LOGS_DIR if logs_dir is None else logs_dir
        self._pending: list[ErrorRecord] = []
        self._target: Path | None = None

    def __len__(self) -> int:
        return len(self._pending)

    def _log_file(self) -> Path:
        if self._target is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            name = f"inbound-errors-{datetime.now(UTC).strftime(STAMP_FORMAT)}.log"
            self._target = self._logs_dir / name
        return self._target

    def append(self, record: ErrorRecord) -> None:
        self._pending.append(record)

    def append_issues(self, file_name: str, issues: Iterable[RowIssue]) -> None:
        self._pending.extend(
            ErrorRecord.create(file_name, issue.row_number, issue.field, issue.code.value, issue.message)
            for issue in issues
        )

    def append_file_error(self, file_name: str, error_type: str, message: str) -> None:
        self.append(ErrorRecord.create(file_name, -1, FILE_LEVEL, error_type, message))

    def flush(self) -> Path | None:
        """Write pending records and clear them; returns the log path, or None if nothing was pending."""
        if not self._pending:
            return None
        target = self._log_file()
        lines = "".join(rec.to_json_line() + "\n" for rec in self._pending)
        with target.open("a", encoding="utf-8") as fh:
            fh.write(lines)
        self._pending = []
        return target
