from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Progress display with tqdm (TTY only).

Used while item batches are written. In non-TTY environments (CI, piped output) the bar
is disabled so no ANSI control sequences end up in logs.
"""

__all__ = [
    "BatchProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class BatchProgress:
    """Rows-written progress bar for one commit."""

    def __init__(self, total_rows: int, *, description: str = "Inserting items") -> None:
        self.total_rows = total_rows
        self.description = description
        self.written = 0
        self.enabled = is_tty_enabled() and total_rows > 0
        self.pbar: Any | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="item",
                leave=False,
                ncols=80,
                ascii=True,
            )

    def advance(self, rows: int) -> None:
        """Callback for each written batch."""
        self.written += rows
        if self.pbar is not None:
            self.pbar.update(rows)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> BatchProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
