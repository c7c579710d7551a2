from __future__ import annotations

from collections.abc import Iterable

"""Base exception for rejected imports.

Every fatal condition of an import request (structural layout errors, identifier
conflicts, store failures, ...) derives from ImportRejected so the orchestrator can turn
it into a structured ImportFailure instead of a raw trace. Concrete subclasses live next
to the code that raises them.
"""

__all__ = [
    "ImportRejected",
]


class ImportRejected(Exception):
    """Fatal, request-level rejection with a machine-usable reason.

    Attributes:
        reason: UPPER_SNAKE reason code
        offending: bounded preview of offending values (rows, identifiers, ...)
        total_offending: total count before truncation
    """

    reason = "IMPORT_REJECTED"

    def __init__(self, message: str, offending: Iterable[str] = (), total_offending: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.offending = list(offending)
        self.total_offending = len(self.offending) if total_offending is None else total_offending
