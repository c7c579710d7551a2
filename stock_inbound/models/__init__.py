"""Domain models for the inbound import reconciliation engine.

All models are frozen dataclasses; none of them is persisted directly.
"""

from .box_group import BoxGroup, BoxKey, CommitPlan, Label, PlannedItem
from .catalog import DeviceCatalogEntry, canonical_key
from .error_record import ErrorRecord
from .import_result import CommitReceipt, ImportCounts, ImportFailure, ImportResult
from .parsed_row import IssueCode, ParsedRow, RowIssue
from .rejection import ImportRejected

__all__ = [
    # Catalog
    "DeviceCatalogEntry",
    "canonical_key",
    # Parsing
    "IssueCode",
    "ParsedRow",
    "RowIssue",
    # Reconciliation / commit
    "BoxGroup",
    "BoxKey",
    "CommitPlan",
    "Label",
    "PlannedItem",
    # Results
    "CommitReceipt",
    "ErrorRecord",
    "ImportCounts",
    "ImportFailure",
    "ImportRejected",
    "ImportResult",
]
