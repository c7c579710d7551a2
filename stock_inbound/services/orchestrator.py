from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from stock_inbound.config.loader import ImportConfig
from stock_inbound.db.store import InventoryStore
from stock_inbound.excel.grid_parser import ParseOutcome, parse_grid
from stock_inbound.excel.reader import read_raw_grid
from stock_inbound.logging.error_log import ErrorLogBuffer
from stock_inbound.models.box_group import BoxGroup, Label
from stock_inbound.models.import_result import CommitReceipt, ImportCounts, ImportFailure, ImportResult
from stock_inbound.models.parsed_row import RowIssue
from stock_inbound.models.rejection import ImportRejected

from .commit import execute_plan
from .device_resolver import DeviceResolver, build_rules
from .labels import build_labels
from .reconciliation import build_plan, check_conflicts, group_rows

"""Service orchestration for one inbound import request.

run_import() drives the whole pipeline for a single spreadsheet:

    location check -> read grid -> load catalog -> parse (layout + rows)
    -> group -> store conflict check -> commit plan -> [commit] -> labels

Every fatal condition is an ImportRejected subclass; it is turned into an ImportResult
with ok=False and an ImportFailure instead of escaping to the caller. Row issues and the
rejection itself are written to the JSON Lines error log once per request.
"""

__all__ = [
    "InvalidLocationError",
    "NoValidRowsError",
    "STATUS_COMMITTED",
    "STATUS_PREVIEW",
    "STATUS_REJECTED",
    "run_import",
]

logger = logging.getLogger(__name__)

STATUS_COMMITTED = "committed"
STATUS_PREVIEW = "preview"
STATUS_REJECTED = "rejected"


class InvalidLocationError(ImportRejected):
    reason = "INVALID_LOCATION"


class NoValidRowsError(ImportRejected):
    reason = "NO_VALID_ROWS"


@dataclass
class _RequestState:
    """What is known about the request so far; used for both outcomes."""
    outcome: ParseOutcome | None = None
    groups: list[BoxGroup] = field(default_factory=list)
    labels: list[Label] = field(default_factory=list)
    receipt: CommitReceipt | None = None

    @property
    def issues(self) -> list[RowIssue]:
        return list(self.outcome.issues) if self.outcome else []

    @property
    def unknown_devices(self) -> list[str]:
        return sorted(self.outcome.unknown_devices) if self.outcome else []

    def counts(self) -> ImportCounts:
        return ImportCounts(
            devices=len({g.device for g in self.groups}),
            boxes=len(self.groups),
            items=sum(g.quantity for g in self.groups),
        )


def _issue_preview(issues: list[RowIssue], limit: int) -> list[str]:
    return [f"row {i.row_number}: {i.message}" for i in issues[:limit]]


def _run(
    source: Path | bytes,
    state: _RequestState,
    *,
    file_name: str,
    location: str,
    actor: str,
    store: InventoryStore,
    config: ImportConfig,
    dry_run: bool,
) -> None:
    if location not in config.locations:
        raise InvalidLocationError(
            f"invalid location {location!r}; expected one of: {', '.join(config.locations)}",
            offending=[location],
        )

    grid = read_raw_grid(source)
    logger.debug("read %d row(s) from %s", len(grid), file_name)

    resolver = DeviceResolver(store.load_devices(), build_rules(config.scores))
    state.outcome = parse_grid(grid, resolver, config.layout)

    if not state.outcome.rows:
        blocking = state.outcome.blocking_issues
        raise NoValidRowsError(
            "no valid rows to import; fix the reported rows and re-submit",
            offending=_issue_preview(blocking, config.report.issue_preview_limit),
            total_offending=len(blocking),
        )

    state.groups = group_rows(state.outcome.rows)
    check_conflicts(store, state.groups, preview_limit=config.report.conflict_preview_limit)

    device_ids = {}
    for name in sorted({g.device for g in state.groups}):
        entry = resolver.entry_for_display(name)
        if entry is not None:
            device_ids[name] = entry.device_id
    plan = build_plan(store, state.groups, location, device_ids)

    if not dry_run:
        state.receipt = execute_plan(
            store,
            plan,
            file_name=file_name,
            actor=actor,
            conflict_preview_limit=config.report.conflict_preview_limit,
        )
    state.labels = build_labels(state.groups, config.labels)


def run_import(
    source: Path | bytes,
    *,
    file_name: str,
    location: str,
    actor: str,
    store: InventoryStore,
    config: ImportConfig,
    dry_run: bool = False,
    error_log: ErrorLogBuffer | None = None,
) -> ImportResult:
    """Import one spreadsheet into the store.

    Args:
        source: spreadsheet path or raw bytes (first sheet is read)
        file_name: name recorded in the audit row and the error log
        location: location tag, one of config.locations
        actor: pre-authenticated caller identity, recorded in the audit row
        store: inventory store (reads always, writes only when not dry_run)
        config: loaded configuration
        dry_run: stop after building the commit plan; nothing is written
        error_log: issue log buffer (a fresh one under ./logs when omitted)

    Returns:
        ImportResult; status is committed, preview or rejected. Never raises for
        import rejections.
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    state = _RequestState()
    failure: ImportFailure | None = None

    try:
        _run(
            source,
            state,
            file_name=file_name,
            location=location,
            actor=actor,
            store=store,
            config=config,
            dry_run=dry_run,
        )
    except ImportRejected as e:
        failure = ImportFailure(
            reason=e.reason,
            message=e.message,
            offending=list(e.offending),
            total_offending=e.total_offending,
        )
        logger.error("import rejected file=%s reason=%s: %s", file_name, e.reason, e.message)

    error_log.append_issues(file_name, state.issues)
    if failure is not None:
        error_log.append_file_error(file_name, failure.reason, failure.message)
    log_path = error_log.flush()
    if log_path is not None:
        logger.info("issues written to %s", log_path)

    if failure is not None:
        status = STATUS_REJECTED
    elif dry_run:
        status = STATUS_PREVIEW
    else:
        status = STATUS_COMMITTED

    return ImportResult(
        file_name=file_name,
        location=location,
        ok=failure is None,
        status=status,
        start_time=start_time,
        end_time=datetime.now(UTC),
        counts=state.counts() if failure is None else ImportCounts(),
        labels=state.labels,
        issues=state.issues,
        unknown_devices=state.unknown_devices,
        failure=failure,
        receipt=state.receipt,
        layout=state.outcome.layout_dict() if state.outcome else None,
    )
