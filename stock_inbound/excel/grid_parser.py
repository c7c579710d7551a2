from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from stock_inbound.config.loader import LayoutConfig
from stock_inbound.models.parsed_row import IssueCode, ParsedRow, RowIssue
from stock_inbound.services.box_code import extract_box_code, raw_device_prefix
from stock_inbound.services.device_resolver import DeviceResolver
from stock_inbound.services.identifiers import IdentifierDeduplicator, clean_identifier, is_valid_identifier

from .inference import InferredColumns, infer_columns
from .layout import (
    ColumnGroup,
    NoColumnGroupsError,
    carry_forward,
    detect_groups,
    find_header_row,
    matches_any,
    normalize_header,
)
from .reader import RawGrid, cell_text

"""Grid parsing: RawGrid -> ParsedRow list + RowIssue list.

Two layouts are supported after the header row has been found:

- blocks: repeated vendor blocks (ColumnGroup). The master box value is carried forward
  down each group; the box code is extracted from it and the device is taken from its
  model prefix, falling back to the group's device hint.
- flat: one table whose device/box/identifier columns are inferred from the data.

A header with a box column left of an identifier column is only read as blocks when it
looks like a vendor block file: several groups, a device label above the header, or
master box cells carrying a model code. A plain `Model | Box | IMEI` table is flat.

Row problems never abort parsing; they become RowIssues and the row is left out.
"""

__all__ = [
    "ParseOutcome",
    "parse_grid",
]

logger = logging.getLogger(__name__)

MODE_BLOCKS = "blocks"
MODE_FLAT = "flat"


@dataclass
class ParseOutcome:
    header_row: int
    mode: str
    rows: list[ParsedRow] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)
    unknown_devices: set[str] = field(default_factory=set)
    groups: list[ColumnGroup] = field(default_factory=list)
    columns: InferredColumns | None = None

    @property
    def blocking_issues(self) -> list[RowIssue]:
        return [i for i in self.issues if i.blocking]

    def layout_dict(self) -> dict[str, Any]:
        return {
            "header_row": self.header_row,
            "mode": self.mode,
            "groups": [g.to_dict() for g in self.groups],
            "columns": self.columns.to_dict() if self.columns else None,
        }


class _RowCollector:
    """Validation + deduplication shared by both layouts."""

    def __init__(self, outcome: ParseOutcome) -> None:
        self.outcome = outcome
        self.dedup = IdentifierDeduplicator()

    def issue(self, row_index: int, fld: str, code: IssueCode, message: str, value: str = "") -> None:
        self.outcome.issues.append(
            RowIssue(row_number=row_index + 1, field=fld, code=code, message=message, value=value)
        )

    def identifier(self, row_index: int, cell: Any) -> str | None:
        raw = cell_text(cell)
        if not raw:
            self.issue(row_index, "identifier", IssueCode.MISSING_IDENTIFIER, "Missing IMEI")
            return None
        cleaned = clean_identifier(cell)
        if not is_valid_identifier(cleaned):
            self.issue(
                row_index,
                "identifier",
                IssueCode.INVALID_IDENTIFIER,
                f"Invalid IMEI (need 15 digits): {raw}",
                raw,
            )
            return None
        return cleaned

    def accept(self, row: ParsedRow) -> None:
        if not self.dedup.admit(row.identifier):
            self.issue(
                row.row_index,
                "identifier",
                IssueCode.DUPLICATE_IDENTIFIER,
                f"Duplicate IMEI in file: {row.identifier}",
                row.identifier,
            )
            return
        self.outcome.rows.append(row)


def _cell(row: Sequence[Any], col: int | None) -> Any:
    if col is None or col >= len(row):
        return None
    return row[col]


def _parse_blocks(grid: RawGrid, outcome: ParseOutcome, resolver: DeviceResolver) -> None:
    collector = _RowCollector(outcome)
    data = grid[outcome.header_row + 1:]
    base = outcome.header_row + 1

    for group in outcome.groups:
        masters = carry_forward(_cell(row, group.box_col) for row in data)
        for offset, (row, master) in enumerate(zip(data, masters, strict=True)):
            row_index = base + offset
            identifier_cell = _cell(row, group.identifier_col)
            if not cell_text(identifier_cell):
                # blocks have different lengths; an empty identifier cell is not a row
                continue
            identifier = collector.identifier(row_index, identifier_cell)
            if identifier is None:
                continue

            if not master:
                collector.issue(row_index, "box_no", IssueCode.MISSING_BOX, "No master box above this row")
                continue
            box_no = extract_box_code(master)
            if box_no is None:
                collector.issue(
                    row_index,
                    "box_no",
                    IssueCode.BOX_CODE_UNEXTRACTABLE,
                    f"Cannot extract box number from: {master}",
                    master,
                )
                continue

            candidates = [c for c in (raw_device_prefix(master), group.device_hint) if c]
            if not candidates:
                collector.issue(row_index, "device", IssueCode.MISSING_DEVICE, "Missing device/model")
                continue
            device_raw = candidates[0]
            device = None
            for candidate in candidates:
                device = resolver.display_name(candidate)
                if device is not None:
                    device_raw = candidate
                    break
            if device is None:
                outcome.unknown_devices.update(candidates)
                collector.issue(
                    row_index,
                    "device",
                    IssueCode.DEVICE_NOT_RECOGNIZED,
                    f"Device not recognized: {' / '.join(candidates)}",
                    device_raw,
                )
                continue

            collector.accept(
                ParsedRow(
                    row_index=row_index,
                    device_raw=device_raw,
                    device_resolved=device,
                    box_no=box_no,
                    identifier=identifier,
                )
            )


def _parse_flat(grid: RawGrid, outcome: ParseOutcome, resolver: DeviceResolver) -> None:
    collector = _RowCollector(outcome)
    columns = outcome.columns
    if columns is None:
        raise NoColumnGroupsError(f"no columns inferred below the header row (row {outcome.header_row + 1})")
    box_devices: dict[str, str] = {}

    for row_index in range(outcome.header_row + 1, len(grid)):
        row = grid[row_index]
        if all(not cell_text(c) for c in row):
            continue

        device_text = cell_text(_cell(row, columns.device_col))
        box_no = cell_text(_cell(row, columns.box_col))
        identifier = collector.identifier(row_index, _cell(row, columns.identifier_col))

        rejected = identifier is None
        if not box_no:
            collector.issue(row_index, "box_no", IssueCode.MISSING_BOX, "Missing box number")
            rejected = True

        device_raw = device_text.split("-", 1)[0].strip() or device_text
        device = None
        if not device_raw:
            collector.issue(row_index, "device", IssueCode.MISSING_DEVICE, "Missing device/model")
            rejected = True
        else:
            device = resolver.display_name(device_raw)
            if device is None:
                outcome.unknown_devices.add(device_raw)
                collector.issue(
                    row_index,
                    "device",
                    IssueCode.DEVICE_NOT_RECOGNIZED,
                    f"Device not recognized: {device_raw}",
                    device_raw,
                )
                rejected = True

        if box_no and device:
            previous = box_devices.setdefault(box_no, device)
            if previous != device:
                outcome.issues.append(
                    RowIssue(
                        row_number=row_index + 1,
                        field="box_no",
                        code=IssueCode.BOX_DEVICE_MISMATCH,
                        message=f"Box {box_no} has multiple devices ({previous} vs {device})",
                        value=box_no,
                        blocking=False,
                    )
                )

        if rejected or identifier is None or device is None:
            continue
        collector.accept(
            ParsedRow(
                row_index=row_index,
                device_raw=device_raw,
                device_resolved=device,
                box_no=box_no,
                identifier=identifier,
            )
        )


def _looks_like_blocks(grid: RawGrid, header_row: int, groups: list[ColumnGroup], sample_size: int) -> bool:
    if len(groups) > 1 or any(g.device_hint for g in groups):
        return True
    sample = grid[header_row + 1: header_row + 1 + sample_size]
    return any(raw_device_prefix(_cell(row, g.box_col)) for g in groups for row in sample)


def _header_hints(grid: RawGrid, header_row: int, settings: LayoutConfig) -> dict[str, int]:
    hints: dict[str, int] = {}
    for col, value in enumerate(grid[header_row]):
        header = normalize_header(value)
        if matches_any(header, settings.identifier_headers):
            hints.setdefault("identifier", col)
        elif matches_any(header, settings.box_headers):
            hints.setdefault("box", col)
    return hints


def detect_layout(grid: RawGrid, settings: LayoutConfig) -> ParseOutcome:
    """Find the header row and decide between vendor blocks and a flat table.

    Args:
        grid: the sheet
        settings: header synonyms, scan windows and sample size

    Returns:
        ParseOutcome with `groups` (blocks) or `columns` (flat) filled in, no rows yet

    Raises:
        HeaderRowNotFoundError: no header row in the scan window
        NoColumnGroupsError: no blocks and no data below the header
    """
    header_row = find_header_row(
        grid, settings.identifier_headers, settings.box_headers, scan_rows=settings.header_scan_rows
    )
    groups = detect_groups(
        grid, header_row, settings.identifier_headers, settings.box_headers, window=settings.box_scan_window
    )
    if groups and _looks_like_blocks(grid, header_row, groups, settings.sample_rows):
        return ParseOutcome(header_row=header_row, mode=MODE_BLOCKS, groups=groups)

    if not any(any(cell_text(c) for c in row) for row in grid[header_row + 1:]):
        raise NoColumnGroupsError(
            f"no data rows below the header row (row {header_row + 1}); "
            "expected repeated Box + IMEI blocks or a table with device, box and IMEI columns"
        )
    if groups:
        logger.debug("single box/identifier group without device labels; reading as a flat table")
    columns = infer_columns(
        grid,
        header_row,
        sample_size=settings.sample_rows,
        header_hints=_header_hints(grid, header_row, settings),
    )
    return ParseOutcome(header_row=header_row, mode=MODE_FLAT, columns=columns)


def parse_grid(grid: RawGrid, resolver: DeviceResolver, settings: LayoutConfig | None = None) -> ParseOutcome:
    """Detect the layout of `grid` and extract validated rows.

    Raises:
        HeaderRowNotFoundError: no header row in the scan window
        NoColumnGroupsError: header found but nothing to read below it
    """
    outcome = detect_layout(grid, settings or LayoutConfig())
    if outcome.mode == MODE_BLOCKS:
        _parse_blocks(grid, outcome, resolver)
    else:
        _parse_flat(grid, outcome, resolver)

    logger.info(
        "parsed mode=%s header_row=%d valid_rows=%d issues=%d",
        outcome.mode,
        outcome.header_row,
        len(outcome.rows),
        len(outcome.blocking_issues),
    )
    return outcome
