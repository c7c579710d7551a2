from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from stock_inbound.models.import_result import ImportCounts, ImportFailure, ImportResult
from stock_inbound.models.parsed_row import IssueCode, RowIssue
from stock_inbound.services.summary import render_summary_line

SUMMARY_RE = re.compile(
    r"^SUMMARY file=\S+ location=\S+ status=(committed|preview|rejected) devices=\d+ boxes=\d+ "
    r"items=\d+ issues=\d+ elapsed_sec=\d+(\.\d+)?$"
)

START = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def _result(elapsed: float, **kwargs) -> ImportResult:
    defaults = dict(file_name="in.xlsx", location="6", ok=True, status="committed")
    defaults.update(kwargs)
    return ImportResult(start_time=START, end_time=START + timedelta(seconds=elapsed), **defaults)


def test_summary_committed():
    line = render_summary_line(_result(2.0, counts=ImportCounts(devices=2, boxes=3, items=40)))
    assert line == "SUMMARY file=in.xlsx location=6 status=committed devices=2 boxes=3 items=40 issues=0 elapsed_sec=2"
    assert SUMMARY_RE.match(line)


def test_summary_rejected_counts_issues():
    issues = [RowIssue(3, "identifier", IssueCode.INVALID_IDENTIFIER, "bad")]
    result = _result(
        0.25,
        ok=False,
        status="rejected",
        issues=issues,
        failure=ImportFailure("NO_VALID_ROWS", "no valid rows"),
    )
    line = render_summary_line(result)
    assert "status=rejected" in line
    assert "issues=1" in line
    assert line.endswith("elapsed_sec=0.25")
    assert SUMMARY_RE.match(line)


def test_summary_small_elapsed_and_spaces_in_name():
    line = render_summary_line(_result(0.000123, file_name="vendor list.xlsx"))
    assert "file=vendor_list.xlsx" in line
    assert line.endswith("elapsed_sec=0.000123")
    assert SUMMARY_RE.match(line)
