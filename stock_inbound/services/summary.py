from __future__ import annotations

from stock_inbound.models.import_result import ImportResult

"""SUMMARY line rendering for one import request.

Format:
SUMMARY file=<name> location=<loc> status=<committed|preview|rejected> devices=<n>
boxes=<n> items=<n> issues=<n> elapsed_sec=<s>
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line of an ImportResult.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from stock_inbound.models.import_result import ImportCounts
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ImportResult(
        ...     file_name="in.xlsx", location="6", ok=True, status="committed",
        ...     start_time=start, end_time=end, counts=ImportCounts(devices=1, boxes=2, items=30),
        ... )
        >>> render_summary_line(result)
        'SUMMARY file=in.xlsx location=6 status=committed devices=1 boxes=2 items=30 issues=0 elapsed_sec=2'
    """
    file_name = result.file_name.replace(" ", "_")
    return (
        f"SUMMARY file={file_name} "
        f"location={result.location} "
        f"status={result.status} "
        f"devices={result.counts.devices} "
        f"boxes={result.counts.boxes} "
        f"items={result.counts.items} "
        f"issues={len(result.issues)} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
