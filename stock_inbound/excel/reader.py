from __future__ import annotations

import io
import math
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from stock_inbound.models.rejection import ImportRejected

"""Tabular reader: spreadsheet file -> RawGrid.

Only the first sheet is read, without any header interpretation. Cells keep their
string/number value; empty cells become None and integral floats become int so long
digit strings (identifiers) are not rendered as `...0`. Trailing empty cells of a row
are dropped.
"""

__all__ = [
    "RawGrid",
    "ReadError",
    "read_raw_grid",
    "dataframe_to_grid",
    "cell_text",
]

RawGrid = list[list[Any]]


class ReadError(ImportRejected):
    """The source cannot be decoded as a spreadsheet, or it has no rows."""

    reason = "READ_ERROR"


def _coerce_cell(value: Any) -> Any:
    if isinstance(value, np.generic):
        value = value.item()
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        return int(value) if value.is_integer() else value
    return value


def dataframe_to_grid(df: pd.DataFrame) -> RawGrid:
    grid: RawGrid = []
    for raw in df.itertuples(index=False, name=None):
        row = [_coerce_cell(v) for v in raw]
        while row and (row[-1] is None or (isinstance(row[-1], str) and not row[-1].strip())):
            row.pop()
        grid.append(row)
    return grid


def read_raw_grid(source: Path | bytes) -> RawGrid:
    """Decode the first sheet of a spreadsheet into a row-major grid.

    Parameters
    ----------
    source: path of the file, or its raw bytes (upload body)

    Raises
    ------
    ReadError: unreadable file, or a first sheet without any non-empty row
    """
    target: Any = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        with pd.ExcelFile(target) as xls:
            if not xls.sheet_names:
                raise ReadError("spreadsheet has no sheets")
            df = xls.parse(xls.sheet_names[0], header=None, dtype=object)
    except ReadError:
        raise
    except Exception as e:
        raise ReadError(f"could not read spreadsheet: {e}") from e

    grid = dataframe_to_grid(df)
    if not any(grid):
        raise ReadError("empty spreadsheet (first sheet has no values)")
    return grid


def cell_text(value: Any) -> str:
    """Trimmed text of a cell; None -> ''."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
