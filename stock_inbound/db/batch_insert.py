from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Paged INSERT through psycopg2.extras.execute_values.

A call sends its rows in pages of `page_size`, so no single statement carries an
unbounded VALUES list. With `returning` the given columns come back for every inserted
row (`fetch=True`); box creation relies on this to learn the generated box ids.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "insert_sql",
    "batch_insert",
]


class BatchInsertError(Exception):
    """Driver failure during a batch insert (message = driver message)."""


@dataclass(frozen=True)
class BatchMetrics:
    batch_size: int
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None  # None unless RETURNING was requested


def _quoted(names: Sequence[str]) -> str:
    return ",".join(f'"{n}"' for n in names)


def insert_sql(table: str, columns: Sequence[str], returning: Sequence[str] | None = None) -> str:
    """
    >>> insert_sql("boxes", ["device_id", "box_no"], returning=["box_id"])
    'INSERT INTO boxes ("device_id","box_no") VALUES %s RETURNING "box_id"'
    """
    sql = f"INSERT INTO {table} ({_quoted(columns)}) VALUES %s"
    if returning:
        sql += f" RETURNING {_quoted(returning)}"
    return sql


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: Sequence[str] | None = None,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert `rows` into `table`.

    Parameters
    ----------
    cursor: open psycopg2 cursor (transaction handled by the caller)
    table: trusted table name, never taken from input files
    columns: column names, one per row value
    rows: row value sequences
    returning: columns to read back per inserted row
    page_size: rows per statement
    metrics_callback: called once with timing data; skipped when there are no rows
    """
    values = list(rows)
    if not values:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    sql = insert_sql(table, columns, returning)
    fetch = bool(returning)
    began = time.time()
    try:
        fetched = execute_values(cursor, sql, values, page_size=page_size, fetch=fetch)
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        if metrics_callback is not None:
            ended = time.time()
            metrics_callback(BatchMetrics(len(values), ended - began, began, ended))

    if not fetch:
        return InsertResult(inserted_rows=len(values))
    return InsertResult(inserted_rows=len(values), returned_values=[tuple(r) for r in fetched or []])
