from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from stock_inbound.models.catalog import DeviceCatalogEntry
from stock_inbound.models.rejection import ImportRejected

from .batch_insert import BatchInsertError, batch_insert

"""PostgreSQL inventory store.

The only component that touches persistent state. Tables used:

- devices(device_id, canonical_name, device, active)
- boxes(box_id, device_id, box_no, location, status, created_at)
  unique (device_id, box_no, location)
- items(imei unique, box_id, device_id, status, imported_at)
- inbound_imports(import_id, created_at, file_name, location, devices_count,
  boxes_count, items_count, devices, created_by)

Every lookup or insert list is chunked so no single statement carries an unbounded
number of keys. Writes happen inside `transaction()` (BEGIN/COMMIT, ROLLBACK on error).
"""

__all__ = [
    "AuditSummary",
    "InventoryStore",
    "PostgresInventoryStore",
    "StoreError",
    "chunked",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

BoxRef = tuple[Any, str]  # (device_id, box_no)


class StoreError(ImportRejected):
    """Any failure talking to the store. Message is sanitized (first line only)."""

    reason = "STORE_ERROR"

    @classmethod
    def wrap(cls, operation: str, exc: BaseException) -> StoreError:
        first_line = (str(exc).strip().splitlines() or [type(exc).__name__])[0]
        return cls(f"{operation} failed: {first_line[:300]}")


@dataclass(frozen=True)
class AuditSummary:
    file_name: str
    location: str
    actor: str
    devices: tuple[str, ...]
    boxes_count: int
    items_count: int

    @property
    def devices_count(self) -> int:
        return len(self.devices)


class InventoryStore(Protocol):
    """Store interface consumed by the reconciliation and commit services."""

    def load_devices(self) -> list[DeviceCatalogEntry]: ...

    def find_existing_identifiers(self, identifiers: Iterable[str]) -> set[str]: ...

    def find_boxes(self, location: str, refs: Iterable[BoxRef]) -> dict[BoxRef, Any]: ...

    def create_boxes(self, location: str, refs: Sequence[BoxRef]) -> dict[BoxRef, Any]: ...

    def insert_items(
        self,
        rows: Sequence[tuple[str, Any, Any]],
        on_batch: Callable[[int], None] | None = None,
    ) -> int: ...

    def record_audit(self, summary: AuditSummary) -> Any: ...

    def transaction(self) -> Any: ...


def chunked(values: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most `size` elements."""
    if size < 1:
        raise ValueError(f"chunk size must be positive: {size}")
    for start in range(0, len(values), size):
        yield values[start:start + size]


class PostgresInventoryStore:
    """InventoryStore over a psycopg2 cursor (autocommit off)."""

    def __init__(self, cursor: Any, lookup_chunk_size: int = 500, insert_chunk_size: int = 1000) -> None:
        self.cursor = cursor
        self.lookup_chunk_size = lookup_chunk_size
        self.insert_chunk_size = insert_chunk_size

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            self.cursor.execute("BEGIN")
        except Exception as e:
            raise StoreError.wrap("begin transaction", e) from e
        try:
            yield
        except BaseException:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception as rollback_e:
                # keep the original error; the rollback failure is only logged
                logger.error("rollback failed: %s", rollback_e)
            raise
        try:
            self.cursor.execute("COMMIT")
        except Exception as e:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception:
                logger.error("rollback after failed commit also failed")
            raise StoreError.wrap("commit", e) from e

    def load_devices(self) -> list[DeviceCatalogEntry]:
        try:
            self.cursor.execute(
                "SELECT device_id, canonical_name, device, active FROM devices ORDER BY canonical_name, device_id"
            )
            rows = self.cursor.fetchall()
        except Exception as e:
            raise StoreError.wrap("load devices", e) from e
        return [DeviceCatalogEntry.from_row(*row) for row in rows]

    def find_existing_identifiers(self, identifiers: Iterable[str]) -> set[str]:
        unique = sorted(set(identifiers))
        existing: set[str] = set()
        for part in chunked(unique, self.lookup_chunk_size):
            try:
                self.cursor.execute("SELECT imei FROM items WHERE imei = ANY(%s)", (list(part),))
                existing.update(str(r[0]) for r in self.cursor.fetchall())
            except Exception as e:
                raise StoreError.wrap("identifier lookup", e) from e
        logger.debug("identifier lookup checked=%d existing=%d", len(unique), len(existing))
        return existing

    def find_boxes(self, location: str, refs: Iterable[BoxRef]) -> dict[BoxRef, Any]:
        by_device: dict[Any, set[str]] = defaultdict(set)
        for device_id, box_no in refs:
            by_device[device_id].add(box_no)

        found: dict[BoxRef, Any] = {}
        for device_id, box_nos in by_device.items():
            for part in chunked(sorted(box_nos), self.lookup_chunk_size):
                try:
                    self.cursor.execute(
                        "SELECT box_id, device_id, box_no FROM boxes "
                        "WHERE location = %s AND device_id = %s AND box_no = ANY(%s)",
                        (location, device_id, list(part)),
                    )
                    rows = self.cursor.fetchall()
                except Exception as e:
                    raise StoreError.wrap("box lookup", e) from e
                for box_id, _, box_no in rows:
                    found[(device_id, str(box_no))] = box_id
        return found

    def create_boxes(self, location: str, refs: Sequence[BoxRef]) -> dict[BoxRef, Any]:
        """Insert boxes and read their generated ids back (RETURNING)."""
        rows = [(device_id, box_no, location, "IN") for device_id, box_no in refs]
        try:
            result = batch_insert(
                self.cursor,
                table="boxes",
                columns=["device_id", "box_no", "location", "status"],
                rows=rows,
                returning=["box_id", "device_id", "box_no"],
                page_size=self.insert_chunk_size,
            )
        except BatchInsertError as e:
            raise StoreError.wrap("box creation", e) from e
        created = {(device_id, str(box_no)): box_id for box_id, device_id, box_no in result.returned_values or []}
        missing = [ref for ref in refs if ref not in created]
        if missing:
            raise StoreError(f"box creation failed: no id returned for {len(missing)} box(es)")
        return created

    def insert_items(
        self,
        rows: Sequence[tuple[str, Any, Any]],
        on_batch: Callable[[int], None] | None = None,
    ) -> int:
        """Insert (imei, box_id, device_id) rows in chunks of insert_chunk_size."""
        inserted = 0
        for part in chunked(rows, self.insert_chunk_size):
            try:
                result = batch_insert(
                    self.cursor,
                    table="items",
                    columns=["imei", "box_id", "device_id", "status"],
                    rows=[(imei, box_id, device_id, "IN") for imei, box_id, device_id in part],
                    page_size=self.insert_chunk_size,
                )
            except BatchInsertError as e:
                raise StoreError.wrap("item insert", e) from e
            inserted += result.inserted_rows
            if on_batch is not None:
                on_batch(result.inserted_rows)
        return inserted

    def record_audit(self, summary: AuditSummary) -> Any:
        try:
            self.cursor.execute(
                "INSERT INTO inbound_imports "
                "(file_name, location, devices_count, boxes_count, items_count, devices, created_by) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s) RETURNING import_id",
                (
                    summary.file_name,
                    summary.location,
                    summary.devices_count,
                    summary.boxes_count,
                    summary.items_count,
                    list(summary.devices),
                    summary.actor,
                ),
            )
            row = self.cursor.fetchone()
        except Exception as e:
            raise StoreError.wrap("audit record", e) from e
        return row[0] if row else None
