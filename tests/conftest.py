# Shared pytest fixtures
from __future__ import annotations

import copy
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from stock_inbound.config.loader import ImportConfig
from stock_inbound.db.store import AuditSummary, StoreError
from stock_inbound.logging.error_log import ErrorLogBuffer
from stock_inbound.logging.init import reset_logging
from stock_inbound.models.catalog import DeviceCatalogEntry

ID1 = "356938035643809"
ID2 = "356938035643817"
ID3 = "356938035643825"
ID4 = "356938035643833"


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """locations: ["00", "1", "6", "Cabinet"]
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: stock
layout:
  header_scan_rows: 40
  box_scan_window: 15
  identifier_headers: [imei, serial]
  box_headers: [box, carton]
inference:
  sample_rows: 60
resolver:
  scores:
    exact: 1000
store:
  lookup_chunk_size: 500
  insert_chunk_size: 1000
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "inbound.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def config() -> ImportConfig:
    return ImportConfig(locations=("00", "1", "6", "Cabinet"))


@pytest.fixture()
def catalog() -> list[DeviceCatalogEntry]:
    return [
        DeviceCatalogEntry("FMB140", "FMB140", device_id=1),
        DeviceCatalogEntry("FMB920", "FMB920", device_id=2),
        DeviceCatalogEntry("FMC234", "FMC234", device_id=3),
        DeviceCatalogEntry("FMC920", "FMC920", device_id=4),
        DeviceCatalogEntry("FMB001", "FMB001", active=False, device_id=5),
    ]


def make_xlsx(path: Path, rows: list[list[object]], sheet_name: str = "Sheet1") -> Path:
    """Write rows (no header interpretation) to the first sheet of an xlsx file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


@pytest.fixture()
def xlsx_factory(tmp_path: Path):
    def _make(rows: list[list[object]], name: str = "inbound.xlsx") -> Path:
        return make_xlsx(tmp_path / name, rows)
    return _make


def block_rows(master: str = "FMB140BTZ9FD-076-004", ids: tuple[str, ...] = (ID1, ID2, ID3)) -> list[list[object]]:
    """Single vendor block: device hint, header row, master box printed once."""
    rows: list[list[object]] = [["FMB140", None], ["Box No.", "IMEI"]]
    for i, identifier in enumerate(ids):
        rows.append([master if i == 0 else None, identifier])
    return rows


class FakeStore:
    """In-memory InventoryStore.

    `transaction()` snapshots the state and restores it when the block raises, like a
    database ROLLBACK. `fail_on` names operations that raise StoreError.
    `appear_on_second_lookup` identifiers show up in the store right after the first
    identifier lookup (a concurrent import committing between check and commit).
    """

    def __init__(self, catalog: list[DeviceCatalogEntry], existing: dict[str, Any] | None = None) -> None:
        self.catalog = list(catalog)
        self.items: dict[str, tuple[Any, Any]] = dict(existing or {})
        self.boxes: dict[tuple[Any, str, str], int] = {}
        self.audits: list[AuditSummary] = []
        self.fail_on: set[str] = set()
        self.appear_on_second_lookup: set[str] = set()
        self.lookups = 0
        self.transactions = 0
        self.rollbacks = 0
        self._next_box_id = 100

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StoreError(f"{operation} failed: simulated")

    @contextmanager
    def transaction(self):
        self.transactions += 1
        snapshot = (dict(self.items), dict(self.boxes), list(self.audits), self._next_box_id)
        try:
            yield
        except BaseException:
            self.rollbacks += 1
            self.items, self.boxes, self.audits, self._next_box_id = snapshot
            raise

    def load_devices(self) -> list[DeviceCatalogEntry]:
        self._maybe_fail("load_devices")
        return list(self.catalog)

    def find_existing_identifiers(self, identifiers) -> set[str]:
        self._maybe_fail("find_existing_identifiers")
        self.lookups += 1
        if self.lookups == 2:
            for identifier in self.appear_on_second_lookup:
                self.items[identifier] = (None, None)
        return {i for i in identifiers if i in self.items}

    def find_boxes(self, location, refs) -> dict[tuple[Any, str], Any]:
        self._maybe_fail("find_boxes")
        return {
            (device_id, box_no): self.boxes[(device_id, box_no, location)]
            for device_id, box_no in refs
            if (device_id, box_no, location) in self.boxes
        }

    def create_boxes(self, location, refs) -> dict[tuple[Any, str], Any]:
        self._maybe_fail("create_boxes")
        created = {}
        for device_id, box_no in refs:
            self._next_box_id += 1
            self.boxes[(device_id, box_no, location)] = self._next_box_id
            created[(device_id, box_no)] = self._next_box_id
        return created

    def insert_items(self, rows, on_batch=None) -> int:
        self._maybe_fail("insert_items")
        for imei, box_id, device_id in rows:
            self.items[imei] = (box_id, device_id)
        if on_batch is not None:
            on_batch(len(rows))
        return len(rows)

    def record_audit(self, summary: AuditSummary) -> int:
        self._maybe_fail("record_audit")
        self.audits.append(copy.copy(summary))
        return len(self.audits)


@pytest.fixture()
def store(catalog) -> FakeStore:
    return FakeStore(catalog)


class FakeCursor:
    """psycopg2 cursor stand-in: records statements, serves queued fetch results."""

    def __init__(self, results: list[list[tuple]] | None = None, fail_on: str | None = None) -> None:
        self.executed: list[tuple[str, Any]] = []
        self.results = list(results or [])
        self.fail_on = fail_on

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError(f"simulated failure on {self.fail_on}\nDETAIL: internal")

    def fetchall(self) -> list[tuple]:
        return self.results.pop(0) if self.results else []

    def fetchone(self) -> tuple | None:
        rows = self.fetchall()
        return rows[0] if rows else None

    def statements(self) -> list[str]:
        return [sql for sql, _ in self.executed]


@pytest.fixture()
def fake_execute_values(monkeypatch):
    """Replace execute_values with a recorder on the FakeCursor."""
    import stock_inbound.db.batch_insert as bi

    def _fake(cursor, sql, rows, page_size=1000, fetch=False):
        cursor.execute(sql, list(rows))
        if fetch:
            return cursor.fetchall()
        return None

    monkeypatch.setattr(bi, "execute_values", _fake)
    return _fake


@pytest.fixture()
def error_log(tmp_path: Path) -> ErrorLogBuffer:
    return ErrorLogBuffer(logs_dir=tmp_path / "logs")
