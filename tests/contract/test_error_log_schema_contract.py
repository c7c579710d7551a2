from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path

import stock_inbound.cli.__main__ as cli
from stock_inbound.cli.__main__ import main as cli_main

from conftest import FakeStore, block_rows, make_xlsx

"""Error log contract: JSON Lines under ./logs, fixed keys, row=-1 for file-level errors."""

KEYS = {"timestamp", "file", "row", "field", "error_type", "message"}


def test_error_log_written_for_rejected_import(write_config, temp_workdir: Path, monkeypatch, catalog):
    @contextmanager
    def _connection(cfg):
        yield None

    monkeypatch.setattr(cli, "_db_connection", _connection)
    monkeypatch.setattr(cli, "_build_store", lambda cursor, cfg: FakeStore(catalog))

    path = make_xlsx(temp_workdir / "data" / "bad_rows.xlsx", block_rows(ids=("123", "456")))
    assert cli_main([str(path), "--location", "6"]) == 2

    logs = list((temp_workdir / "logs").glob("inbound-errors-*.log"))
    assert len(logs) == 1
    records = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert all(set(r) == KEYS for r in records)
    assert [(r["row"], r["field"], r["error_type"]) for r in records] == [
        (3, "identifier", "INVALID_IDENTIFIER"),
        (4, "identifier", "INVALID_IDENTIFIER"),
        (-1, "<FILE_LEVEL>", "NO_VALID_ROWS"),
    ]
    assert all(r["file"] == "bad_rows.xlsx" for r in records)


def test_no_error_log_for_clean_import(write_config, temp_workdir: Path, monkeypatch, catalog):
    @contextmanager
    def _connection(cfg):
        yield None

    monkeypatch.setattr(cli, "_db_connection", _connection)
    monkeypatch.setattr(cli, "_build_store", lambda cursor, cfg: FakeStore(catalog))

    path = make_xlsx(temp_workdir / "data" / "clean.xlsx", block_rows())
    assert cli_main([str(path), "--location", "6"]) == 0
    assert list((temp_workdir / "logs").glob("inbound-errors-*.log")) == []
