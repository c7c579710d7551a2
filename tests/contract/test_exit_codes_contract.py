from __future__ import annotations

import json
import re
from contextlib import contextmanager
from pathlib import Path

import psycopg2
import pytest

import stock_inbound.cli.__main__ as cli
from stock_inbound.cli.__main__ import EXIT_FATAL, EXIT_OK, EXIT_REJECTED, main as cli_main

from conftest import ID3, FakeStore, block_rows, make_xlsx

SUMMARY_RE = re.compile(
    r"^SUMMARY file=\S+ location=\S+ status=(committed|preview|rejected) devices=\d+ boxes=\d+ "
    r"items=\d+ issues=\d+ elapsed_sec=\d+(\.\d+)?$",
    re.MULTILINE,
)


@pytest.fixture()
def fake_db(monkeypatch, catalog):
    store = FakeStore(catalog)

    @contextmanager
    def _connection(cfg):
        yield object()

    monkeypatch.setattr(cli, "_db_connection", _connection)
    monkeypatch.setattr(cli, "_build_store", lambda cursor, cfg: store)
    return store


@pytest.fixture()
def inbound_file(temp_workdir: Path) -> Path:
    return make_xlsx(temp_workdir / "data" / "vendor.xlsx", block_rows())


def test_exit_ok_on_commit(write_config, inbound_file, fake_db, capsys):
    code = cli_main([str(inbound_file), "--location", "6", "--actor", "alice"])
    out = capsys.readouterr().out
    assert code == EXIT_OK == 0
    assert SUMMARY_RE.search(out)
    assert "status=committed devices=1 boxes=1 items=3" in out
    assert len(fake_db.items) == 3


def test_exit_ok_on_dry_run_with_labels_and_json(write_config, inbound_file, fake_db, temp_workdir, capsys):
    labels_out = temp_workdir / "out" / "labels.zpl"
    code = cli_main([str(inbound_file), "--location", "6", "--dry-run", "--json", "--labels-out", str(labels_out)])
    out = capsys.readouterr().out
    assert code == 0
    assert "status=preview" in out
    assert fake_db.items == {}
    zpl = labels_out.read_text(encoding="utf-8")
    assert zpl.startswith("^XA") and "^FDBOX: 076-004^FS" in zpl
    payload = json.loads(out[out.index("{"):out.rindex("}") + 1])
    assert payload["status"] == "preview"
    assert payload["counts"] == {"devices": 1, "boxes": 1, "items": 3}


def test_exit_rejected_on_conflict(write_config, inbound_file, fake_db, capsys):
    fake_db.items[ID3] = (1, 1)
    code = cli_main([str(inbound_file), "--location", "6"])
    out = capsys.readouterr().out
    assert code == EXIT_REJECTED == 2
    assert "status=rejected" in out
    assert f"ERROR   {ID3}" in out


def test_exit_rejected_on_invalid_location(write_config, inbound_file, fake_db):
    assert cli_main([str(inbound_file), "--location", "Roof"]) == EXIT_REJECTED


def test_exit_fatal_on_missing_config(temp_workdir, inbound_file, fake_db, capsys):
    code = cli_main([str(inbound_file), "--location", "6"])
    assert code == EXIT_FATAL == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_fatal_on_missing_file(write_config, temp_workdir, fake_db, capsys):
    code = cli_main([str(temp_workdir / "data" / "missing.xlsx"), "--location", "6"])
    assert code == EXIT_FATAL
    assert "ERROR file not found:" in capsys.readouterr().out


def test_exit_fatal_without_location(write_config, inbound_file, fake_db):
    assert cli_main([str(inbound_file)]) == EXIT_FATAL


def test_exit_fatal_on_database_connection_error(write_config, inbound_file, monkeypatch, capsys):
    @contextmanager
    def _refused(cfg):
        raise psycopg2.OperationalError("connection refused")
        yield

    monkeypatch.setattr(cli, "_db_connection", _refused)
    code = cli_main([str(inbound_file), "--location", "6"])
    assert code == EXIT_FATAL
    assert "ERROR database connection: connection refused" in capsys.readouterr().out


def test_inspect_layout_does_not_touch_the_store(write_config, inbound_file, monkeypatch, capsys):
    def _no_db(cfg):
        raise AssertionError("inspect must not connect")

    monkeypatch.setattr(cli, "_db_connection", _no_db)
    code = cli_main([str(inbound_file), "--inspect-layout"])
    out = capsys.readouterr().out
    assert code == 0
    assert "FILE: vendor.xlsx" in out
    assert '"mode": "blocks"' in out
    assert '"device_hint": "FMB140"' in out


def test_inspect_layout_rejected(write_config, temp_workdir, capsys):
    path = make_xlsx(temp_workdir / "data" / "bad.xlsx", [["nothing"], ["useful"]])
    assert cli_main([str(path), "--inspect-layout"]) == EXIT_REJECTED
    assert "inspect: HEADER_NOT_FOUND" in capsys.readouterr().out
