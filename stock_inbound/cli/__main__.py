from __future__ import annotations

import argparse
import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from stock_inbound.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from stock_inbound.db.store import PostgresInventoryStore
from stock_inbound.excel.grid_parser import detect_layout
from stock_inbound.excel.reader import read_raw_grid
from stock_inbound.logging.init import log_summary, setup_logging
from stock_inbound.models.import_result import ImportResult
from stock_inbound.models.rejection import ImportRejected
from stock_inbound.services.orchestrator import run_import
from stock_inbound.services.summary import render_summary_line

"""CLI entrypoint.

    python -m stock_inbound.cli FILE --location LOC --actor NAME
        [--config PATH] [--dry-run] [--labels-out PATH] [--json] [--inspect-layout] [--debug]

Exit codes:
    0  import committed, or preview built (--dry-run / --inspect-layout)
    2  import rejected (structural error, identifier conflict, no valid rows, store error)
    1  fatal startup error (config, missing file, database connection)
"""

EXIT_OK = 0
EXIT_REJECTED = 2
EXIT_FATAL = 1


@contextmanager
def _db_connection(cfg: ImportConfig):  # pragma: no cover (thin wrapper; tested via integration)
    """psycopg2 connection + cursor.

    Connection settings, first match wins:
        1. DATABASE_URL / PGDSN (after .env has been loaded with override)
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the `database` section of the config file
    The connection runs in autocommit mode; the store opens its own BEGIN/COMMIT block
    for the write phase.
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    try:
        conn.autocommit = True
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def _build_store(cursor, cfg: ImportConfig) -> PostgresInventoryStore:
    return PostgresInventoryStore(
        cursor,
        lookup_chunk_size=cfg.store.lookup_chunk_size,
        insert_chunk_size=cfg.store.insert_chunk_size,
    )


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values override the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Inbound spreadsheet -> stock import")
    p.add_argument("file", type=Path, help="Spreadsheet to import (first sheet is read)")
    p.add_argument("--location", help="Location tag (one of the configured locations)")
    p.add_argument("--actor", default=os.getenv("USER", "cli"), help="Name recorded in the audit row")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config file path")
    p.add_argument("--dry-run", action="store_true", help="Build labels and plan without writing")
    p.add_argument("--labels-out", type=Path, help="Write ZPL labels to this file")
    p.add_argument("--json", action="store_true", help="Print the full result as JSON")
    p.add_argument("--inspect-layout", action="store_true", help="Print the detected layout then exit")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _inspect_layout(path: Path, cfg: ImportConfig) -> int:
    try:
        grid = read_raw_grid(path)
        outcome = detect_layout(grid, cfg.layout)
    except ImportRejected as e:
        print(f"inspect: {e.reason}: {e.message}")
        for line in e.offending:
            print(f"  {line}")
        return EXIT_REJECTED
    print(f"FILE: {path.name} rows={len(grid)}")
    print(json.dumps(outcome.layout_dict(), ensure_ascii=False, indent=2))
    return EXIT_OK


def _write_labels(path: Path, result: ImportResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(label.printer_markup for label in result.labels) + "\n", encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    # None only: an explicit [] must not fall back to sys.argv (pytest arguments)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if not args.file.exists():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    if args.inspect_layout:
        return _inspect_layout(args.file, cfg)

    if not args.location:
        logger.error("--location is required")
        return EXIT_FATAL

    try:
        with _db_connection(cfg) as cur:
            result = run_import(
                args.file,
                file_name=args.file.name,
                location=args.location,
                actor=args.actor,
                store=_build_store(cur, cfg),
                config=cfg,
                dry_run=args.dry_run,
            )
    except psycopg2.Error as e:
        logger.error(f"database connection: {e}")
        return EXIT_FATAL

    if result.ok:
        logger.info(f"labels={len(result.labels)} unknown_devices={len(result.unknown_devices)}")
        if args.labels_out is not None:
            _write_labels(args.labels_out, result)
            logger.info(f"labels written to {args.labels_out}")
    else:
        failure = result.failure
        for value in failure.offending:
            logger.error(f"  {value}")
        if failure.total_offending > len(failure.offending):
            logger.error(f"  ... {failure.total_offending - len(failure.offending)} more")
    if result.unknown_devices:
        logger.warning(f"unknown devices: {', '.join(result.unknown_devices)}")

    if args.json:
        print(json.dumps(result.to_dict(issue_limit=cfg.report.issue_preview_limit), ensure_ascii=False, indent=2, default=str))

    # log_summary adds the "SUMMARY " prefix itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    return EXIT_OK if result.ok else EXIT_REJECTED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
