from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader for the inbound import engine.

Responsibilities:
- Load YAML config (default: config/inbound.yml)
- Validate against the bundled JSON schema (stock_inbound/config/schema.json)
- Apply defaults for every tunable (scan windows, scoring table, batch sizes, ...)
"""

SCHEMA_PATH = Path(__file__).with_name("schema.json")
DEFAULT_CONFIG_PATH = Path("config/inbound.yml")

DEFAULT_SCORES: dict[str, int] = {
    "exact": 1000,
    "raw_prefix": 900,
    "pad3": 850,
    "trim3": 840,
    "pad4": 830,
    "key_prefix": 700,
}


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection fallbacks; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class LayoutConfig:
    header_scan_rows: int = 40
    box_scan_window: int = 15
    identifier_headers: tuple[str, ...] = ("imei", "serial")
    box_headers: tuple[str, ...] = ("box", "carton")
    sample_rows: int = 60  # column inference window below the header


@dataclass(frozen=True)
class StoreConfig:
    lookup_chunk_size: int = 500
    insert_chunk_size: int = 1000


@dataclass(frozen=True)
class ReportConfig:
    conflict_preview_limit: int = 50
    issue_preview_limit: int = 50


@dataclass(frozen=True)
class LabelConfig:
    width_dots: int = 600
    length_dots: int = 800


@dataclass(frozen=True)
class ImportConfig:
    locations: tuple[str, ...]
    database: DatabaseConfig = DatabaseConfig()
    layout: LayoutConfig = LayoutConfig()
    scores: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_SCORES))
    store: StoreConfig = StoreConfig()
    report: ReportConfig = ReportConfig()
    labels: LabelConfig = LabelConfig()


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema missing/invalid, or validation failure
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def config_from_dict(data: dict[str, Any]) -> ImportConfig:
    """Build ImportConfig from already-validated data, filling defaults."""
    db_raw = data.get("database") or {}
    layout_raw = data.get("layout") or {}
    inference_raw = data.get("inference") or {}
    store_raw = data.get("store") or {}
    report_raw = data.get("report") or {}
    labels_raw = data.get("labels") or {}
    scores = dict(DEFAULT_SCORES)
    scores.update((data.get("resolver") or {}).get("scores") or {})

    layout_defaults = LayoutConfig()
    return ImportConfig(
        locations=tuple(str(loc) for loc in data["locations"]),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        layout=LayoutConfig(
            header_scan_rows=layout_raw.get("header_scan_rows", layout_defaults.header_scan_rows),
            box_scan_window=layout_raw.get("box_scan_window", layout_defaults.box_scan_window),
            identifier_headers=tuple(
                h.strip().lower() for h in layout_raw.get("identifier_headers", layout_defaults.identifier_headers)
            ),
            box_headers=tuple(h.strip().lower() for h in layout_raw.get("box_headers", layout_defaults.box_headers)),
            sample_rows=inference_raw.get("sample_rows", layout_defaults.sample_rows),
        ),
        scores=scores,
        store=StoreConfig(**store_raw),
        report=ReportConfig(**report_raw),
        labels=LabelConfig(**labels_raw),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)
    return config_from_dict(data)
