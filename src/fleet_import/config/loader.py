from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..entities import get_entity
from ..models.config_models import (
    DEFAULT_HEADER_ROW,
    DEFAULT_MAX_BATCH_ROWS,
    DatabaseConfig,
    ImportConfig,
    SheetMappingConfig,
)

"""Config loader.

Responsibilities:
- Load the YAML config (default config/import.yml)
- Validate it against config_schema.json (shipped next to this module)
- Apply defaults (header_row=2, max_batch_rows=500)
- Build the frozen ImportConfig domain object
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the config violates
            the schema (missing keys, wrong types, unknown keys).
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


def _build_sheet_mappings(raw: dict[str, Any]) -> dict[str, SheetMappingConfig]:
    mappings: dict[str, SheetMappingConfig] = {}
    for sheet_name, entry in raw.items():
        known = get_entity(entry["entity"]).fields
        unknown = sorted(v for v in (entry.get("columns") or {}).values() if v not in known)
        if unknown:
            raise ConfigError(
                f"sheet_mappings.{sheet_name}.columns: unknown {entry['entity']} fields {unknown}"
            )
        mappings[sheet_name] = SheetMappingConfig(
            sheet_name=sheet_name,
            entity_type=entry["entity"],
            default_active=bool(entry.get("default_active", False)),
            columns={str(k): str(v) for k, v in (entry.get("columns") or {}).items()},
        )
    return mappings


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    sentinels = data.get("null_sentinels")
    return ImportConfig(
        source_directory=data["source_directory"],
        sheet_mappings=_build_sheet_mappings(data["sheet_mappings"]),
        database=db,
        header_row=data.get("header_row", DEFAULT_HEADER_ROW),
        max_batch_rows=data.get("max_batch_rows", DEFAULT_MAX_BATCH_ROWS),
        null_sentinels={s.strip().upper() for s in sentinels} if sentinels else None,
    )
