from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the workbook runner.

Built by fleet_import.config.loader after schema validation.
"""

DEFAULT_HEADER_ROW = 2
DEFAULT_MAX_BATCH_ROWS = 500


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (.env, DATABASE_URL, PG*) take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class SheetMappingConfig:
    """Maps one workbook sheet to an entity type."""
    sheet_name: str
    entity_type: str  # company / vehicle / personnel
    default_active: bool = False
    columns: dict[str, str] = field(default_factory=dict)  # ヘッダ表記 -> フィールド名 (追加エイリアス)


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for one run."""
    source_directory: str
    sheet_mappings: dict[str, SheetMappingConfig]
    database: DatabaseConfig
    header_row: int = DEFAULT_HEADER_ROW  # 1-based
    max_batch_rows: int = DEFAULT_MAX_BATCH_ROWS
    null_sentinels: set[str] | None = None  # 大文字化済
