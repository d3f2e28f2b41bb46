from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..db.bulk_write import BatchMetrics
from ..db.connection import DatabaseConnectionError, db_cursor, load_env_file
from ..db.store import PostgresStore
from ..entities import get_entity
from ..excel.reader import MissingColumnsError, SheetHeaderError, read_excel_file, sheet_to_rows
from ..logging.init import log_summary, setup_logging
from ..services.orchestrator import ProcessingError, process_all, scan_excel_files
from ..services.summary import render_summary_line

"""CLI entrypoint: ``fleet-import`` / ``python -m fleet_import.cli``.

Exit codes:
    0  every file and sheet imported without row errors
    2  at least one sheet failed or at least one row was rejected
    1  fatal (config, database connection, missing source directory)
"""

logger = logging.getLogger("fleet_import.cli")

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="fleet-import", description="Excel -> PostgreSQL fleet bulk importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--inspect-data", action="store_true", help="Print mapped sheet columns & first rows then exit"
    )
    return p.parse_args(argv)


def _inspect_data(cfg) -> int:
    """Show how each configured sheet maps onto entity fields (no DB access)."""
    try:
        files = scan_excel_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not files:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for f in files:
        print(f"FILE: {f.name}")
        raw = read_excel_file(f, target_sheets=list(cfg.sheet_mappings))
        for sname, df in raw.items():
            mapping = cfg.sheet_mappings[sname]
            try:
                sheet = sheet_to_rows(
                    df,
                    sname,
                    get_entity(mapping.entity_type),
                    header_row=cfg.header_row,
                    extra_aliases=mapping.columns,
                    null_sentinels=cfg.null_sentinels,
                )
            except (SheetHeaderError, MissingColumnsError) as e:
                print(f"  SHEET: {sname} error={e}")
                continue
            print(f"  SHEET: {sname} entity={mapping.entity_type} fields={sheet.columns} rows={len(sheet.rows)}")
            if sheet.unknown_columns:
                print(f"    unknown_columns={sheet.unknown_columns}")
            for row in sheet.rows[:3]:
                # datetime 等は text() で文字列化
                print(f"    row {row.index}: {{{', '.join(f'{k}: {row.text(k)}' for k in row.values)}}}")
    return EXIT_SUCCESS_ALL


def _log_batch_metrics(metrics: BatchMetrics) -> None:
    logger.debug("bulk write ops=%d elapsed=%.4fs", metrics.batch_size, metrics.elapsed_seconds)


def main(argv: list[str] | None = None) -> int:
    # NOTE: [] が渡された場合に sys.argv[1:] を読まないよう None のときのみ参照
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    app_logger = setup_logging(debug=args.debug)

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        app_logger.error("config: %s", e)
        return EXIT_FATAL

    directory = Path(cfg.source_directory)
    if not directory.exists():
        app_logger.error("directory not found: %s", directory)
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    app_logger.info("Processing files from: %s", directory)
    try:
        with db_cursor(cfg.database) as cur:
            store = PostgresStore(cur, metrics_callback=_log_batch_metrics)
            result = process_all(cfg, store)
    except DatabaseConnectionError as e:
        app_logger.error("database: %s", e)
        return EXIT_FATAL
    except ProcessingError as e:
        app_logger.error("processing: %s", e)
        return EXIT_FATAL

    # log_summary が "SUMMARY " ラベルを付与するため本文のみ渡す
    log_summary(render_summary_line(result).removeprefix("SUMMARY "))

    if result.failed_files > 0 or result.total_rejected_rows > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
