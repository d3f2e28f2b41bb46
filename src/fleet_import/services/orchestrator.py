from __future__ import annotations

import logging
import time
import zipfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from openpyxl.utils.exceptions import InvalidFileException

from ..entities import get_entity
from ..excel.reader import MissingColumnsError, SheetHeaderError, read_excel_file, sheet_to_rows
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ImportConfig, SheetMappingConfig
from ..models.options import ImportOptions
from ..models.processing_result import BatchStatsAccumulator, FileStat, ProcessingResult, SheetStat
from ..models.raw_row import CellTypeError
from .engine import import_batch
from .executor import BatchAbortedError
from .progress import ProgressTracker

"""Workbook runner: directory of .xlsx files -> engine batches -> ProcessingResult.

Each configured sheet is read into RawRows and sent to import_batch in chunks
of at most ``max_batch_rows``. Sheets naming companies are processed before
the sheets that reference them, so vehicles and personnel can name a company
created in the same workbook.

Row errors go to the error log; a sheet that cannot be read or whose batch is
rolled back is a sheet failure and processing continues with the next sheet.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessingError",
    "process_all",
    "process_file",
    "scan_excel_files",
]

SHEET_ERROR = "SHEET_ERROR"
BATCH_ABORTED = "BATCH_ABORTED"
READ_ERROR = "READ_ERROR"

# 参照される側を先に取り込む
_ENTITY_ORDER = {"company": 0, "vehicle": 1, "personnel": 1}


class ProcessingError(Exception):
    """Fatal error that prevents the run (missing directory, unreadable path)."""


def scan_excel_files(directory: Path) -> list[Path]:
    """Non-recursive .xlsx scan, sorted by name; Excel lock files (~$) are ignored."""
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix.lower() == ".xlsx" and not p.name.startswith("~$")
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def _ordered_mappings(config: ImportConfig) -> list[SheetMappingConfig]:
    mappings = list(config.sheet_mappings.values())
    return sorted(mappings, key=lambda m: _ENTITY_ORDER.get(m.entity_type, 1))


def _chunks(rows: list, size: int) -> list[list]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def _status(written: int, rejected: int) -> str:
    if rejected == 0:
        return "success"
    return "partial" if written else "failed"


def _process_sheet(
    file_name: str,
    df: Any,
    mapping: SheetMappingConfig,
    config: ImportConfig,
    store: Any,
    error_log: ErrorLogBuffer,
    batch_stats: BatchStatsAccumulator,
) -> SheetStat:
    start = time.perf_counter()
    entity = get_entity(mapping.entity_type)
    inserted = updated = rejected = 0

    def failed(error_type: str, message: str, rows: int) -> SheetStat:
        logger.error("%s / %s: %s", file_name, mapping.sheet_name, message)
        error_log.add_sheet_error(file_name, mapping.sheet_name, error_type, message)
        return SheetStat(
            file_name=file_name,
            sheet_name=mapping.sheet_name,
            entity_type=entity.name,
            status="failed",
            inserted_rows=inserted,
            updated_rows=updated,
            rejected_rows=rejected + rows,
            elapsed_seconds=time.perf_counter() - start,
        )

    try:
        sheet = sheet_to_rows(
            df,
            mapping.sheet_name,
            entity,
            header_row=config.header_row,
            extra_aliases=mapping.columns,
            null_sentinels=config.null_sentinels,
        )
    except (SheetHeaderError, MissingColumnsError, CellTypeError) as e:
        return failed(SHEET_ERROR, str(e), 0)

    options = ImportOptions(default_active=mapping.default_active, max_rows=config.max_batch_rows)
    for chunk in _chunks(sheet.rows, config.max_batch_rows):
        batch_start = time.perf_counter()
        try:
            result = import_batch(chunk, entity.name, options, store=store)
        except BatchAbortedError as e:
            return failed(BATCH_ABORTED, str(e), len(chunk))
        finally:
            batch_stats.add_batch_time(time.perf_counter() - batch_start)
        inserted += result.inserted_count
        updated += result.updated_count
        rejected += len(result.errors)
        error_log.add_batch_result(file_name, mapping.sheet_name, result, sheet.header_row)
        for warning in result.warnings:
            logger.warning(
                "%s / %s row %d: %s: %s",
                file_name, mapping.sheet_name, sheet.sheet_line(warning.row_index),
                warning.field, warning.message,
            )

    logger.info(
        "%s / %s (%s): inserted=%d updated=%d rejected=%d",
        file_name, mapping.sheet_name, entity.name, inserted, updated, rejected,
    )
    return SheetStat(
        file_name=file_name,
        sheet_name=mapping.sheet_name,
        entity_type=entity.name,
        status=_status(inserted + updated, rejected),
        inserted_rows=inserted,
        updated_rows=updated,
        rejected_rows=rejected,
        elapsed_seconds=time.perf_counter() - start,
    )


def process_file(
    file_path: Path, config: ImportConfig, store: Any, error_log: ErrorLogBuffer
) -> tuple[FileStat, int]:
    """Import every configured sheet of one workbook; returns (FileStat, skipped_sheets)."""
    start = time.perf_counter()
    mappings = _ordered_mappings(config)
    batch_stats = BatchStatsAccumulator()

    try:
        raw_sheets = read_excel_file(file_path, target_sheets=[m.sheet_name for m in mappings])
    except (OSError, ValueError, zipfile.BadZipFile, InvalidFileException) as e:
        logger.error("%s: cannot read workbook: %s", file_path.name, e)
        error_log.add_sheet_error(file_path.name, "<FILE_LEVEL>", READ_ERROR, str(e))
        stat = FileStat(
            file_name=file_path.name,
            status="failed",
            inserted_rows=0,
            updated_rows=0,
            rejected_rows=0,
            elapsed_seconds=time.perf_counter() - start,
            sheets=[],
        )
        return stat, 0

    sheets: list[SheetStat] = []
    skipped = 0
    for mapping in mappings:
        if mapping.sheet_name not in raw_sheets:
            # 設定にあるがブックに存在しないシート
            logger.debug("%s: sheet '%s' not present, skipped", file_path.name, mapping.sheet_name)
            skipped += 1
            continue
        sheets.append(
            _process_sheet(
                file_path.name, raw_sheets[mapping.sheet_name], mapping, config, store, error_log, batch_stats
            )
        )

    total_batches, avg_batch, p95_batch = batch_stats.get_stats()
    status = "success" if all(s.status == "success" for s in sheets) else "failed"
    stat = FileStat(
        file_name=file_path.name,
        status=status,
        inserted_rows=sum(s.inserted_rows for s in sheets),
        updated_rows=sum(s.updated_rows for s in sheets),
        rejected_rows=sum(s.rejected_rows for s in sheets),
        elapsed_seconds=time.perf_counter() - start,
        sheets=sheets,
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )
    return stat, skipped


def process_all(
    config: ImportConfig, store: Any, error_log: ErrorLogBuffer | None = None
) -> ProcessingResult:
    """Import all workbooks of config.source_directory.

    The error log is flushed once at the end of the run.
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    file_paths = scan_excel_files(Path(config.source_directory))
    if not file_paths:
        logger.warning("no .xlsx files in %s", config.source_directory)

    file_stats: list[FileStat] = []
    skipped_sheets = 0
    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path.name)
            stat, skipped = process_file(file_path, config, store, error_log)
            file_stats.append(stat)
            skipped_sheets += skipped
            progress.finish_file(stat.inserted_rows, stat.updated_rows, stat.rejected_rows)

    try:
        error_log.flush()
    except OSError as e:
        logger.error("failed writing error log: %s", e)

    end_time = datetime.now(UTC)
    elapsed = (end_time - start_time).total_seconds()
    inserted = sum(s.inserted_rows for s in file_stats)
    updated = sum(s.updated_rows for s in file_stats)
    success_files = sum(1 for s in file_stats if s.status == "success")
    return ProcessingResult(
        success_files=success_files,
        failed_files=len(file_stats) - success_files,
        total_inserted_rows=inserted,
        total_updated_rows=updated,
        total_rejected_rows=sum(s.rejected_rows for s in file_stats),
        skipped_sheets=skipped_sheets,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=(inserted + updated) / elapsed if elapsed > 0 else 0.0,
        file_stats=file_stats,
    )
