from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from ..models.batch_result import BatchResult
from ..models.error_record import UNKNOWN_ROW, ErrorRecord

"""Run error log: buffered JSON Lines written to ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC).

Records are collected for the whole run and flushed once at the end; no file
is created when the run had no errors.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer of ErrorRecords (serial use only)."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        # ファイル名は初回アクセス時に確定
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def add_batch_result(self, file: str, sheet: str, result: BatchResult, header_row: int) -> int:
        """Record every row error of a batch; returns the number appended."""
        for err in result.errors:
            self.append(
                ErrorRecord.create(
                    file=file,
                    sheet=sheet,
                    row=header_row + err.row_index,
                    error_type=err.code or "ERROR",
                    message=err.message,
                )
            )
        return len(result.errors)

    def add_sheet_error(self, file: str, sheet: str, error_type: str, message: str) -> None:
        self.append(ErrorRecord.create(file, sheet, UNKNOWN_ROW, error_type, message))

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file; None when nothing was buffered."""
        if not self._records:
            return None
        fp = self.file_path
        fp.parent.mkdir(parents=True, exist_ok=True)
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        logger.info("error log written: %s (%d records)", fp, len(self._records))
        self._records.clear()
        return fp
