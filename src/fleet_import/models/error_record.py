from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord: one JSON Lines entry of the run error log.

row is the worksheet line of the failing row, or -1 for sheet / file level
errors where no single row is to blame.
"""

__all__ = [
    "ErrorRecord",
    "UNKNOWN_ROW",
]

UNKNOWN_ROW = -1


@dataclass(frozen=True)
class ErrorRecord:
    timestamp: str  # ISO8601 UTC ('Z')
    file: str
    sheet: str
    row: int  # 行番号。不明な場合 -1
    error_type: str  # UPPER_SNAKE (VALIDATION / 23505 / NO_MATCH / SHEET_ERROR ...)
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
