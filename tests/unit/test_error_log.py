from __future__ import annotations

import json
from pathlib import Path

from fleet_import.logging.error_log import ErrorLogBuffer, ErrorRecord
from fleet_import.models.batch_result import BatchResult
from fleet_import.models.errors import RowError


def test_error_record_json_line_has_fixed_keys():
    rec = ErrorRecord.create("flota.xlsx", "Vehiculos", 5, "VALIDATION", "plate: Plate is required")
    data = json.loads(rec.to_json_line())
    assert list(data) == ["timestamp", "file", "sheet", "row", "error_type", "message"]
    assert data["timestamp"].endswith("Z")


def test_batch_result_rows_are_mapped_to_sheet_lines(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path)
    result = BatchResult(
        inserted_count=1,
        updated_count=0,
        errors=[RowError(2, "plate: Plate is required", "VALIDATION"), RowError(3, "dup", None)],
    )
    assert buf.add_batch_result("flota.xlsx", "Vehiculos", result, header_row=2) == 2
    buf.add_sheet_error("flota.xlsx", "Personal", "SHEET_ERROR", "missing columns")
    fp = buf.flush()
    assert fp is not None and fp.parent == tmp_path
    lines = [json.loads(x) for x in fp.read_text(encoding="utf-8").splitlines()]
    assert [(x["row"], x["error_type"]) for x in lines] == [(4, "VALIDATION"), (5, "ERROR"), (-1, "SHEET_ERROR")]
    assert len(buf) == 0
    assert fp.name.startswith("errors-") and fp.suffix == ".log"


def test_flush_without_records_creates_nothing(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()
