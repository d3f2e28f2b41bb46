from __future__ import annotations

import pytest

from fleet_import.models.batch_result import RowState
from fleet_import.models.errors import VALIDATION_ERROR_CODE, RowError, ValidationError
from fleet_import.models.rules import RuleKind, Severity
from fleet_import.services.aggregator import AggregationError, aggregate, merge_validation_errors
from fleet_import.services.executor import ExecutionReport


def _verr(row, field, message, severity=Severity.ERROR):
    return ValidationError(row, field, None, message, severity, RuleKind.REQUIRED)


def test_validation_errors_merge_into_one_row_error():
    merged = merge_validation_errors(
        [_verr(3, "plate", "Plate is required"), _verr(3, "type", "Vehicle type is required"), _verr(1, "company", "x")]
    )
    assert [e.row_index for e in merged] == [1, 3]
    assert merged[1].message == "plate: Plate is required; type: Vehicle type is required"
    assert merged[1].code == VALIDATION_ERROR_CODE
    assert [d["field"] for d in merged[1].data] == ["plate", "type"]


def test_aggregate_conserves_rows_and_sorts_errors():
    execution = ExecutionReport(
        inserted_rows=[1, 4],
        updated_rows=[5],
        errors=[RowError(2, "duplicate key", "23505")],
    )
    result = aggregate(
        5,
        [_verr(3, "plate", "Plate is required")],
        [_verr(1, "year", "old", Severity.WARNING)],
        execution,
    )
    assert result.inserted_count == 2 and result.updated_count == 1
    assert [e.row_index for e in result.errors] == [2, 3]
    assert result.total_rows == 5
    assert result.outcomes == {
        1: RowState.INSERTED,
        2: RowState.REJECTED,
        3: RowState.REJECTED,
        4: RowState.INSERTED,
        5: RowState.UPDATED,
    }
    assert all(state.is_terminal for state in result.outcomes.values())
    assert len(result.warnings) == 1
    assert result.error_lines() == ["row 2: duplicate key", "row 3: plate: Plate is required"]


def test_accounting_mismatch_raises():
    with pytest.raises(AggregationError):
        aggregate(3, [], [], ExecutionReport(inserted_rows=[1, 2]))


def test_row_with_two_outcomes_raises():
    execution = ExecutionReport(inserted_rows=[1], errors=[RowError(1, "boom")])
    with pytest.raises(AggregationError):
        aggregate(2, [], [], execution)
