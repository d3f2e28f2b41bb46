from __future__ import annotations

from collections.abc import Sequence

from ..models.batch_result import BatchResult, RowState
from ..models.errors import VALIDATION_ERROR_CODE, RowError, ValidationError
from .executor import ExecutionReport

"""Result aggregation: validation errors + execution report -> BatchResult."""

__all__ = [
    "AggregationError",
    "aggregate",
    "merge_validation_errors",
]


class AggregationError(Exception):
    """Row accounting does not add up (a row was lost or counted twice)."""


def merge_validation_errors(errors: Sequence[ValidationError]) -> list[RowError]:
    """One RowError per rejected row, fields joined in evaluation order."""
    by_row: dict[int, list[ValidationError]] = {}
    for err in errors:
        if err.is_error:
            by_row.setdefault(err.row_index, []).append(err)
    return [
        RowError(
            row_index=index,
            message="; ".join(f"{e.field}: {e.message}" for e in row_errors),
            code=VALIDATION_ERROR_CODE,
            data=[e.to_dict() for e in row_errors],
        )
        for index, row_errors in sorted(by_row.items())
    ]


def aggregate(
    batch_size: int,
    validation_errors: Sequence[ValidationError],
    warnings: Sequence[ValidationError],
    execution: ExecutionReport,
) -> BatchResult:
    rejected = merge_validation_errors(validation_errors)
    errors = sorted(rejected + list(execution.errors), key=lambda e: e.row_index)

    outcomes: dict[int, RowState] = {}
    for index in execution.inserted_rows:
        outcomes[index] = RowState.INSERTED
    for index in execution.updated_rows:
        if index in outcomes:
            raise AggregationError(f"row {index} reported as both inserted and updated")
        outcomes[index] = RowState.UPDATED
    for err in errors:
        if err.row_index in outcomes:
            raise AggregationError(f"row {err.row_index} has more than one outcome")
        outcomes[err.row_index] = RowState.REJECTED

    total = execution.inserted_count + execution.updated_count + len(errors)
    if total != batch_size or len(outcomes) != batch_size:
        raise AggregationError(
            f"row accounting mismatch: inserted={execution.inserted_count} "
            f"updated={execution.updated_count} errors={len(errors)} batch_size={batch_size}"
        )

    return BatchResult(
        inserted_count=execution.inserted_count,
        updated_count=execution.updated_count,
        errors=errors,
        warnings=sorted(warnings, key=lambda w: w.row_index),
        outcomes=dict(sorted(outcomes.items())),
    )
