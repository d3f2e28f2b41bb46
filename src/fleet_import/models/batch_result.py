from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .errors import RowError, ValidationError

"""BatchResult model returned by the import engine entry point.

State transitions per row: PENDING -> (REJECTED | READY) -> (INSERTED | UPDATED | REJECTED)
Terminal states: INSERTED, UPDATED, REJECTED.
"""

__all__ = [
    "RowState",
    "BatchResult",
]


class RowState(Enum):
    PENDING = "pending"
    READY = "ready"
    INSERTED = "inserted"
    UPDATED = "updated"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RowState.INSERTED, RowState.UPDATED, RowState.REJECTED)


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one batch.

    errors holds at most one RowError per row, ordered by row_index.
    warnings never block a row and are reported separately.
    """
    inserted_count: int
    updated_count: int
    errors: list[RowError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)
    outcomes: dict[int, RowState] = field(default_factory=dict)  # row_index -> 終端状態

    @property
    def total_rows(self) -> int:
        return self.inserted_count + self.updated_count + len(self.errors)

    @property
    def success(self) -> bool:
        return not self.errors

    def error_lines(self) -> list[str]:
        return [e.render() for e in self.errors]
