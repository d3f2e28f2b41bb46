from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .rules import RuleKind, Severity

"""Row-indexed error models shared by the pipeline phases.

ValidationError is produced by the row validator (one per failing field),
RowError is the flattened per-row shape reported in BatchResult.errors.
Both always carry the original 1-based row index.
"""

__all__ = [
    "ValidationError",
    "RowError",
    "VALIDATION_ERROR_CODE",
]

VALIDATION_ERROR_CODE = "VALIDATION"


@dataclass(frozen=True)
class ValidationError:
    row_index: int
    field: str
    value: Any
    message: str
    severity: Severity = Severity.ERROR
    kind: RuleKind | None = None
    suggestion: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "field": self.field,
            "value": self.value,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.kind is not None:
            data["kind"] = self.kind.value
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        return data


@dataclass(frozen=True)
class RowError:
    """Per-row error entry of a BatchResult (validation or execution phase)."""
    row_index: int
    message: str
    code: str | None = None
    data: Any = None

    def render(self) -> str:
        return f"row {self.row_index}: {self.message}"
