from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Union

"""RawRow model for the bulk import engine.

A RawRow is one spreadsheet data row after header mapping: field name -> scalar
cell value. Cell values are restricted to a closed set of kinds
(text / number / boolean / date / empty) and are checked when the row is built,
so nothing downstream has to deal with pandas or numpy scalar types.
"""

__all__ = [
    "CellValue",
    "CellTypeError",
    "RawRow",
    "to_cell_value",
]

CellValue = Union[str, int, float, bool, date, datetime, None]

# スプレッドシートの「はい」表現 (大文字小文字無視)
_TRUTHY = {"1", "true", "si", "sí", "s", "yes", "y", "x", "verdadero"}


class CellTypeError(TypeError):
    """Raised when a cell value is not one of the supported scalar kinds."""


def to_cell_value(value: Any) -> CellValue:
    """Coerce a raw cell value into a CellValue.

    pandas / numpy scalars are unwrapped (NaN/NaT -> None, Timestamp -> datetime,
    numpy ints/floats/bools -> Python builtins). Anything else that is not a
    supported scalar raises CellTypeError.
    """
    if value is None:
        return None
    # bool は int のサブクラスなので先に判定
    if isinstance(value, bool):
        return value
    if isinstance(value, (str, int, datetime, date)):
        # pandas.Timestamp is a datetime subclass; NaT is handled below
        if isinstance(value, datetime) and hasattr(value, "to_pydatetime"):
            if value != value:  # NaT
                return None
            return value.to_pydatetime()
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else float(value)
    # numpy scalar (np.int64, np.float64, np.bool_) / pandas NaT
    item = getattr(value, "item", None)
    if callable(item):
        try:
            unwrapped = item()
        except (ValueError, TypeError) as e:
            raise CellTypeError(f"unsupported cell value {value!r}") from e
        if unwrapped is not value:
            return to_cell_value(unwrapped)
    if type(value).__name__ == "NaTType":
        return None
    raise CellTypeError(f"unsupported cell type {type(value).__name__}: {value!r}")


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class RawRow:
    """One input row of a batch.

    index is the 1-based data row number (header offset already removed),
    unique within a batch. values is checked and made read-only whenever a
    row is built, directly or through from_mapping.
    """
    index: int
    values: Mapping[str, CellValue]

    def __post_init__(self) -> None:
        if self.index < 1:
            raise ValueError(f"row index must be 1-based, got {self.index}")
        converted: dict[str, CellValue] = {}
        for field, value in self.values.items():
            try:
                converted[str(field).strip()] = to_cell_value(value)
            except CellTypeError as e:
                raise CellTypeError(f"row {self.index} field '{field}': {e}") from e
        object.__setattr__(self, "values", MappingProxyType(converted))

    @classmethod
    def from_mapping(cls, index: int, mapping: Mapping[str, Any]) -> RawRow:
        return cls(index=index, values=mapping)

    def get(self, field: str) -> CellValue:
        return self.values.get(field)

    def is_empty(self, field: str) -> bool:
        value = self.values.get(field)
        if value is None:
            return True
        if isinstance(value, str) and not value.strip():
            return True
        return False

    def text(self, field: str) -> str | None:
        """Trimmed text form of a cell; None when empty."""
        value = self.values.get(field)
        if value is None:
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return _format_number(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        stripped = value.strip()
        return stripped or None

    def flag(self, field: str) -> bool:
        """Interpret a spreadsheet flag column (activar / si / x / 1 ...)."""
        value = self.values.get(field)
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return False
