from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from ..entities import EntityDefinition
from ..models.raw_row import RawRow
from ..models.rules import RuleKind

"""Workbook reader: sheet DataFrame -> RawRow list.

Sheets are read without a header (header_row is applied here, 1-based, the
default template puts a title on row 1 and the labels on row 2). Header
labels are mapped to entity field names through the entity aliases plus the
sheet mapping's own ``columns``. Completely blank rows are skipped, but row
numbering follows the sheet so an error for row N can be found at sheet line
``header_row + N``.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "MissingColumnsError",
    "SheetHeaderError",
    "SheetRows",
    "header_labels",
    "read_excel_file",
    "sheet_to_rows",
]


class SheetHeaderError(Exception):
    """Raised when the header row is missing or maps two labels to one field."""


class MissingColumnsError(Exception):
    """Raised when a required field has no column in the sheet."""


@dataclass
class SheetRows:
    sheet_name: str
    columns: list[str]  # マッピング後のフィールド名 (ヘッダ順)
    rows: list[RawRow]
    header_row: int
    unknown_columns: list[str] = field(default_factory=list)

    def sheet_line(self, row_index: int) -> int:
        """1-based worksheet line of a data row index."""
        return self.header_row + row_index


def read_excel_file(path: Path, target_sheets: Iterable[str] | None = None) -> dict[str, pd.DataFrame]:
    """Read raw DataFrames (no header applied) keyed by sheet name.

    Parameters
    ----------
    path: Excel ファイルパス
    target_sheets: 対象シート制限 (None なら全シート)
    """
    wanted = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(path, engine="openpyxl") as xls:
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            # 'NA' などを欠損扱いしない (null_sentinels で明示制御)
            dfs[str(name)] = xls.parse(name, header=None, keep_default_na=False, na_values=[])
    return dfs


def header_labels(df: pd.DataFrame, sheet_name: str, header_row: int = 2) -> list[str]:
    if df.shape[0] < header_row:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header on row {header_row}")
    labels = []
    for value in df.iloc[header_row - 1].tolist():
        labels.append("" if pd.isna(value) else str(value).strip())
    return labels


def _clean(value: Any, null_sentinels: set[str]) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        # NULL サニタイズ
        if stripped == "" or stripped.upper() in null_sentinels:
            return None
        return stripped
    if pd.isna(value):
        return None
    return value


def sheet_to_rows(
    df: pd.DataFrame,
    sheet_name: str,
    entity: EntityDefinition,
    header_row: int = 2,
    extra_aliases: Mapping[str, str] | None = None,
    null_sentinels: Iterable[str] | None = None,
) -> SheetRows:
    labels = header_labels(df, sheet_name, header_row)
    sentinels = {s.strip().upper() for s in (null_sentinels or ())}

    positions: dict[str, int] = {}
    unknown: list[str] = []
    for pos, label in enumerate(labels):
        if not label:
            continue
        field_name = entity.resolve_field(label, extra_aliases)
        if field_name is None:
            unknown.append(label)
            continue
        if field_name in positions:
            raise SheetHeaderError(
                f"sheet '{sheet_name}': columns '{labels[positions[field_name]]}' and '{label}' both map to {field_name}"
            )
        positions[field_name] = pos

    required = {r.field for r in entity.rules if r.kind is RuleKind.REQUIRED}
    missing = required - positions.keys()
    if missing:
        raise MissingColumnsError(f"sheet '{sheet_name}' missing columns: {sorted(missing)}")
    if unknown:
        logger.warning("sheet '%s': ignoring unknown columns %s", sheet_name, unknown)

    rows: list[RawRow] = []
    data_part = df.iloc[header_row:]
    for offset, raw in enumerate(data_part.itertuples(index=False, name=None), start=1):
        values = {f: _clean(raw[pos] if pos < len(raw) else None, sentinels) for f, pos in positions.items()}
        if all(v is None for v in values.values()):
            continue
        rows.append(RawRow.from_mapping(offset, values))

    return SheetRows(
        sheet_name=sheet_name,
        columns=list(positions),
        rows=rows,
        header_row=header_row,
        unknown_columns=unknown,
    )
