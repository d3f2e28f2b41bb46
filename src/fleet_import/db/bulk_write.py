from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..models.operations import ClassifiedOperation, InsertOperation

"""Unordered bulk write on a psycopg2 cursor.

Each operation runs under its own SAVEPOINT inside the caller's transaction,
so a failing statement (unique violation, bad value) is rolled back alone and
the remaining operations still run. Only statement-level data errors are
reported per operation; any other psycopg2 error means the connection or
transaction is unusable and is raised as BulkWriteError.

The metrics callback receives one BatchMetrics per bulk_write call (timing of
the whole operation list).
"""

__all__ = [
    "BatchMetrics",
    "BulkWriteError",
    "BulkWriteResult",
    "NO_MATCH",
    "WriteError",
    "append_references",
    "bulk_write",
]

NO_MATCH = "NO_MATCH"
_SAVEPOINT = "fleet_import_op"

# 行単位で切り離せるエラー (制約違反 / 値不正)
_ROW_LEVEL_ERRORS = (psycopg2.IntegrityError, psycopg2.DataError)


class BulkWriteError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of a single bulk_write call."""
    batch_size: int  # Number of operations in this call
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float


@dataclass(frozen=True)
class WriteError:
    op_index: int  # position in the operation list passed to bulk_write
    code: str
    message: str


@dataclass(frozen=True)
class BulkWriteResult:
    inserted_count: int = 0
    modified_count: int = 0
    write_errors: list[WriteError] = field(default_factory=list)
    affected_ids: dict[int, str] = field(default_factory=dict)  # op_index -> record id


def _q(identifier: str) -> str:
    return f'"{identifier}"'


def _param(value: Any) -> Any:
    # dict / list (employment_periods 等) は jsonb 列へ
    if isinstance(value, (dict, list)):
        return Json(value)
    return value


def _insert_statement(table: str, op: InsertOperation) -> tuple[str, list[Any]]:
    columns = ["id", *op.payload.keys()]
    values = [op.entity_id, *(_param(v) for v in op.payload.values())]
    cols_sql = ",".join(_q(c) for c in columns)
    placeholders = ",".join(["%s"] * len(columns))
    return f'INSERT INTO {_q(table)} ({cols_sql}) VALUES ({placeholders}) RETURNING "id"', values


def _update_statement(table: str, op: Any) -> tuple[str, list[Any]]:
    set_sql = ",".join(f"{_q(c)} = %s" for c in op.payload)
    where_sql = " AND ".join(f"{_q(c)} = %s" for c in op.filter)
    params = [*(_param(v) for v in op.payload.values()), *op.filter.values()]
    return f'UPDATE {_q(table)} SET {set_sql} WHERE {where_sql} RETURNING "id"', params


def _error_code(exc: psycopg2.Error) -> str:
    return exc.pgcode or type(exc).__name__


def bulk_write(
    cursor: Any,
    table: str,
    operations: Sequence[ClassifiedOperation],
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> BulkWriteResult:
    """Execute insert/update operations without stopping at the first failure.

    Parameters
    ----------
    cursor: psycopg2 cursor inside an open transaction
    table: 対象テーブル名 (エンティティ定義由来)
    operations: classified operations; results are keyed by list position
    metrics_callback: receives BatchMetrics once the list has been processed.
        Not invoked for an empty list.
    """
    if not operations:
        return BulkWriteResult()

    inserted = 0
    modified = 0
    errors: list[WriteError] = []
    affected: dict[int, str] = {}

    start_time = time.time()
    try:
        for i, op in enumerate(operations):
            if isinstance(op, InsertOperation):
                sql, params = _insert_statement(table, op)
            else:
                sql, params = _update_statement(table, op)
            cursor.execute(f"SAVEPOINT {_SAVEPOINT}")
            try:
                cursor.execute(sql, params)
                returned = cursor.fetchall()
            except _ROW_LEVEL_ERRORS as e:
                cursor.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
                errors.append(WriteError(i, _error_code(e), str(e).strip()))
                continue
            cursor.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")

            if not returned:
                errors.append(WriteError(i, NO_MATCH, "no inactive record matched for reactivation"))
                continue
            affected[i] = str(returned[0][0])
            if isinstance(op, InsertOperation):
                inserted += 1
            else:
                modified += 1
    except psycopg2.Error as e:
        raise BulkWriteError(f"{table}: {e}".strip()) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(operations),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    return BulkWriteResult(
        inserted_count=inserted,
        modified_count=modified,
        write_errors=errors,
        affected_ids=affected,
    )


def append_references(
    cursor: Any, parent_table: str, column: str, parent_id: str, child_ids: Iterable[str]
) -> int:
    """Append child ids to a parent's uuid[] column without duplicating entries.

    Returns the number of parent rows updated (0 when the parent is gone).
    """
    ids = sorted(set(child_ids))
    if not ids:
        return 0
    col = _q(column)
    sql = (
        f"UPDATE {_q(parent_table)} SET {col} = "
        f"ARRAY(SELECT DISTINCT unnest(COALESCE({col}, '{{}}'::uuid[]) || %s::uuid[])) "
        f'WHERE "id" = %s'
    )
    try:
        cursor.execute(sql, (ids, parent_id))
    except psycopg2.Error as e:
        raise BulkWriteError(f"{parent_table}.{column}: {e}".strip()) from e
    return cursor.rowcount
