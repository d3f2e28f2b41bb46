from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..entities import EntityDefinition
from ..models.operations import ClassifiedOperation
from .bulk_write import BatchMetrics, BulkWriteResult, append_references, bulk_write

"""PostgreSQL implementation of the engine's store capabilities.

Every lookup is a single statement regardless of how many values are asked
for (``= ANY(%s)`` with a list parameter). Name and natural-key columns are
compared the way normalize_key builds the wanted values: trimmed, whitespace
runs collapsed to one space, lower-cased.
"""

logger = logging.getLogger(__name__)

__all__ = ["PostgresStore"]


def _q(identifier: str) -> str:
    return f'"{identifier}"'


def _normalized(column: str) -> str:
    return f"lower(regexp_replace(trim({column}), '\\s+', ' ', 'g'))"


class PostgresStore:
    def __init__(self, cursor: Any, metrics_callback: Callable[[BatchMetrics], None] | None = None):
        self.cursor = cursor
        self.metrics_callback = metrics_callback

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        self.cursor.execute(sql, params)
        return list(self.cursor.fetchall())

    def find_by_ids(self, entity: EntityDefinition, ids: Sequence[str]) -> list[tuple[Any, Any]]:
        if not ids:
            return []
        return self._fetch(
            f'SELECT "id"::text, {_q(entity.display_column)} FROM {_q(entity.table)} '
            f'WHERE "id"::text = ANY(%s)',
            (list(ids),),
        )

    def find_by_names(self, entity: EntityDefinition, normalized_names: Sequence[str]) -> list[tuple[Any, Any]]:
        if not normalized_names:
            return []
        col = _q(entity.display_column)
        return self._fetch(
            f'SELECT "id"::text, {col} FROM {_q(entity.table)} WHERE {_normalized(col)} = ANY(%s)',
            (list(normalized_names),),
        )

    def list_names(self, entity: EntityDefinition) -> list[tuple[Any, Any]]:
        col = _q(entity.display_column)
        return self._fetch(f'SELECT "id"::text, {col} FROM {_q(entity.table)} WHERE {col} IS NOT NULL')

    def find_existing(self, entity: EntityDefinition, normalized_keys: Sequence[str]) -> list[tuple[Any, Any, Any]]:
        if not normalized_keys:
            return []
        col = _q(entity.natural_key)
        return self._fetch(
            f'SELECT "id"::text, {col}, "active" FROM {_q(entity.table)} '
            f"WHERE {_normalized(col)} = ANY(%s)",
            (list(normalized_keys),),
        )

    def bulk_write(self, entity: EntityDefinition, operations: Sequence[ClassifiedOperation]) -> BulkWriteResult:
        return bulk_write(self.cursor, entity.table, operations, metrics_callback=self.metrics_callback)

    def append_references(self, parent_table: str, column: str, parent_id: str, child_ids: Iterable[str]) -> int:
        return append_references(self.cursor, parent_table, column, parent_id, child_ids)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Explicit BEGIN / COMMIT; ROLLBACK on any exception, then re-raise."""
        self.cursor.execute("BEGIN")
        try:
            yield
        except BaseException:
            try:
                self.cursor.execute("ROLLBACK")
            except psycopg2.Error as rollback_error:
                # 接続断など: 元の例外を優先して送出
                logger.error("rollback failed: %s", rollback_error)
            else:
                logger.debug("transaction rolled back")
            raise
        self.cursor.execute("COMMIT")
