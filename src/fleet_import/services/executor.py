from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import psycopg2

from ..db.bulk_write import BulkWriteError, BulkWriteResult
from ..entities import EntityDefinition
from ..models.errors import RowError
from ..models.operations import ClassifiedOperation, InsertOperation

"""Bulk executor: runs classified operations and their dependent writes.

All writes of a batch share one transaction. Operation failures stay per row;
a failure of the transaction itself or of a parent back-reference write rolls
the whole batch back and raises BatchAbortedError.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "BatchAbortedError",
    "ExecutionReport",
    "execute_operations",
]


class BatchAbortedError(Exception):
    """The batch transaction was rolled back; nothing was written."""


@dataclass
class ExecutionReport:
    inserted_rows: list[int] = field(default_factory=list)
    updated_rows: list[int] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    entity_ids: dict[int, str] = field(default_factory=dict)  # row_index -> 登録/更新された id

    @property
    def inserted_count(self) -> int:
        return len(self.inserted_rows)

    @property
    def updated_count(self) -> int:
        return len(self.updated_rows)

    @property
    def processed(self) -> int:
        return len(self.inserted_rows) + len(self.updated_rows) + len(self.errors)


def _build_report(operations: Sequence[ClassifiedOperation], result: BulkWriteResult) -> ExecutionReport:
    report = ExecutionReport()
    for err in result.write_errors:
        op = operations[err.op_index]
        report.errors.append(RowError(row_index=op.row_index, message=err.message, code=err.code))
    for op_index, entity_id in result.affected_ids.items():
        op = operations[op_index]
        report.entity_ids[op.row_index] = entity_id
        if isinstance(op, InsertOperation):
            report.inserted_rows.append(op.row_index)
        else:
            report.updated_rows.append(op.row_index)
    report.inserted_rows.sort()
    report.updated_rows.sort()
    report.errors.sort(key=lambda e: e.row_index)
    return report


def _write_back_references(
    store: Any,
    entity: EntityDefinition,
    operations: Sequence[ClassifiedOperation],
    report: ExecutionReport,
) -> int:
    """Append successful ids to their parent's collection; one statement per parent."""
    link = entity.parent
    if link is None:
        return 0
    column = entity.references[link.via_field].column
    by_parent: dict[str, set[str]] = {}
    for op in operations:
        entity_id = report.entity_ids.get(op.row_index)
        parent_id = op.payload.get(column)
        if entity_id is None or parent_id is None:
            continue
        by_parent.setdefault(str(parent_id), set()).add(entity_id)

    for parent_id in sorted(by_parent):
        updated = store.append_references(link.parent_table, link.collection, parent_id, by_parent[parent_id])
        if not updated:
            raise BulkWriteError(f"{link.parent_table} {parent_id} not found while updating {link.collection}")
    return len(by_parent)


def execute_operations(
    store: Any, entity: EntityDefinition, operations: Sequence[ClassifiedOperation]
) -> ExecutionReport:
    if not operations:
        return ExecutionReport()
    try:
        with store.transaction():
            result = store.bulk_write(entity, operations)
            report = _build_report(operations, result)
            parents = _write_back_references(store, entity, operations, report)
    except (BulkWriteError, psycopg2.Error) as e:
        logger.error("%s batch aborted: %s", entity.name, e)
        raise BatchAbortedError(f"{entity.name}: batch rolled back: {e}") from e

    logger.debug(
        "executed %s inserted=%d updated=%d failed=%d parents=%d",
        entity.name,
        report.inserted_count,
        report.updated_count,
        len(report.errors),
        parents,
    )
    return report
