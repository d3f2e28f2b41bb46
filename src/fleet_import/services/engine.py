from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

import psycopg2

from ..entities import get_entity
from ..models.batch_result import BatchResult
from ..models.options import ImportOptions
from ..models.raw_row import RawRow
from .aggregator import aggregate
from .classifier import classify_rows
from .executor import BatchAbortedError, execute_operations
from .reference_resolver import ReferenceResolutionError, resolve_all
from .snapshot import ExistingRecords, load_existing
from .validator import ValidationContext, validate_batch

"""Bulk import entry point.

    raw rows -> validate (pure rules) -> load store data for surviving rows
             -> validate (store-dependent rules) -> classify -> execute -> aggregate

Invalid rows never reach classification or execution; the returned
BatchResult accounts for every input row exactly once.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "BatchSizeError",
    "ImportOptions",
    "import_batch",
    "to_raw_rows",
]


class BatchSizeError(ValueError):
    pass


def to_raw_rows(rows: Iterable[RawRow | Mapping[str, Any]]) -> list[RawRow]:
    """Accept RawRows or plain mappings (index = position + 1)."""
    batch: list[RawRow] = []
    for position, row in enumerate(rows):
        if isinstance(row, RawRow):
            batch.append(row)
        elif isinstance(row, Mapping):
            batch.append(RawRow.from_mapping(position + 1, row))
        else:
            raise TypeError(f"row {position + 1}: expected RawRow or mapping, got {type(row).__name__}")
    seen: set[int] = set()
    for row in batch:
        if row.index in seen:
            raise ValueError(f"duplicate row index {row.index} in batch")
        seen.add(row.index)
    return batch


def import_batch(
    rows: Iterable[RawRow | Mapping[str, Any]],
    entity_type: str,
    options: ImportOptions | None = None,
    *,
    store: Any,
) -> BatchResult:
    """Validate, classify and write one batch of rows for an entity type.

    Raises UnknownEntityError, BatchSizeError, or BatchAbortedError when the
    store fails as a whole (nothing written). Row level problems are reported
    in the returned BatchResult instead.
    """
    options = options or ImportOptions()
    entity = get_entity(entity_type)
    batch = to_raw_rows(rows)
    if len(batch) > options.max_rows:
        raise BatchSizeError(f"batch has {len(batch)} rows; limit is {options.max_rows}")
    if not batch:
        return BatchResult(inserted_count=0, updated_count=0)

    start = time.perf_counter()
    context = ValidationContext.for_batch(batch, entity, exclude_id=options.exclude_id)
    first = validate_batch(batch, entity.rules, context)

    existing = ExistingRecords()
    references: dict = {}
    if first.valid_rows:
        try:
            existing = load_existing(store, entity, (entity.natural_key_of(r) for r in first.valid_rows))
            references = resolve_all(store, first.valid_rows, entity)
        except (psycopg2.Error, ReferenceResolutionError) as e:
            raise BatchAbortedError(f"{entity.name}: store lookup failed: {e}") from e

    second = validate_batch(first.valid_rows, entity.rules, context.with_store_data(existing, references))
    outcome = first.then(second)

    operations = classify_rows(outcome.valid_rows, entity, references, existing, options)
    execution = execute_operations(store, entity, operations)
    result = aggregate(len(batch), outcome.errors, outcome.warnings, execution)

    logger.info(
        "%s batch rows=%d inserted=%d updated=%d rejected=%d warnings=%d elapsed=%.3fs",
        entity.name,
        len(batch),
        result.inserted_count,
        result.updated_count,
        len(result.errors),
        len(result.warnings),
        time.perf_counter() - start,
    )
    return result
