from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

from ..entities import ACTIVATE_FIELD, EntityDefinition
from ..models.operations import ClassifiedOperation, InsertOperation, UpdateOperation
from ..models.options import ImportOptions
from ..models.raw_row import RawRow
from .reference_resolver import ReferenceMap
from .snapshot import ExistingRecords

"""Operation classifier: valid row -> insert or reactivation update.

Reactivation happens only when the row carries the activate flag and the
store holds exactly one inactive record with the same natural key. Every
other valid row becomes an insert with a client-assigned uuid4.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ClassificationError",
    "build_payload",
    "classify_row",
    "classify_rows",
]


class ClassificationError(Exception):
    """A row reached the classifier without its reference resolved."""


def build_payload(row: RawRow, entity: EntityDefinition, references: Mapping[str, ReferenceMap]) -> dict[str, Any]:
    """Entity fields with reference fields replaced by canonical ids."""
    payload = entity.build_fields(row)
    for field_name, ref in entity.references.items():
        text = row.text(field_name)
        if text is None:
            payload[ref.column] = None
            continue
        ref_map = references.get(ref.entity)
        found = ref_map.lookup(text) if ref_map is not None else None
        if found is None or not found.resolved:
            raise ClassificationError(
                f"row {row.index}: {field_name} '{text}' is not resolved"
            )
        payload[ref.column] = found.entity_id
    return payload


def classify_row(
    row: RawRow,
    entity: EntityDefinition,
    references: Mapping[str, ReferenceMap],
    existing: ExistingRecords,
    options: ImportOptions | None = None,
) -> ClassifiedOperation:
    options = options or ImportOptions()
    payload = build_payload(row, entity, references)
    activate = row.flag(ACTIVATE_FIELD)

    if activate:
        target = existing.reactivation_target(entity.natural_key_of(row), options.exclude_id)
        if target is not None:
            for column in entity.insert_only:
                payload.pop(column, None)
            payload["active"] = True
            return UpdateOperation(
                row_index=row.index,
                filter=MappingProxyType({entity.natural_key: target.stored_key, "active": False}),
                payload=MappingProxyType(payload),
            )

    payload["active"] = True if activate else options.default_active
    return InsertOperation(
        row_index=row.index,
        entity_id=str(uuid.uuid4()),
        payload=MappingProxyType(payload),
    )


def classify_rows(
    rows: Sequence[RawRow],
    entity: EntityDefinition,
    references: Mapping[str, ReferenceMap],
    existing: ExistingRecords,
    options: ImportOptions | None = None,
) -> list[ClassifiedOperation]:
    operations = [classify_row(r, entity, references, existing, options) for r in rows]
    updates = sum(1 for op in operations if op.kind == "update")
    logger.debug(
        "classified %s inserts=%d updates=%d", entity.name, len(operations) - updates, updates
    )
    return operations
