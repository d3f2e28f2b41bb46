from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..entities import EntityDefinition
from ..validation.formats import normalize_key

"""Natural-key snapshot of records already in the store.

Loaded once per batch (single query) for the rows that survived the pure
validation pass; consumed read-only by the unique-in-store rule and by the
operation classifier.
"""

__all__ = [
    "ExistingRecord",
    "ExistingRecords",
    "load_existing",
]


@dataclass(frozen=True)
class ExistingRecord:
    entity_id: str
    stored_key: str  # DB に格納されている自然キー値 (更新フィルタに使用)
    active: bool


@dataclass(frozen=True)
class ExistingRecords:
    by_key: Mapping[str, tuple[ExistingRecord, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[Any, Any, Any]], key_normalizer=None) -> ExistingRecords:
        grouped: dict[str, list[ExistingRecord]] = {}
        for entity_id, stored_key, active in rows:
            text = str(stored_key)
            if key_normalizer is not None:
                text = key_normalizer(text)
            grouped.setdefault(normalize_key(text), []).append(
                ExistingRecord(str(entity_id), str(stored_key), bool(active))
            )
        return cls(MappingProxyType({k: tuple(v) for k, v in grouped.items()}))

    def get(self, key: str | None, exclude_id: str | None = None) -> tuple[ExistingRecord, ...]:
        if key is None:
            return ()
        records = self.by_key.get(key, ())
        if exclude_id is None:
            return records
        return tuple(r for r in records if r.entity_id != exclude_id)

    def reactivation_target(self, key: str | None, exclude_id: str | None = None) -> ExistingRecord | None:
        """The single inactive record a row may reactivate, if any."""
        records = self.get(key, exclude_id)
        if len(records) == 1 and not records[0].active:
            return records[0]
        return None

    def __len__(self) -> int:
        return sum(len(v) for v in self.by_key.values())


def load_existing(store: Any, entity: EntityDefinition, keys: Iterable[str]) -> ExistingRecords:
    """Fetch records whose natural key matches any of the normalized keys."""
    wanted = sorted({k for k in keys if k})
    if not wanted:
        return ExistingRecords()
    rows = store.find_existing(entity, wanted)
    return ExistingRecords.from_rows(rows, key_normalizer=entity.key_normalizer)
