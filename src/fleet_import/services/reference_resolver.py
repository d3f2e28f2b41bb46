from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from rapidfuzz import fuzz, process

from ..entities import EntityDefinition, get_entity
from ..models.raw_row import RawRow
from ..validation.formats import normalize_key, strip_accents

"""Reference resolution service (identifier -> canonical id).

Reference cells name another entity either by canonical id (uuid text) or by
display name. Values are partitioned structurally (no store round-trip) and
each partition is resolved with a single query:

- id-shaped values: matched by id only
- anything else:    matched by case-insensitive exact display name

A name shared by more than one entity is ambiguous and stays unresolved.
Close matches are only ever offered as a suggestion for the error message;
they are never used to resolve a row.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ReferenceLookup",
    "ReferenceMap",
    "ReferenceResolutionError",
    "collect_reference_values",
    "is_canonical_id",
    "normalize_reference",
    "partition_identifiers",
    "resolve_references",
    "resolve_all",
]

_UUID_RE = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)
SUGGESTION_CUTOFF = 80


class ReferenceResolutionError(Exception):
    """Raised when the store returns rows the resolver cannot interpret."""


def is_canonical_id(value: str) -> bool:
    return _UUID_RE.fullmatch(value.strip()) is not None


def normalize_reference(value: str) -> str:
    """Normalized lookup key: lower-cased id, or lower-cased trimmed name."""
    stripped = value.strip()
    if is_canonical_id(stripped):
        return stripped.lower()
    return normalize_key(stripped)


def partition_identifiers(values: Iterable[str]) -> tuple[set[str], set[str]]:
    """Split raw reference values into (ids, names), both normalized."""
    ids: set[str] = set()
    names: set[str] = set()
    for value in values:
        if value is None or not str(value).strip():
            continue
        text = str(value)
        if is_canonical_id(text):
            ids.add(normalize_reference(text))
        else:
            names.add(normalize_reference(text))
    return ids, names


@dataclass(frozen=True)
class ReferenceLookup:
    entity_id: str | None
    ambiguous: bool = False
    suggestion: str | None = None

    @property
    def resolved(self) -> bool:
        return self.entity_id is not None


@dataclass(frozen=True)
class ReferenceMap:
    """Batch-scoped, read-only identifier -> canonical id map for one entity type."""
    entity: str
    entries: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    ambiguous: frozenset[str] = frozenset()
    suggestions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def lookup(self, value: Any) -> ReferenceLookup:
        if value is None:
            return ReferenceLookup(None)
        key = normalize_reference(str(value))
        if key in self.entries:
            return ReferenceLookup(self.entries[key])
        if key in self.ambiguous:
            return ReferenceLookup(None, ambiguous=True)
        return ReferenceLookup(None, suggestion=self.suggestions.get(key))

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and self.lookup(value).resolved

    def __len__(self) -> int:
        return len(self.entries)


def collect_reference_values(rows: Iterable[RawRow], entity: EntityDefinition) -> dict[str, set[str]]:
    """Distinct reference values per referenced entity type."""
    collected: dict[str, set[str]] = {}
    for row in rows:
        for field_name, ref in entity.references.items():
            text = row.text(field_name)
            if text is not None:
                collected.setdefault(ref.entity, set()).add(text)
    return collected


def _suggest(
    unresolved: set[str], candidates: list[tuple[Any, Any]]
) -> dict[str, str]:
    names = [str(name) for _, name in candidates if name]
    if not names:
        return {}
    suggestions: dict[str, str] = {}
    for key in sorted(unresolved):
        match = process.extractOne(
            key,
            names,
            scorer=fuzz.token_sort_ratio,
            processor=lambda s: strip_accents(normalize_key(s)),
            score_cutoff=SUGGESTION_CUTOFF,
        )
        if match is not None:
            suggestions[key] = match[0]
    return suggestions


def resolve_references(store: Any, entity_type: str, values: Iterable[str]) -> ReferenceMap:
    """Build the ReferenceMap for one referenced entity type.

    Issues at most one id query and one name query; a third (name listing)
    query runs only when some names stay unresolved, to build suggestions.
    """
    entity = get_entity(entity_type)
    ids, names = partition_identifiers(values)
    entries: dict[str, str] = {}
    ambiguous: set[str] = set()

    if ids:
        for entity_id, _name in store.find_by_ids(entity, sorted(ids)):
            entries[normalize_reference(str(entity_id))] = str(entity_id)

    if names:
        matched: dict[str, set[str]] = {}
        for entity_id, name in store.find_by_names(entity, sorted(names)):
            if name is None:
                raise ReferenceResolutionError(
                    f"{entity.table}: name lookup returned a row without {entity.display_column}"
                )
            matched.setdefault(normalize_key(str(name)), set()).add(str(entity_id))
        for key, found in matched.items():
            if key not in names:
                continue
            if len(found) == 1:
                entries[key] = next(iter(found))
            else:
                ambiguous.add(key)
                logger.warning(
                    "ambiguous %s reference '%s' matches %d records", entity.name, key, len(found)
                )

    unresolved = {n for n in names if n not in entries and n not in ambiguous}
    suggestions: dict[str, str] = {}
    if unresolved:
        suggestions = _suggest(unresolved, store.list_names(entity))

    logger.debug(
        "resolved %s references ids=%d names=%d entries=%d ambiguous=%d unresolved=%d",
        entity.name,
        len(ids),
        len(names),
        len(entries),
        len(ambiguous),
        len(unresolved) + len(ids - entries.keys()),
    )
    return ReferenceMap(
        entity=entity.name,
        entries=MappingProxyType(entries),
        ambiguous=frozenset(ambiguous),
        suggestions=MappingProxyType(suggestions),
    )


def resolve_all(store: Any, rows: Iterable[RawRow], entity: EntityDefinition) -> dict[str, ReferenceMap]:
    """Resolve every referenced entity type used by the given rows."""
    return {
        ref_entity: resolve_references(store, ref_entity, values)
        for ref_entity, values in collect_reference_values(rows, entity).items()
    }
