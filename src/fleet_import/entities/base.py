"""Entity definition model shared by the concrete entity modules."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any

from ..models.raw_row import RawRow
from ..models.rules import RuleKind, Severity, ValidationRule
from ..validation.formats import normalize_key, parse_date, strip_accents

ACTIVATE_FIELD = "activate"


@dataclass(frozen=True)
class ReferenceField:
    """A row field that names another entity (by canonical id or display name)."""
    entity: str
    column: str  # payload column receiving the canonical id


@dataclass(frozen=True)
class ParentLink:
    """Back-reference array maintained on the referenced parent record."""
    via_field: str  # reference field naming the parent
    parent_table: str
    collection: str  # uuid[] column on the parent


@dataclass(frozen=True)
class EntityDefinition:
    name: str
    table: str
    natural_key: str
    display_column: str
    rules: tuple[ValidationRule, ...]
    build_fields: Callable[[RawRow], dict[str, Any]]
    key_normalizer: Callable[[str], str] = lambda v: v
    aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    references: Mapping[str, ReferenceField] = field(default_factory=lambda: MappingProxyType({}))
    parent: ParentLink | None = None
    # 再有効化 (update) では書き換えない列
    insert_only: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        # 既存レコードのスナップショットは自然キーでしか引けない
        for rule in self.rules:
            if rule.kind is RuleKind.UNIQUE_IN_STORE and rule.field != self.natural_key:
                raise ValueError(
                    f"{self.name}: unique-in-store is only supported on the natural key "
                    f"'{self.natural_key}', not '{rule.field}'"
                )

    @property
    def fields(self) -> set[str]:
        names = {r.field for r in self.rules}
        names.add(ACTIVATE_FIELD)
        names.update(self.aliases.values())
        return names

    def natural_key_of(self, row: RawRow) -> str | None:
        """Normalized, case-insensitive natural key of a row (None when empty)."""
        text = row.text(self.natural_key)
        if text is None:
            return None
        return normalize_key(self.key_normalizer(text))

    def resolve_field(self, label: str, extra_aliases: Mapping[str, str] | None = None) -> str | None:
        """Map a sheet header label to a field name."""
        key = strip_accents(normalize_key(label))
        if extra_aliases:
            for alias, target in extra_aliases.items():
                if strip_accents(normalize_key(alias)) == key:
                    return target
        if key in self.aliases:
            return self.aliases[key]
        if key in self.fields:
            return key
        return None


def date_value(row: RawRow, field_name: str) -> date | None:
    """Date cell as a date; None when empty or not a recognised date."""
    value = row.get(field_name)
    if row.is_empty(field_name) or not isinstance(value, (str, date)):
        return None
    return parse_date(value)


# ルール生成ヘルパ

def required(field_name: str, label: str) -> ValidationRule:
    return ValidationRule(field_name, RuleKind.REQUIRED, f"{label} is required")


def pattern(field_name: str, regex: str, message: str, severity: Severity = Severity.ERROR) -> ValidationRule:
    return ValidationRule(field_name, RuleKind.FORMAT, message, severity, {"pattern": regex})


def choices(field_name: str, values: tuple[str, ...], label: str) -> ValidationRule:
    return ValidationRule(
        field_name,
        RuleKind.FORMAT,
        f"{label} must be one of: {', '.join(values)}",
        params={"choices": values},
    )


def check(field_name: str, predicate: Callable[[str], bool], message: str,
          severity: Severity = Severity.ERROR) -> ValidationRule:
    return ValidationRule(field_name, RuleKind.FORMAT, message, severity, {"check": predicate})


def unique_in_batch(field_name: str, label: str) -> ValidationRule:
    return ValidationRule(field_name, RuleKind.UNIQUE_IN_BATCH, f"{label} is duplicated in this batch")


def unique_in_store(field_name: str, label: str) -> ValidationRule:
    return ValidationRule(field_name, RuleKind.UNIQUE_IN_STORE, f"{label} already exists")


def reference(field_name: str, entity: str, label: str) -> ValidationRule:
    return ValidationRule(
        field_name, RuleKind.REFERENCE, f"{label} not found", params={"entity": entity}
    )


def custom(field_name: str, predicate: Callable[[RawRow], bool], message: str) -> ValidationRule:
    return ValidationRule(field_name, RuleKind.CUSTOM, message, params={"check": predicate})


def alias_map(**groups: tuple[str, ...]) -> Mapping[str, str]:
    """Build a normalized header-label -> field mapping."""
    out: dict[str, str] = {}
    for field_name, labels in groups.items():
        out[field_name] = field_name
        for label in labels:
            out[strip_accents(normalize_key(label))] = field_name
    return MappingProxyType(out)
