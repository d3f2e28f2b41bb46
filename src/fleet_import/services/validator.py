from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from ..entities import ACTIVATE_FIELD, EntityDefinition
from ..models.errors import ValidationError
from ..models.raw_row import RawRow
from ..models.rules import STORE_DEPENDENT_KINDS, RuleKind, Severity, ValidationRule
from ..validation.formats import match_choice, matches, normalize_key
from .reference_resolver import ReferenceMap
from .snapshot import ExistingRecords

"""Row validation service.

Rules are evaluated per field in rank order
(required -> format -> unique-in-batch -> unique-in-store -> reference -> custom)
and evaluation of a field stops at its first failing error rule. Other fields
and other rows always continue, so a row reports every field that is wrong.

Store-dependent kinds need data (natural-key snapshot, reference maps) that is
only loaded for rows surviving the pure kinds. When the context does not carry
that data yet, a field's evaluation is deferred at its first store-dependent
rule; the second pass re-runs the full list with the data present.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationContext",
    "ValidationOutcome",
    "validate_row",
    "validate_batch",
]


def _key_of(entity: EntityDefinition, field_name: str, row: RawRow) -> str | None:
    if field_name == entity.natural_key:
        return entity.natural_key_of(row)
    text = row.text(field_name)
    return normalize_key(text) if text is not None else None


def _batch_index(
    rows: Iterable[RawRow], entity: EntityDefinition
) -> Mapping[str, Mapping[str, frozenset[int]]]:
    """field -> normalized value -> indices of the rows carrying it."""
    fields = {r.field for r in entity.rules if r.kind is RuleKind.UNIQUE_IN_BATCH}
    index: dict[str, dict[str, set[int]]] = {f: {} for f in fields}
    for row in rows:
        for field_name in fields:
            key = _key_of(entity, field_name, row)
            if key is not None:
                index[field_name].setdefault(key, set()).add(row.index)
    return MappingProxyType({
        f: MappingProxyType({k: frozenset(v) for k, v in by_key.items()})
        for f, by_key in index.items()
    })


@dataclass(frozen=True)
class ValidationContext:
    """Read-only batch context for the validator.

    ``existing`` / ``references`` are None during the first (pure) pass.
    """
    entity: EntityDefinition
    batch_keys: Mapping[str, Mapping[str, frozenset[int]]]
    existing: ExistingRecords | None = None
    references: Mapping[str, ReferenceMap] | None = None
    exclude_id: str | None = None

    @classmethod
    def for_batch(
        cls,
        rows: Iterable[RawRow],
        entity: EntityDefinition,
        existing: ExistingRecords | None = None,
        references: Mapping[str, ReferenceMap] | None = None,
        exclude_id: str | None = None,
    ) -> ValidationContext:
        return cls(
            entity=entity,
            batch_keys=_batch_index(rows, entity),
            existing=existing,
            references=MappingProxyType(dict(references)) if references is not None else None,
            exclude_id=exclude_id,
        )

    def with_store_data(
        self, existing: ExistingRecords, references: Mapping[str, ReferenceMap]
    ) -> ValidationContext:
        return replace(self, existing=existing, references=MappingProxyType(dict(references)))

    def can_evaluate(self, kind: RuleKind) -> bool:
        if kind is RuleKind.UNIQUE_IN_STORE:
            return self.existing is not None
        if kind is RuleKind.REFERENCE:
            return self.references is not None
        return True


@dataclass(frozen=True)
class ValidationOutcome:
    valid_rows: list[RawRow] = field(default_factory=list)
    invalid_rows: list[RawRow] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    def then(self, second: ValidationOutcome) -> ValidationOutcome:
        """Combine with a second pass run over this outcome's valid rows."""
        rechecked = {r.index for r in second.valid_rows} | {r.index for r in second.invalid_rows}
        return ValidationOutcome(
            valid_rows=list(second.valid_rows),
            invalid_rows=sorted(self.invalid_rows + second.invalid_rows, key=lambda r: r.index),
            errors=sorted(self.errors + second.errors, key=lambda e: e.row_index),
            warnings=sorted(
                [w for w in self.warnings if w.row_index not in rechecked] + second.warnings,
                key=lambda w: w.row_index,
            ),
        )


def _group_by_field(rules: Sequence[ValidationRule]) -> list[tuple[str, list[ValidationRule]]]:
    grouped: dict[str, list[ValidationRule]] = {}
    for rule in rules:
        grouped.setdefault(rule.field, []).append(rule)
    # sorted() は安定ソート: 同順位のルールは定義順のまま
    return [(f, sorted(rs, key=lambda r: r.kind.rank)) for f, rs in grouped.items()]


def _check_format(rule: ValidationRule, text: str) -> bool:
    params = rule.params
    if "pattern" in params:
        return matches(params["pattern"], text)
    if "choices" in params:
        return match_choice(text, tuple(params["choices"])) is not None
    if "check" in params:
        return bool(params["check"](text))
    return True


def _check_unique_in_batch(row: RawRow, rule: ValidationRule, context: ValidationContext) -> bool:
    key = _key_of(context.entity, rule.field, row)
    if key is None:
        return True
    indices = context.batch_keys.get(rule.field, {}).get(key, frozenset())
    return not (indices - {row.index})


def _check_unique_in_store(row: RawRow, rule: ValidationRule, context: ValidationContext) -> bool:
    key = _key_of(context.entity, rule.field, row)
    if key is None or context.existing is None:
        return True
    if not context.existing.get(key, context.exclude_id):
        return True
    # 無効レコードが1件だけなら再有効化 (activar 指定時のみ)
    return row.flag(ACTIVATE_FIELD) and context.existing.reactivation_target(key, context.exclude_id) is not None


def _reference_error(
    row: RawRow, rule: ValidationRule, context: ValidationContext
) -> ValidationError | None:
    text = row.text(rule.field)
    if text is None:
        return None
    target = rule.params["entity"]
    ref_map = (context.references or {}).get(target) or ReferenceMap(entity=target)
    found = ref_map.lookup(text)
    if found.resolved:
        return None
    if found.ambiguous:
        message = f"'{text}' is ambiguous: more than one {target} has this name"
    else:
        message = f"{rule.message}: '{text}'"
        if found.suggestion:
            message += f" (did you mean '{found.suggestion}'?)"
    return ValidationError(
        row_index=row.index,
        field=rule.field,
        value=row.get(rule.field),
        message=message,
        severity=rule.severity,
        kind=rule.kind,
        suggestion=found.suggestion,
    )


def _evaluate(row: RawRow, rule: ValidationRule, context: ValidationContext) -> ValidationError | None:
    if rule.kind is RuleKind.REFERENCE:
        return _reference_error(row, rule, context)

    if rule.kind is RuleKind.REQUIRED:
        ok = not row.is_empty(rule.field)
    elif rule.kind is RuleKind.CUSTOM:
        ok = bool(rule.params["check"](row))
    elif row.is_empty(rule.field):
        ok = True
    elif rule.kind is RuleKind.FORMAT:
        ok = _check_format(rule, row.text(rule.field) or "")
    elif rule.kind is RuleKind.UNIQUE_IN_BATCH:
        ok = _check_unique_in_batch(row, rule, context)
    elif rule.kind is RuleKind.UNIQUE_IN_STORE:
        ok = _check_unique_in_store(row, rule, context)
    else:
        raise ValueError(f"unsupported rule kind: {rule.kind}")

    if ok:
        return None
    return ValidationError(
        row_index=row.index,
        field=rule.field,
        value=row.get(rule.field),
        message=rule.message,
        severity=rule.severity,
        kind=rule.kind,
    )


def validate_row(
    row: RawRow, rules: Sequence[ValidationRule], context: ValidationContext
) -> list[ValidationError]:
    """Evaluate all rules against one row; returns errors and warnings."""
    found: list[ValidationError] = []
    for _field_name, field_rules in _group_by_field(rules):
        for rule in field_rules:
            if rule.kind in STORE_DEPENDENT_KINDS and not context.can_evaluate(rule.kind):
                break
            error = _evaluate(row, rule, context)
            if error is None:
                continue
            found.append(error)
            if error.severity is Severity.ERROR:
                break
    return found


def validate_batch(
    rows: Sequence[RawRow], rules: Sequence[ValidationRule], context: ValidationContext
) -> ValidationOutcome:
    outcome = ValidationOutcome()
    for row in rows:
        results = validate_row(row, rules, context)
        row_errors = [e for e in results if e.is_error]
        outcome.errors.extend(row_errors)
        outcome.warnings.extend(e for e in results if not e.is_error)
        if row_errors:
            outcome.invalid_rows.append(row)
        else:
            outcome.valid_rows.append(row)
    logger.debug(
        "validated %s rows=%d valid=%d invalid=%d warnings=%d store_data=%s",
        context.entity.name,
        len(rows),
        len(outcome.valid_rows),
        len(outcome.invalid_rows),
        len(outcome.warnings),
        context.existing is not None,
    )
    return outcome
