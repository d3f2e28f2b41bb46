from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field as dc_field
from enum import Enum
from types import MappingProxyType
from typing import Any

"""Declarative validation rule model.

Rules are plain data; the validator service interprets them. A rule set is a
pure function of the entity type (see fleet_import.entities).
"""

__all__ = [
    "RuleKind",
    "Severity",
    "ValidationRule",
    "STORE_DEPENDENT_KINDS",
]


class RuleKind(Enum):
    """Rule kinds in evaluation order.

    Per field the validator runs rules sorted by ``rank`` and stops at the
    first failing one.
    """
    REQUIRED = "required"
    FORMAT = "format"
    UNIQUE_IN_BATCH = "unique-in-batch"
    UNIQUE_IN_STORE = "unique-in-store"
    REFERENCE = "reference"
    CUSTOM = "custom"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {kind: i for i, kind in enumerate(RuleKind)}

# ストア照会が必要な種別 (1st pass では評価保留)
STORE_DEPENDENT_KINDS = frozenset({RuleKind.UNIQUE_IN_STORE, RuleKind.REFERENCE})


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationRule:
    """One validation rule bound to a field.

    params by kind:
        format:          pattern (regex) | choices (iterable) | check (callable(str) -> bool)
        unique-in-store: (none; only valid on the entity natural key, enforced
                         by EntityDefinition)
        reference:       entity (referenced entity type name)
        custom:          check (callable(RawRow) -> bool)
    """
    field: str
    kind: RuleKind
    message: str
    severity: Severity = Severity.ERROR
    params: Mapping[str, Any] = dc_field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.params, MappingProxyType):
            object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
