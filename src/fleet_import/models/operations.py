from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Union

"""Classified store operations.

The classifier decides insert vs. reactivation exactly once; the executor only
dispatches on ``kind``. row_index is correlation metadata for error reporting
and is never written to the store.
"""

__all__ = [
    "InsertOperation",
    "UpdateOperation",
    "ClassifiedOperation",
]


@dataclass(frozen=True)
class InsertOperation:
    row_index: int
    entity_id: str  # 新規採番 (uuid4)
    payload: Mapping[str, Any]
    kind: Literal["insert"] = "insert"


@dataclass(frozen=True)
class UpdateOperation:
    row_index: int
    filter: Mapping[str, Any]
    payload: Mapping[str, Any]
    kind: Literal["update"] = "update"


ClassifiedOperation = Union[InsertOperation, UpdateOperation]
