from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_ROWS = 500


@dataclass(frozen=True)
class ImportOptions:
    """Per-call options of import_batch.

    default_active: active flag of newly inserted records when the row does not ask for activation
    exclude_id:     existing record id ignored by the unique-in-store check
    max_rows:       batch size limit
    """
    default_active: bool = False
    exclude_id: str | None = None
    max_rows: int = DEFAULT_MAX_ROWS

    def __post_init__(self) -> None:
        if self.max_rows < 1:
            raise ValueError(f"max_rows must be >= 1, got {self.max_rows}")
