"""Domain models for the bulk import engine and the workbook runner."""

from .batch_result import BatchResult, RowState
from .config_models import DatabaseConfig, ImportConfig, SheetMappingConfig
from .errors import RowError, ValidationError
from .operations import ClassifiedOperation, InsertOperation, UpdateOperation
from .options import ImportOptions
from .raw_row import CellTypeError, RawRow
from .rules import RuleKind, Severity, ValidationRule

__all__ = [
    # Engine models
    "BatchResult",
    "CellTypeError",
    "ClassifiedOperation",
    "ImportOptions",
    "InsertOperation",
    "RawRow",
    "RowError",
    "RowState",
    "RuleKind",
    "Severity",
    "UpdateOperation",
    "ValidationError",
    "ValidationRule",
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    "SheetMappingConfig",
]
