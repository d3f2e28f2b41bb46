"""Bulk import and synchronization engine for fleet / personnel / company records."""

from .models.batch_result import BatchResult, RowState
from .models.options import ImportOptions
from .models.raw_row import RawRow
from .services.engine import BatchSizeError, import_batch

__version__ = "0.1.0"

__all__ = [
    "BatchResult",
    "BatchSizeError",
    "ImportOptions",
    "RawRow",
    "RowState",
    "import_batch",
]
