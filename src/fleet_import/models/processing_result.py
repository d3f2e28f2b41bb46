from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime

"""Run-level result models for the workbook runner.

Aggregates per-sheet BatchResults into the numbers shown on the SUMMARY line.
"""


@dataclass(frozen=True)
class SheetStat:
    """Per-sheet outcome (one engine batch)."""
    file_name: str
    sheet_name: str
    entity_type: str
    status: str  # success / partial / failed
    inserted_rows: int
    updated_rows: int
    rejected_rows: int
    elapsed_seconds: float


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics."""
    file_name: str
    status: str  # success / partial / failed
    inserted_rows: int
    updated_rows: int
    rejected_rows: int
    elapsed_seconds: float
    sheets: list[SheetStat] | None = None
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results for one CLI run."""
    success_files: int
    failed_files: int
    total_inserted_rows: int
    total_updated_rows: int
    total_rejected_rows: int
    skipped_sheets: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    file_stats: list[FileStat] | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files


class BatchStatsAccumulator:
    """Collects batch (bulk write) timings and summarises them."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_batches, avg_batch_seconds, p95_batch_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
