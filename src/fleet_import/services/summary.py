from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

    SUMMARY files={n}/{n} success={s} failed={f} inserted={i} updated={u}
            rejected={r} skipped_sheets={k} elapsed_sec={e} throughput_rps={t}

(single line; numbers never use scientific notation)
"""

__all__ = ["format_number", "render_summary_line"]


def format_number(value: float) -> str:
    """Integral values without a decimal part, small values without exponent."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ProcessingResult) -> str:
    """Render the SUMMARY line for a finished run.

    >>> from datetime import datetime, timezone
    >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> r = ProcessingResult(
    ...     success_files=1, failed_files=0, total_inserted_rows=10, total_updated_rows=2,
    ...     total_rejected_rows=1, skipped_sheets=0, start_time=t, end_time=t,
    ...     elapsed_seconds=2.0, throughput_rows_per_sec=6.5,
    ... )
    >>> render_summary_line(r)
    'SUMMARY files=1/1 success=1 failed=0 inserted=10 updated=2 rejected=1 skipped_sheets=0 elapsed_sec=2 throughput_rps=6.5'
    """
    total = result.total_files
    return (
        f"SUMMARY files={total}/{total} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"inserted={result.total_inserted_rows} "
        f"updated={result.total_updated_rows} "
        f"rejected={result.total_rejected_rows} "
        f"skipped_sheets={result.skipped_sheets} "
        f"elapsed_sec={format_number(result.elapsed_seconds)} "
        f"throughput_rps={format_number(result.throughput_rows_per_sec)}"
    )
