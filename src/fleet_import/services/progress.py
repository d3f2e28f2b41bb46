from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Progress display over workbook files (tqdm, TTY only).

Non-TTY runs (CI, redirected output) get no bar; the SUMMARY line carries the
same totals.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """One bar over the files of a run with running row totals as postfix."""

    def __init__(self, total_files: int, *, description: str = "Importing") -> None:
        self.total_files = total_files
        self.description = description
        self.enabled = is_tty_enabled()
        self.inserted = 0
        self.updated = 0
        self.rejected = 0
        self.pbar: Any | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_files,
                desc=description,
                unit="file",
                leave=True,
                ncols=80,
                ascii=True,
            )

    def start_file(self, file_name: str) -> None:
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({file_name})")

    def finish_file(self, inserted: int = 0, updated: int = 0, rejected: int = 0) -> None:
        self.inserted += inserted
        self.updated += updated
        self.rejected += rejected
        if self.pbar is not None:
            self.pbar.set_postfix(ins=self.inserted, upd=self.updated, rej=self.rejected)
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
