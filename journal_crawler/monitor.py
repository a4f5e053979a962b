"""
Run Statistics
==============
Counters for one crawl run, returned by the orchestrator and printed at
the end.

Tracks:
- Items processed / saved / skipped / errored
- Listing pages visited (per task and overall)
- Per-task outcome log
- Elapsed time and throughput

Single-threaded: the crawl owns the only reference, no locking.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class PageStats:
    """Outcome counts for one listing page."""
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    errors: int = 0
    accepted_items: int = 0


@dataclass
class TaskLog:
    """Completion entry for one search code."""
    code: str
    status: str
    pages_visited: int = 0
    saved: int = 0
    error: Optional[str] = None
    stop_reason: str = ""
    finished_at: str = ""


@dataclass
class RunStats:
    """Write-only accumulator for a whole run."""
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    errored: int = 0
    pages_visited: int = 0
    page_errors: int = 0
    flushes: int = 0
    failed_flushes: int = 0
    tasks: List[TaskLog] = field(default_factory=list)
    started_at: str = ""
    finished_at: str = ""
    stop_reason: str = ""
    _start_monotonic: float = field(default=0.0, repr=False)
    _end_monotonic: float = field(default=0.0, repr=False)

    # ---- Lifecycle ----
    def start(self) -> None:
        self._start_monotonic = time.monotonic()
        self.started_at = datetime.now().isoformat(timespec="seconds")

    def finish(self, reason: str = "completed") -> None:
        self._end_monotonic = time.monotonic()
        self.finished_at = datetime.now().isoformat(timespec="seconds")
        if not self.stop_reason:
            self.stop_reason = reason

    @property
    def elapsed_sec(self) -> float:
        if not self._start_monotonic:
            return 0.0
        end = self._end_monotonic or time.monotonic()
        return end - self._start_monotonic

    # ---- Recording ----
    def add_page(self, page: PageStats) -> None:
        self.processed += page.processed
        self.saved += page.saved
        self.skipped += page.skipped
        self.errored += page.errors

    def record_flush(self, ok: bool) -> None:
        self.flushes += 1
        if not ok:
            self.failed_flushes += 1

    def log_task(self, entry: TaskLog) -> None:
        entry.finished_at = entry.finished_at or datetime.now().isoformat(timespec="seconds")
        self.tasks.append(entry)

    # ---- Reporting ----
    @property
    def tasks_done(self) -> int:
        return sum(1 for t in self.tasks if t.status == "done")

    @property
    def tasks_failed(self) -> int:
        return sum(1 for t in self.tasks if t.status == "failed")

    def to_dict(self) -> Dict[str, object]:
        elapsed = self.elapsed_sec
        return {
            "processed": self.processed,
            "saved": self.saved,
            "skipped": self.skipped,
            "errored": self.errored,
            "pages_visited": self.pages_visited,
            "page_errors": self.page_errors,
            "flushes": self.flushes,
            "failed_flushes": self.failed_flushes,
            "tasks_done": self.tasks_done,
            "tasks_failed": self.tasks_failed,
            "elapsed_sec": round(elapsed, 2),
            "pages_per_min": round(self.pages_visited / (elapsed / 60), 2) if elapsed > 0 else 0.0,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stop_reason": self.stop_reason,
        }

    def log_progress(self) -> None:
        logger.info(
            f"[MONITOR] "
            f"pages={self.pages_visited} "
            f"processed={self.processed} "
            f"saved={self.saved} "
            f"skipped={self.skipped} "
            f"errors={self.errored} "
            f"elapsed={self.elapsed_sec:.0f}s"
        )

    def format_summary(self) -> str:
        """Human-readable summary block."""
        d = self.to_dict()
        lines = [
            "=" * 65,
            "  CRAWL SUMMARY",
            "=" * 65,
            f"  Items processed:     {d['processed']}",
            f"  Journals saved:      {d['saved']}",
            f"  Skipped:             {d['skipped']} (duplicate/no title)",
            f"  Errors:              {d['errored']}",
            "-" * 65,
            f"  Listing pages:       {d['pages_visited']}",
            f"  Page errors:         {d['page_errors']}",
            f"  Checkpoints:         {d['flushes']} ({d['failed_flushes']} failed)",
            "-" * 65,
        ]
        for task in self.tasks:
            line = f"  {task.code:<8} {task.status:<7} pages={task.pages_visited:<4} saved={task.saved}"
            if task.error:
                line += f"  error: {task.error[:60]}"
            lines.append(line)
        lines += [
            "-" * 65,
            f"  Elapsed time:        {d['elapsed_sec']:.1f} s",
            f"  Stop reason:         {d['stop_reason'] or 'completed'}",
            "=" * 65,
        ]
        return "\n".join(lines)
