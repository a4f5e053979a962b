"""
Dedup / Checkpoint Store
========================
In-memory, insertion-ordered map ``title -> DetailRecord`` backed by a
record sink.

- ``merge`` never overwrites: a title already present is a no-op.
- ``flush`` rewrites the whole sink; it never raises on sink failure,
  it reports ``ok=False`` so the crawl keeps going and the next flush
  tries again.
- ``load`` must run before new work in a resumed run, otherwise the next
  flush would drop the previously persisted rows.
"""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from .errors import ExtractionValidation, PersistenceError
from .record import DetailRecord
from .sinks import RecordSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    applied: bool


@dataclass(frozen=True)
class FlushResult:
    ok: bool
    count: int
    path: str = ""
    error: str = ""


class RecordStore:
    """Deduplicating record store keyed by title."""

    def __init__(self, sink: RecordSink):
        self.sink = sink
        self._records: Dict[str, DetailRecord] = {}
        self.last_flushed_at: Optional[datetime] = None
        self.flush_failures = 0
        # Set when an unreadable file could not be backed up; saves would destroy it.
        self.write_locked = False

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, title: str) -> bool:
        return self.exists(title)

    def __iter__(self) -> Iterator[DetailRecord]:
        return iter(list(self._records.values()))

    def records(self) -> List[DetailRecord]:
        return list(self._records.values())

    def titles(self) -> List[str]:
        return list(self._records)

    def get(self, title: str) -> Optional[DetailRecord]:
        return self._records.get(title.strip())

    def exists(self, title: str) -> bool:
        return title.strip() in self._records

    def merge(self, record: DetailRecord) -> MergeResult:
        """Append the record unless its title is already stored.

        Raises:
            ExtractionValidation: the record has no title or no timestamp.
        """
        if not record.is_complete_key():
            raise ExtractionValidation("title", record.title, "record missing title or retrieval time")
        title = record.title.strip()
        if title in self._records:
            logger.debug(f"[STORE] duplicate title ignored: {title}")
            return MergeResult(applied=False)
        self._records[title] = record
        return MergeResult(applied=True)

    def load(self) -> int:
        """Merge the persisted snapshot into memory. Returns rows merged.

        A missing file means a fresh run. An unreadable one is backed up
        before the store starts empty, so the next flush cannot destroy it;
        if the backup fails too, flushing is disabled for this store.
        """
        if not self.sink.exists():
            logger.info(f"[STORE] no existing data at {self.sink.path}, starting fresh")
            return 0
        try:
            rows = self.sink.read()
        except PersistenceError as exc:
            logger.error(f"[STORE] could not load {self.sink.path}: {exc}")
            self._preserve_unreadable()
            return 0
        loaded = 0
        for record in rows:
            try:
                if self.merge(record).applied:
                    loaded += 1
            except ExtractionValidation:
                logger.debug("[STORE] skipped persisted row without title/timestamp")
        logger.info(f"[STORE] loaded {loaded} existing records from {self.sink.path}")
        return loaded

    def _preserve_unreadable(self) -> None:
        try:
            dest = self.backup()
        except PersistenceError as exc:
            self.write_locked = True
            logger.error(f"[STORE] could not back up unreadable {self.sink.path} ({exc}); "
                         f"saving is disabled so the file is left untouched")
            return
        logger.warning(f"[STORE] unreadable {self.sink.path} backed up to {dest}; "
                       f"the next save starts a new file")

    def flush(self) -> FlushResult:
        count = len(self._records)
        if self.write_locked:
            self.flush_failures += 1
            reason = f"refusing to overwrite unreadable file {self.sink.path}"
            logger.error(f"[STORE] flush skipped: {reason}")
            return FlushResult(ok=False, count=count, error=reason)
        try:
            path = self.sink.write(self.records())
        except PersistenceError as exc:
            self.flush_failures += 1
            logger.error(f"[STORE] flush failed ({count} records kept in memory): {exc}")
            return FlushResult(ok=False, count=count, error=str(exc))
        self.last_flushed_at = datetime.now()
        logger.info(f"[STORE] saved {count} records to {path}")
        return FlushResult(ok=True, count=count, path=path)

    def clear(self) -> None:
        """Drop every in-memory record. The file changes on the next flush."""
        self._records.clear()
        logger.info("[STORE] cleared in-memory records")

    def backup(self) -> Optional[str]:
        """Copy the sink file to ``<stem>_backup_<timestamp><suffix>``."""
        src = self.sink.path
        if not src.exists():
            return None
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        dest = src.with_name(f"{src.stem}_backup_{stamp}{src.suffix}")
        try:
            shutil.copy2(src, dest)
        except OSError as exc:
            raise PersistenceError(str(src), "backup", str(exc)) from exc
        logger.info(f"[STORE] backed up {src} -> {dest}")
        return str(dest)

    def export(self, sink: RecordSink) -> str:
        """Write the current records to another sink (e.g. JSON alongside xlsx)."""
        return sink.write(self.records())

    def import_from(self, sink: RecordSink) -> int:
        """Merge rows from another sink; returns how many were new."""
        added = 0
        for record in sink.read():
            try:
                if self.merge(record).applied:
                    added += 1
            except ExtractionValidation:
                continue
        logger.info(f"[STORE] imported {added} records from {sink.path}")
        return added

    def stats(self) -> Dict[str, object]:
        return {
            "records": len(self._records),
            "path": str(self.sink.path),
            "last_flushed_at": self.last_flushed_at.isoformat() if self.last_flushed_at else None,
            "flush_failures": self.flush_failures,
        }
