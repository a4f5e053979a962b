"""
Record Sinks
============
Durable tabular storage for ``DetailRecord`` rows.

One header row in schema order, one row per record in store order.
The format is chosen from the file extension:

  - ``.xlsx``  openpyxl workbook (default, sheet ``Journal_Info``)
  - ``.csv``   UTF-8 with BOM so spreadsheet apps detect the encoding
  - ``.json``  list of objects keyed by column label

Every sink writes to a temporary sibling and swaps it into place, so an
interrupted write never leaves a truncated file behind.
"""

import csv
import json
import logging
import os
from pathlib import Path
from typing import List

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .errors import PersistenceError
from .record import DetailRecord

logger = logging.getLogger(__name__)

DEFAULT_SHEET = "Journal_Info"


class RecordSink:
    """Base sink. Subclasses implement ``_read`` and ``_write``."""

    suffix = ""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> List[DetailRecord]:
        if not self.path.exists():
            return []
        try:
            return self._read()
        except Exception as exc:
            raise PersistenceError(str(self.path), "read", str(exc)) from exc

    def write(self, records: List[DetailRecord]) -> str:
        """Write every record; return the absolute path written."""
        tmp = self.path.with_name(f"{self.path.stem}.tmp{self.path.suffix}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write(tmp, records)
            os.replace(tmp, self.path)
        except Exception as exc:
            if tmp.exists():
                tmp.unlink()
            raise PersistenceError(str(self.path), "write", str(exc)) from exc
        return str(self.path.absolute())

    def _read(self) -> List[DetailRecord]:
        raise NotImplementedError

    def _write(self, target: Path, records: List[DetailRecord]) -> None:
        raise NotImplementedError


def _cell_safe(value):
    # openpyxl rejects control characters copied in from scraped page text
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


class ExcelSink(RecordSink):
    suffix = ".xlsx"

    def __init__(self, path: str, sheet_name: str = DEFAULT_SHEET):
        super().__init__(path)
        self.sheet_name = sheet_name

    def _read(self) -> List[DetailRecord]:
        wb = load_workbook(self.path, read_only=True, data_only=True)
        try:
            ws = wb[self.sheet_name] if self.sheet_name in wb.sheetnames else wb.active
            rows = ws.iter_rows(values_only=True)
            headers = next(rows, None)
            if not headers:
                return []
            headers = [str(h).strip() if h is not None else "" for h in headers]
            return [DetailRecord.from_row(headers, list(row))
                    for row in rows if row and any(cell is not None for cell in row)]
        finally:
            wb.close()

    def _write(self, target: Path, records: List[DetailRecord]) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = self.sheet_name
        ws.append(DetailRecord.headers())
        for record in records:
            ws.append([_cell_safe(value) for value in record.to_row()])
        ws.freeze_panes = "A2"
        wb.save(target)


class CsvSink(RecordSink):
    suffix = ".csv"

    def _read(self) -> List[DetailRecord]:
        with open(self.path, newline="", encoding="utf-8-sig") as f:
            return [DetailRecord.from_mapping(row) for row in csv.DictReader(f)]

    def _write(self, target: Path, records: List[DetailRecord]) -> None:
        with open(target, "w", newline="", encoding="utf-8-sig") as f:
            writer = csv.writer(f)
            writer.writerow(DetailRecord.headers())
            writer.writerows(record.to_row() for record in records)


class JsonSink(RecordSink):
    suffix = ".json"

    def _read(self) -> List[DetailRecord]:
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("records", [])
        return [DetailRecord.from_mapping(row) for row in data]

    def _write(self, target: Path, records: List[DetailRecord]) -> None:
        with open(target, "w", encoding="utf-8") as f:
            json.dump([r.to_dict(by_label=True) for r in records], f, indent=2, ensure_ascii=False)


_SINKS = {cls.suffix: cls for cls in (ExcelSink, CsvSink, JsonSink)}


def sink_for_path(path: str, sheet_name: str = DEFAULT_SHEET) -> RecordSink:
    """Pick a sink from the file extension; unknown extensions get Excel."""
    suffix = Path(path).suffix.lower()
    cls = _SINKS.get(suffix)
    if cls is None:
        logger.warning(f"[STORE] unknown extension '{suffix}', writing Excel to {path}")
        return ExcelSink(path, sheet_name)
    if cls is ExcelSink:
        return ExcelSink(path, sheet_name)
    return cls(path)
