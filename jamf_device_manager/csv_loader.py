"""
CSV batch loading.

A header row is recognised by a ``SerialNumber`` cell (case-sensitive);
``ComputerName`` and ``Notes`` are optional. Without a header, columns are
read positionally as serial, name, notes. Rows without a usable serial are
skipped.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from pathlib import Path
from typing import List, Optional

from .errors import ValidationError
from .models import DeviceBatchItem

SERIAL_HEADER = "SerialNumber"
NAME_HEADER = "ComputerName"
NOTES_HEADER = "Notes"
SERIAL_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


class CsvError(ValidationError):
    """Raised when a batch file cannot be used at all."""

    title = "Invalid CSV"


def _cell(row: List[str], index: Optional[int]) -> Optional[str]:
    if index is None or index >= len(row):
        return None
    value = row[index].strip()
    return value or None


def parse_batch(text: str, logger: Optional[logging.Logger] = None) -> List[DeviceBatchItem]:
    log = logger or logging.getLogger(__name__)
    rows = [row for row in csv.reader(io.StringIO(text.lstrip("\ufeff"))) if any(cell.strip() for cell in row)]
    if not rows:
        raise CsvError("The CSV file is empty.")

    header = [cell.strip() for cell in rows[0]]
    if SERIAL_HEADER in header:
        serial_idx = header.index(SERIAL_HEADER)
        name_idx = header.index(NAME_HEADER) if NAME_HEADER in header else None
        notes_idx = header.index(NOTES_HEADER) if NOTES_HEADER in header else None
        data_rows = rows[1:]
    else:
        serial_idx, name_idx, notes_idx = 0, 1, 2
        data_rows = rows

    items: List[DeviceBatchItem] = []
    skipped = 0
    for row in data_rows:
        serial = _cell(row, serial_idx)
        if not serial or not SERIAL_PATTERN.match(serial):
            skipped += 1
            continue
        items.append(
            DeviceBatchItem(
                id=len(items) + 1,
                serial_number=serial,
                display_name=_cell(row, name_idx),
                notes=_cell(row, notes_idx),
            )
        )

    if skipped:
        log.warning("Skipped %d CSV rows without a valid serial number", skipped)
    log.info("Loaded %d devices from CSV", len(items))
    return items


def load_batch(path: str, logger: Optional[logging.Logger] = None) -> List[DeviceBatchItem]:
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise CsvError(f"Failed to read CSV file {path}: {exc}") from exc
    return parse_batch(text, logger=logger)


def items_from_serials(serials: List[str]) -> List[DeviceBatchItem]:
    return [DeviceBatchItem(id=index, serial_number=serial.strip()) for index, serial in enumerate(serials, start=1)]
