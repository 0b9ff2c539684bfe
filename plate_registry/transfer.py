"""
transfer.py — Bulk import and export of plate records.

Import
──────
  A source table (one sheet of a spreadsheet, one CSV file, …) is a list
  of ImportRow(plate, company, association, row_number).  import_rows()
  inserts each row through the RecordStore, so the same duplicate
  screening applies as for a single insert:

      duplicate plate    → counted as a duplicate, skipped
      invalid plate      → counted as an error, skipped
      backend failure    → counted as an error, skipped

  One bad row never stops the batch.

Export
──────
  export_records() returns every record in the order search(None) gives
  them; write_csv() serialises them with a header row.

Only CSV is read and written here.  Other formats plug in by producing a
SourceTable or consuming the exported list.
"""

import csv
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import DuplicateIdentity, RegistryError, ValidationFailure
from .identity import canonicalize
from .records import PlateRecord
from .store import RecordStore

logger = logging.getLogger(__name__)

EXPORT_HEADER = ["PLATE", "COMPANY", "ASSOCIATION", "REGISTERED AT", "REGISTERED BY"]

# First-cell values that mark a header row rather than data
_HEADER_CELLS = {"PLATE", "PLATES", "PLACA", "PLACAS"}

PREVIEW_ROWS = 5


@dataclass
class ImportRow:
    plate: str
    company: str = ""
    association: str = ""
    row_number: int = 0


@dataclass
class SourceTable:
    """Rows from one sheet / file, plus where they came from."""
    name: str
    rows: List[ImportRow]
    sheet: str = ""
    total_sheets: int = 1


@dataclass
class ImportSummary:
    imported: int = 0
    duplicates: int = 0
    errors: int = 0
    total: int = 0
    preview: List[ImportRow] = field(default_factory=list)
    source: str = ""
    sheet: str = ""
    total_sheets: int = 1

    def to_dict(self) -> dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
#  Import
# ═══════════════════════════════════════════════════════════════════════════

def import_rows(
    store: RecordStore,
    source: SourceTable,
    skip_duplicates: bool = True,
    actor: Optional[str] = None,
) -> ImportSummary:
    """Insert every row of *source* into *store*.

    Args:
        store:           Target record store.
        source:          Rows to import.
        skip_duplicates: Count rows the store refuses as duplicates under
                         ``duplicates``.  When False they count as errors.
        actor:           Recorded as registered_by on every new record.

    Raises:
        ValidationFailure: *source* has no rows.
    """
    if not source.rows:
        raise ValidationFailure(f"No rows to import in {source.name!r}")

    summary = ImportSummary(
        total=len(source.rows),
        preview=source.rows[:PREVIEW_ROWS],
        source=source.name,
        sheet=source.sheet or source.name,
        total_sheets=source.total_sheets,
    )

    for row in source.rows:
        try:
            store.insert(row.plate, row.company, row.association, actor=actor)
            summary.imported += 1
        except DuplicateIdentity:
            if skip_duplicates:
                summary.duplicates += 1
            else:
                summary.errors += 1
        except RegistryError as exc:
            summary.errors += 1
            logger.warning("Row %d (%r) not imported: %s", row.row_number, row.plate, exc)

    logger.info(
        "Import of %s: %d imported, %d duplicates, %d errors (of %d)",
        source.name, summary.imported, summary.duplicates, summary.errors, summary.total,
    )
    return summary


def read_csv_source(path: str) -> SourceTable:
    """Read plate, company, association from the first three CSV columns.

    Rows with a blank plate are skipped.  A first row whose plate cell
    reads like a column title ("PLATE", "PLACA") is treated as a header.
    Row numbers are 1-based file lines.
    """
    rows: List[ImportRow] = []
    with open(path, "r", newline="", encoding="utf-8-sig") as f:
        for index, cells in enumerate(csv.reader(f), start=1):
            cells = [c.strip() for c in cells] + ["", "", ""]
            plate, company, association = cells[:3]
            if not plate:
                continue
            if index == 1 and canonicalize(plate) in _HEADER_CELLS:
                continue
            rows.append(ImportRow(plate, company, association, row_number=index))

    name = Path(path).name
    return SourceTable(name=name, rows=rows, sheet=Path(path).stem)


# ═══════════════════════════════════════════════════════════════════════════
#  Export
# ═══════════════════════════════════════════════════════════════════════════

def export_records(store: RecordStore) -> List[PlateRecord]:
    """Every record, in search(None) order.

    Raises:
        ValidationFailure: There is nothing to export.
    """
    records = store.search(None)
    if not records:
        raise ValidationFailure("No records to export")
    return records


def write_csv(path: str, records: List[PlateRecord]) -> int:
    """Write *records* to *path* with EXPORT_HEADER.  Returns the row count."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(EXPORT_HEADER)
        for rec in records:
            writer.writerow([
                rec.plate,
                rec.company,
                rec.association,
                rec.registered_at,
                rec.registered_by,
            ])
    logger.info("Exported %d records to %s", len(records), path)
    return len(records)
