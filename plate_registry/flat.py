"""
flat.py — Last-resort local tier: one JSON file holding the whole list.

The file is only ever read and written in full:

  JsonBlob.get()       → the list stored in the file ([] if missing)
  JsonBlob.set(rows)   → replace the file contents

Writes go to a temporary file first and are then renamed over the real
one, so a crash mid-write never leaves half a list behind.

Nothing here checks for duplicate plates.  When this tier is active the
record store must consult the full set before every insert / update.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import BackendUnavailable, NotFound
from .records import PlateRecord, utc_now_iso

logger = logging.getLogger(__name__)


class JsonBlob:
    """Whole-file get/set storage for a JSON list.

    Args:
        path: File to keep the list in (parent dirs are created).
    """

    def __init__(self, path: str = "./plates.json"):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.path.is_file()

    def get(self) -> List[Dict[str, Any]]:
        """Read the whole list.

        Raises:
            OSError / ValueError: The file cannot be read or parsed.
        """
        if not self.path.is_file():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not contain a JSON list")
        return data

    def set(self, rows: List[Dict[str, Any]]):
        """Replace the whole list."""
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=1)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


class FlatBackend:
    """Plate records kept as an ordered list inside a JsonBlob.

    Args:
        blob: Storage for the serialised list.
    """

    kind = "flat"

    def __init__(self, blob: JsonBlob):
        self.blob = blob
        # Make sure an empty list exists, like a freshly created table
        if not blob.exists():
            self._save([])
        logger.info("Flat plate store ready: %s", blob.path)

    # ------------------------------------------------------------------ #
    #  Reads
    # ------------------------------------------------------------------ #

    def fetch_all(self) -> List[PlateRecord]:
        try:
            rows = self.blob.get()
        except (OSError, ValueError):
            logger.exception("Reading %s failed", self.blob.path)
            return []
        return [PlateRecord.from_row(r) for r in rows if isinstance(r, dict)]

    def get(self, record_id) -> Optional[PlateRecord]:
        """Record with *record_id*, or None.  A broken file raises."""
        for rec in self._load():
            if rec.id == record_id:
                return rec
        return None

    def count(self) -> int:
        return len(self.fetch_all())

    def last_updated(self) -> Optional[str]:
        """Most recent registered_at in the list, or None when empty."""
        stamps = [r.registered_at for r in self.fetch_all() if r.registered_at]
        return max(stamps) if stamps else None

    # ------------------------------------------------------------------ #
    #  Writes
    # ------------------------------------------------------------------ #

    def add(self, record: PlateRecord) -> PlateRecord:
        records = self._load()
        record.id = self._next_id(records)
        if not record.registered_at:
            record.registered_at = utc_now_iso()
        records.append(record)
        self._save([r.to_row() for r in records])
        return record

    def put(self, record: PlateRecord) -> PlateRecord:
        records = self._load()
        for i, existing in enumerate(records):
            if existing.id == record.id:
                records[i] = record
                break
        else:
            raise NotFound(record.id)
        self._save([r.to_row() for r in records])
        return record

    def delete(self, record_id) -> bool:
        records = self._load()
        kept = [r for r in records if r.id != record_id]
        if len(kept) == len(records):
            raise NotFound(record_id)
        self._save([r.to_row() for r in kept])
        return True

    def clear(self) -> int:
        removed = len(self._load())
        self._save([])
        return removed

    def replace_all(self, records: List[PlateRecord]):
        """Overwrite the list with *records*, keeping their ids."""
        self._save([r.to_row() for r in records])

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _load(self) -> List[PlateRecord]:
        """Read for a write: a broken blob must not be silently replaced."""
        try:
            rows = self.blob.get()
        except (OSError, ValueError) as exc:
            raise BackendUnavailable(f"Cannot read {self.blob.path}: {exc}") from exc
        return [PlateRecord.from_row(r) for r in rows if isinstance(r, dict)]

    def _save(self, rows: List[Dict[str, Any]]):
        try:
            self.blob.set(rows)
        except (OSError, TypeError, ValueError) as exc:
            logger.exception("Writing %s failed", self.blob.path)
            raise BackendUnavailable(f"Cannot write {self.blob.path}: {exc}") from exc

    @staticmethod
    def _next_id(records: List[PlateRecord]) -> int:
        ids = [r.id for r in records if isinstance(r.id, int)]
        return max(ids, default=0) + 1
