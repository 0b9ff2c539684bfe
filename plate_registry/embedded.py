"""
embedded.py — Local plate table in a SQLite file.

Why SQLite?
───────────
  - Survives restarts (the data is a file on disk).
  - Ships with Python (sqlite3 module) — no extra dependency.
  - Enforces the UNIQUE constraint on the plate column for us, so a
    duplicate write is reported as sqlite3.IntegrityError, distinguishable
    from every other failure.

Table schema
────────────
  id             Auto-incrementing primary key
  plate          Plate as typed (UNIQUE)
  company        Owning company
  association    Association
  registered_at  ISO-8601 timestamp of the insert
  registered_by  Actor label

The schema version lives in ``PRAGMA user_version`` so that opening an
older file can be detected.  Version 1 is the only one so far.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .errors import BackendUnavailable, ConstraintViolation, NotFound
from .records import PlateRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class EmbeddedBackend:
    """Plate records stored in a local SQLite database file.

    Args:
        db_path: Path to the SQLite file (created if missing).
        version: Schema version expected by this code.

    Raises:
        BackendUnavailable: The file cannot be opened or initialised.
    """

    kind = "embedded"

    def __init__(self, db_path: str = "./plates.db", version: int = SCHEMA_VERSION):
        self.db_path = db_path
        self.version = version
        self._init()

    # ------------------------------------------------------------------ #
    #  Database setup
    # ------------------------------------------------------------------ #

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close."""
        c = sqlite3.connect(self.db_path, timeout=10)
        c.row_factory = sqlite3.Row
        try:
            yield c
            c.commit()
        except Exception:
            c.rollback()
            raise
        finally:
            c.close()

    def _init(self):
        """Create the plates table on first open and stamp the version."""
        try:
            with self._conn() as c:
                current = c.execute("PRAGMA user_version").fetchone()[0]
                c.execute("""
                    CREATE TABLE IF NOT EXISTS plates (
                        id             INTEGER PRIMARY KEY AUTOINCREMENT,
                        plate          TEXT    NOT NULL UNIQUE,
                        company        TEXT    NOT NULL DEFAULT '',
                        association    TEXT    NOT NULL DEFAULT '',
                        registered_at  TEXT    NOT NULL,
                        registered_by  TEXT    NOT NULL DEFAULT 'system'
                    )
                """)
                if current == 0:
                    # PRAGMA does not accept bound parameters
                    c.execute(f"PRAGMA user_version = {int(self.version)}")
                elif current != self.version:
                    logger.warning(
                        "Plate DB %s has schema version %d, expected %d",
                        self.db_path, current, self.version,
                    )
        except sqlite3.Error as exc:
            raise BackendUnavailable(
                f"Cannot open plate database {self.db_path}: {exc}"
            ) from exc
        logger.info("Embedded plate store ready: %s", self.db_path)

    # ------------------------------------------------------------------ #
    #  Reads: failures are logged and reported as "nothing", except get()
    # ------------------------------------------------------------------ #

    def fetch_all(self) -> List[PlateRecord]:
        try:
            with self._conn() as c:
                rows = c.execute("SELECT * FROM plates ORDER BY id").fetchall()
        except sqlite3.Error:
            logger.exception("Reading plates from %s failed", self.db_path)
            return []
        return [PlateRecord.from_row(dict(r)) for r in rows]

    def get(self, record_id) -> Optional[PlateRecord]:
        """Row with *record_id*, or None.  Raises BackendUnavailable on failure."""
        try:
            with self._conn() as c:
                row = c.execute(
                    "SELECT * FROM plates WHERE id=?", (record_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.exception("Reading plate id=%s failed", record_id)
            raise BackendUnavailable(f"lookup of id {record_id!r} failed: {exc}") from exc
        return PlateRecord.from_row(dict(row)) if row else None

    def count(self) -> int:
        try:
            with self._conn() as c:
                return c.execute("SELECT COUNT(*) FROM plates").fetchone()[0]
        except sqlite3.Error:
            logger.exception("Counting plates in %s failed", self.db_path)
            return 0

    # ------------------------------------------------------------------ #
    #  Writes: failures raise
    # ------------------------------------------------------------------ #

    def add(self, record: PlateRecord) -> PlateRecord:
        """Insert *record* and return it with the new id filled in."""
        row = record.to_row(include_id=False)
        with self._write("insert", record.plate) as c:
            cur = c.execute(
                """INSERT INTO plates
                   (plate, company, association, registered_at, registered_by)
                   VALUES (:plate, :company, :association, :registered_at, :registered_by)""",
                row,
            )
            record.id = cur.lastrowid
        return record

    def put(self, record: PlateRecord) -> PlateRecord:
        """Overwrite the mutable fields of the record with ``record.id``."""
        with self._write("update", record.plate) as c:
            cur = c.execute(
                "UPDATE plates SET plate=?, company=?, association=? WHERE id=?",
                (record.plate, record.company, record.association, record.id),
            )
            if cur.rowcount == 0:
                raise NotFound(record.id)
        return record

    def delete(self, record_id) -> bool:
        with self._write("delete", record_id) as c:
            cur = c.execute("DELETE FROM plates WHERE id=?", (record_id,))
            if cur.rowcount == 0:
                raise NotFound(record_id)
        return True

    def clear(self) -> int:
        """Delete every row.  Returns how many were removed."""
        with self._write("clear", "*") as c:
            # rowcount is unreliable for an unconditional DELETE
            removed = c.execute("SELECT COUNT(*) FROM plates").fetchone()[0]
            c.execute("DELETE FROM plates")
        return removed

    @contextmanager
    def _write(self, action: str, subject) -> Iterator[sqlite3.Connection]:
        """Run a write and translate sqlite3 errors into registry errors."""
        try:
            with self._conn() as c:
                yield c
        except sqlite3.IntegrityError as exc:
            raise ConstraintViolation(
                f"{action} {subject!r} violates a uniqueness constraint"
            ) from exc
        except sqlite3.Error as exc:
            logger.exception("Embedded %s failed for %r", action, subject)
            raise BackendUnavailable(f"{action} failed: {exc}") from exc
