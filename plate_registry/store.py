"""
store.py — The record store: one interface over three storage tiers.

                      ┌──────────────┐
  caller ──────────▶  │ RecordStore  │──▶ RecordCache (full-set snapshot)
                      └──────┬───────┘
                             │ exactly one, chosen at construction
          ┌──────────────────┼──────────────────┐
          ▼                  ▼                  ▼
    RemoteBackend     EmbeddedBackend      FlatBackend
    (hosted table)    (SQLite file)        (JSON file)

Backend selection (RecordStore.from_config)
───────────────────────────────────────────
  1. Remote, if enabled + configured and the connection probe succeeds
     (up to 3 attempts, 2 s apart).
  2. Otherwise the embedded SQLite store, if enabled.
  3. If that is disabled or fails to open, the flat JSON file.
  The choice is made once.  A store never promotes itself back to remote.

Uniqueness
──────────
  Plates are unique by canonical identity, not by the raw string:
  "ABC-123", "abc 123" and "ABC123" are the same record.  Every insert
  and update checks the existing records first; a backend constraint
  error (SQLite UNIQUE, Postgres 23505) is reported the same way.

Cache
─────
  Local lookups and empty searches read one cached snapshot of every
  record.  Every successful insert / update / delete / clear drops the
  snapshot before returning, so the next read sees the change.
"""

import logging
import time
from typing import Callable, List, Optional

from .cache import DEFAULT_TTL_SECONDS, RecordCache
from .embedded import EmbeddedBackend
from .errors import (
    BackendUnavailable,
    ConstraintViolation,
    DuplicateIdentity,
    NotFound,
    ValidationFailure,
)
from .flat import FlatBackend, JsonBlob
from .identity import canonicalize, is_plausible_plate, same_identity, search_variants
from .records import DEFAULT_ACTOR, PlateRecord
from .remote import RemoteBackend

logger = logging.getLogger(__name__)


def remote_from_config(config: dict, session=None) -> Optional[RemoteBackend]:
    """An unconnected RemoteBackend, or None when remote use is off or unconfigured."""
    rcfg = config["remote"]
    if not rcfg.get("enabled"):
        return None
    if not (rcfg.get("url") and rcfg.get("api_key")):
        logger.info("Remote enabled but url / api_key not configured")
        return None
    return RemoteBackend(
        rcfg["url"],
        rcfg["api_key"],
        table=rcfg.get("table", "plate_records"),
        timeout=rcfg.get("timeout", 10),
        page_size=rcfg.get("page_size", 1000),
        session=session,
    )


def select_backend(config: dict, session=None):
    """Pick the storage tier described in the module docstring.

    Args:
        config:  Full app config dict (reads "remote" and "local").
        session: Optional requests.Session for the remote tier.

    Returns:
        A RemoteBackend, EmbeddedBackend or FlatBackend.
    """
    lcfg = config["local"]

    remote = remote_from_config(config, session)
    if remote is not None and remote.connect(
        max_attempts=config["remote"].get("max_attempts", 3),
        retry_delay=config["remote"].get("retry_delay_seconds", 2),
    ):
        return remote

    if lcfg.get("use_embedded", True):
        try:
            return EmbeddedBackend(lcfg["db_path"], lcfg.get("db_version", 1))
        except BackendUnavailable:
            logger.exception("Embedded store unavailable — falling back to flat file")

    return FlatBackend(JsonBlob(lcfg["flat_path"]))


class RecordStore:
    """Create, find, update and delete plate records on one backend.

    Args:
        backend:      The active storage tier.
        cache_ttl:    Lifetime of the full-set snapshot in seconds.
        offline_path: JSON file used by download_for_offline().
        clock:        Monotonic time source for the cache.
    """

    def __init__(
        self,
        backend,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        offline_path: str = "./plates.json",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.cache = RecordCache(cache_ttl, clock=clock)
        self.offline_path = offline_path
        logger.info("Record store using %s backend", backend.kind)

    @classmethod
    def from_config(cls, config: dict, session=None) -> "RecordStore":
        """Build a store, choosing the backend from *config*."""
        return cls(
            select_backend(config, session),
            cache_ttl=config["cache"]["ttl_seconds"],
            offline_path=config["local"]["flat_path"],
        )

    @property
    def backend_kind(self) -> str:
        return self.backend.kind

    @property
    def is_remote(self) -> bool:
        return self.backend.kind == RemoteBackend.kind

    # ------------------------------------------------------------------ #
    #  Lookups
    # ------------------------------------------------------------------ #

    def find_by_identity(self, plate: str) -> Optional[PlateRecord]:
        """Find the record with the same canonical plate as *plate*.

        Remote: one exact query per search variant, first hit wins, then
        a single pattern query filtered by canonical identity.
        Local: every variant is compared against the cached full set.
        """
        canonical = canonicalize(plate)
        if not canonical:
            return None
        variants = search_variants(plate)

        if self.is_remote:
            for variant in variants:
                rec = self.backend.find_exact(variant)
                if rec is not None:
                    logger.debug("Found %r via variant %r", rec.plate, variant)
                    return rec
            for rec in self.backend.find_candidates(canonical):
                if same_identity(rec.plate, canonical):
                    logger.debug("Found %r via pattern lookup", rec.plate)
                    return rec
            return None

        records = self._all_records()
        for variant in variants:
            for rec in records:
                if same_identity(rec.plate, variant):
                    return rec
        return None

    def search(self, term: Optional[str] = None) -> List[PlateRecord]:
        """Records matching *term*, or every record when *term* is empty.

        A record matches when its canonical plate contains the canonical
        term, or its company / association contains the term (any case).
        """
        if term is None or not str(term).strip():
            return self._all_records()
        term = str(term).strip()
        canonical = canonicalize(term)

        if self.is_remote:
            results = self.backend.search(term)
            if not results and canonical and canonical != term:
                results = self.backend.search(canonical)
            if not results and canonical:
                # Stored spellings with separators ("ABC-123") don't
                # contain the canonical term as a substring
                results = [
                    r for r in self.backend.find_candidates(canonical)
                    if canonical in r.canonical_plate
                ]
            return results

        lowered = term.lower()
        return [
            r for r in self._all_records()
            if (canonical and canonical in r.canonical_plate)
            or lowered in r.company.lower()
            or lowered in r.association.lower()
        ]

    def count(self) -> int:
        """Number of records on the backend right now (never cached)."""
        return self.backend.count()

    # ------------------------------------------------------------------ #
    #  Mutations
    # ------------------------------------------------------------------ #

    def insert(
        self,
        plate: str,
        company: str = "",
        association: str = "",
        actor: Optional[str] = None,
    ) -> PlateRecord:
        """Register a new plate.

        Raises:
            ValidationFailure:  *plate* is not a plausible plate.
            DuplicateIdentity:  A record with the same identity exists.
            BackendUnavailable: The backend failed the write.
        """
        _validate(plate)
        existing = self.find_by_identity(plate)
        if existing is not None:
            raise DuplicateIdentity(plate, existing)

        record = PlateRecord(
            plate=plate,
            company=(company or "").strip(),
            association=(association or "").strip(),
            registered_by=actor or DEFAULT_ACTOR,
        )
        try:
            created = self.backend.add(record)
        except ConstraintViolation as exc:
            self.cache.invalidate()
            raise DuplicateIdentity(plate) from exc

        self.cache.invalidate()
        logger.info("Registered %s (id=%s) on %s", created.plate, created.id, self.backend_kind)
        return created

    def update(
        self,
        record_id,
        plate: str,
        company: str = "",
        association: str = "",
    ) -> PlateRecord:
        """Change the plate, company and association of one record.

        The id, registration time and actor are kept.

        Raises:
            ValidationFailure:  *plate* is not a plausible plate.
            NotFound:           No record has *record_id*.
            DuplicateIdentity:  Another record has the same identity.
            BackendUnavailable: The backend failed the write.
        """
        _validate(plate)
        existing = self.backend.get(record_id)
        if existing is None:
            raise NotFound(record_id)

        conflict = self._find_conflict(plate, existing.id)
        if conflict is not None:
            raise DuplicateIdentity(plate, conflict)

        record = PlateRecord(
            id=existing.id,
            plate=plate,
            company=(company or "").strip(),
            association=(association or "").strip(),
            registered_at=existing.registered_at,
            registered_by=existing.registered_by,
        )
        try:
            updated = self.backend.put(record)
        except ConstraintViolation as exc:
            self.cache.invalidate()
            raise DuplicateIdentity(plate) from exc

        self.cache.invalidate()
        logger.info("Updated id=%s → %s", updated.id, updated.plate)
        return updated

    def delete(self, record_id) -> bool:
        """Remove one record.  Raises NotFound when it does not exist."""
        self.backend.delete(record_id)
        self.cache.invalidate()
        logger.info("Deleted id=%s", record_id)
        return True

    def clear_all(self) -> int:
        """Remove every record on the active backend."""
        removed = self.backend.clear()
        self.cache.invalidate()
        logger.warning("Cleared %d records from %s", removed, self.backend_kind)
        return removed

    # ------------------------------------------------------------------ #
    #  Offline copy
    # ------------------------------------------------------------------ #

    def download_for_offline(self, flat: Optional[FlatBackend] = None) -> dict:
        """Copy every remote record into the flat file and switch to it.

        Ids are carried over.  After a successful download this store
        works on the flat file for the rest of its life.

        Returns:
            {"success": bool, "message": str, "records": int}
        """
        if not self.is_remote:
            return {
                "success": False,
                "message": "No remote connection to download from",
                "records": 0,
            }

        records = self.backend.fetch_all()
        if not records:
            return {
                "success": False,
                "message": "No records available on the remote table",
                "records": 0,
            }

        try:
            flat = flat or FlatBackend(JsonBlob(self.offline_path))
            flat.replace_all(records)
        except (BackendUnavailable, OSError) as exc:
            logger.exception("Offline download failed")
            return {"success": False, "message": f"Download failed: {exc}", "records": 0}

        self.backend = flat
        self.cache.put(records)
        logger.info("Downloaded %d records for offline use", len(records))
        return {
            "success": True,
            "message": f"Downloaded {len(records)} records for offline use",
            "records": len(records),
        }

    def has_offline_data(self) -> bool:
        return self.backend.kind == FlatBackend.kind and self.backend.count() > 0

    def offline_stats(self) -> dict:
        """Size and freshness of the flat-file copy, when it is active."""
        if not self.has_offline_data():
            return {"total": 0, "last_updated": None, "origin": "no offline data"}
        return {
            "total": self.backend.count(),
            "last_updated": self.backend.last_updated(),
            "origin": "flat file",
        }

    def sync_to_remote(self, remote: RemoteBackend) -> dict:
        """Replace the remote table's contents with this store's records.

        The reverse of download_for_offline(): every remote row is deleted,
        then the local records are inserted with their ids.  The store
        keeps working on its local backend afterwards.

        Returns:
            {"success": bool, "message": str, "records": int}
        """
        if self.is_remote:
            return {
                "success": False,
                "message": "Store is already using the remote table",
                "records": 0,
            }
        if not remote.connect():
            return {"success": False, "message": "No remote connection to sync to", "records": 0}

        records = self.backend.fetch_all()
        if not records:
            return {"success": False, "message": "No local records to sync", "records": 0}

        try:
            removed = remote.clear()
            created = remote.add_many(records)
        except (BackendUnavailable, ConstraintViolation) as exc:
            logger.exception("Sync to remote failed")
            return {"success": False, "message": f"Sync failed: {exc}", "records": 0}

        logger.info("Synced %d records to remote (replaced %d)", created, removed)
        return {
            "success": True,
            "message": f"Synced {created} records to the remote table",
            "records": created,
        }

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _all_records(self) -> List[PlateRecord]:
        return self.cache.get(self.backend.fetch_all)

    def _find_conflict(self, plate: str, exclude_id) -> Optional[PlateRecord]:
        """Another record (not *exclude_id*) with the same identity as *plate*."""
        if self.is_remote:
            found = self.find_by_identity(plate)
            if found is not None and found.id != exclude_id:
                return found
            return None

        canonical = canonicalize(plate)
        for rec in self._all_records():
            if rec.id != exclude_id and rec.canonical_plate == canonical:
                return rec
        return None


def _validate(plate):
    if not is_plausible_plate(plate):
        raise ValidationFailure(f"{plate!r} is not a valid plate")
