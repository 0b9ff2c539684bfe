"""
cache.py — Time-windowed snapshot of the full record set.

Duplicate checks and searches in local mode both need "every record".
Scanning the backend for each call is wasteful, so the record store keeps
ONE snapshot here:

  get(loader)    → the snapshot if it is younger than the TTL,
                   otherwise loader() is called and its result stored
  invalidate()   → drop the snapshot; the next get() rescans

The snapshot is replaced as a whole, never patched: after an insert the
store calls invalidate() rather than appending the new record.
"""

import logging
import time
from typing import Callable, List, Optional

from .records import PlateRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300  # 5 minutes


class RecordCache:
    """Single-slot TTL cache of the full record list.

    Args:
        ttl_seconds: How long a snapshot stays fresh.
        clock:       Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._records: Optional[List[PlateRecord]] = None
        self._captured_at: Optional[float] = None

    def is_fresh(self) -> bool:
        """True when a snapshot exists and is younger than the TTL."""
        if self._records is None or self._captured_at is None:
            return False
        return self._clock() - self._captured_at < self._ttl

    def get(self, loader: Callable[[], List[PlateRecord]]) -> List[PlateRecord]:
        """Return the cached records, rescanning via *loader* when stale."""
        if self.is_fresh():
            return list(self._records)

        records = loader()
        self.put(records)
        logger.debug("Cache refreshed: %d records", len(records))
        return list(records)

    def put(self, records: List[PlateRecord]):
        """Replace the snapshot with *records*, stamped with the current time."""
        self._records = list(records)
        self._captured_at = self._clock()

    def invalidate(self):
        """Drop the snapshot outright."""
        self._records = None
        self._captured_at = None
