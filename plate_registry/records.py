"""
records.py — The PlateRecord entity and its row format.

Every backend stores the same six columns:

  id             Assigned by the backend on insert, never changed
  plate          The plate exactly as the user typed it
  company        Free text, "" when unknown
  association    Free text, "" when unknown
  registered_at  ISO-8601 UTC timestamp, set once on insert
  registered_by  Who registered it, "system" when unknown

The canonical plate is NOT a column: it is recomputed from ``plate``
every time it is needed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .identity import canonicalize, format_with_separator

DEFAULT_ACTOR = "system"

COLUMNS = ("id", "plate", "company", "association", "registered_at", "registered_by")


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string with a UTC offset."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PlateRecord:
    """One registered plate."""

    plate: str
    company: str = ""
    association: str = ""
    registered_at: str = field(default_factory=utc_now_iso)
    registered_by: str = DEFAULT_ACTOR
    id: Optional[Any] = None

    @property
    def canonical_plate(self) -> str:
        return canonicalize(self.plate)

    @property
    def display_plate(self) -> str:
        return format_with_separator(self.plate)

    def to_row(self, include_id: bool = True) -> Dict[str, Any]:
        """Convert to a dict keyed by the backend column names."""
        row = {
            "plate": self.plate,
            "company": self.company,
            "association": self.association,
            "registered_at": self.registered_at,
            "registered_by": self.registered_by,
        }
        if include_id:
            row = {"id": self.id, **row}
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PlateRecord":
        """Build a record from a backend row, filling in defaults for blanks."""
        return cls(
            id=row.get("id"),
            plate=row.get("plate") or "",
            company=row.get("company") or "",
            association=row.get("association") or "",
            registered_at=row.get("registered_at") or utc_now_iso(),
            registered_by=row.get("registered_by") or DEFAULT_ACTOR,
        )
