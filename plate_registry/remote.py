"""
remote.py — Plate table on a hosted PostgREST / Supabase-style service.

Every call is a plain HTTP request against one table endpoint:

  {url}/rest/v1/{table}
  Headers:
    apikey:         <api key>
    Authorization:  Bearer <api key>

Request shapes used here
────────────────────────
  exact lookup     GET    ?select=*&plate=eq.AB12CD&limit=1
  count only       HEAD   ?select=id          Prefer: count=exact
                          → total in the Content-Range header ("*/2500")
  one page         GET    ?select=*&order=plate.asc,id.asc
                          Range-Unit: items   Range: 1000-1999
  flexible search  GET    ?or=(plate.ilike."*ab*",company.ilike."*ab*",…)
  candidate pages  GET    ?plate=ilike.*A*B*1*2*   Range: 0-999, 1000-1999, …
  insert           POST   [row, …]            Prefer: return=representation
  update           PATCH  ?id=eq.7            Prefer: return=representation
  delete           DELETE ?id=eq.7            Prefer: return=representation

Paginated full retrieval
────────────────────────
  The service returns at most PAGE_SIZE (1000) rows per request, so
  fetch_all() first asks for the row count N, then requests the ranges

      [0, 999], [1000, 1999], …, [k*1000, N-1]

  ordered by plate (and id as a tie-breaker) so page boundaries are
  stable between requests.  The last range is clamped to N-1.

Error policy
────────────
  Reads (count, fetch_all, find_exact, search, find_candidates) log and
  return an empty result; the caller shows "no results".  get() is the
  lookup behind update(), so it raises BackendUnavailable instead.
  Writes raise ConstraintViolation (HTTP 409 / Postgres 23505), NotFound,
  or BackendUnavailable for anything else.
"""

import logging
import math
import time
from typing import Any, Dict, List, Optional

import requests

from .errors import BackendUnavailable, ConstraintViolation, NotFound
from .records import PlateRecord

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000               # Row cap of a single request on the service
UNIQUE_VIOLATION = "23505"     # Postgres SQLSTATE for a unique-constraint failure


class RemoteBackend:
    """Plate records in a hosted table, reached over HTTP with requests.

    Args:
        url:       Base URL of the service, e.g. https://xyz.supabase.co
        api_key:   Key sent as both ``apikey`` and bearer token.
        table:     Table name.
        timeout:   HTTP timeout in seconds.
        page_size: Rows per page for fetch_all().
        session:   requests.Session (or compatible) to send requests with.
    """

    kind = "remote"

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "plate_records",
        timeout: float = 10,
        page_size: int = PAGE_SIZE,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }
        self.connected = False
        self._gave_up = False

    # ------------------------------------------------------------------ #
    #  Connection
    # ------------------------------------------------------------------ #

    def connect(self, max_attempts: int = 3, retry_delay: float = 2.0) -> bool:
        """Probe the table until it answers or *max_attempts* is reached.

        Once the attempts are used up the backend stays disconnected for
        the rest of the process; later calls return False immediately.
        """
        if self.connected:
            return True
        if self._gave_up:
            return False

        for attempt in range(1, max_attempts + 1):
            try:
                self._read("GET", {"select": "id", "limit": "1"})
                self.connected = True
                logger.info("Connected to remote plate table %s", self.endpoint)
                return True
            except (requests.RequestException, ValueError) as exc:
                logger.warning(
                    "Remote connection attempt %d/%d failed: %s",
                    attempt, max_attempts, exc,
                )
                if attempt < max_attempts:
                    time.sleep(retry_delay)

        self._gave_up = True
        logger.warning("Remote unreachable after %d attempts — staying local", max_attempts)
        return False

    # ------------------------------------------------------------------ #
    #  Reads
    # ------------------------------------------------------------------ #

    def count(self) -> int:
        """Total rows in the table, via a count-only request."""
        try:
            return self._count()
        except (requests.RequestException, ValueError):
            logger.exception("Remote count failed")
            return 0

    def fetch_all(self) -> List[PlateRecord]:
        """Every row in the table, paging around the per-request cap."""
        try:
            total = self._count()
            pages = math.ceil(total / self.page_size)
            logger.info("Fetching %d remote rows in %d page(s)", total, pages)

            records: List[PlateRecord] = []
            seen = set()
            for i in range(pages):
                start = i * self.page_size
                end = min((i + 1) * self.page_size - 1, total - 1)
                logger.debug("Page %d/%d (%d-%d)", i + 1, pages, start, end)

                resp = self._read(
                    "GET",
                    {"select": "*", "order": "plate.asc,id.asc"},
                    headers={"Range-Unit": "items", "Range": f"{start}-{end}"},
                )
                for row in resp.json() or []:
                    # A row inserted mid-scan can shift a later page by one
                    if row.get("id") in seen:
                        continue
                    seen.add(row.get("id"))
                    records.append(PlateRecord.from_row(row))

            logger.info("Fetched %d remote rows", len(records))
            return records
        except (requests.RequestException, ValueError):
            logger.exception("Remote full retrieval failed")
            return []

    def get(self, record_id) -> Optional[PlateRecord]:
        """Row with *record_id*, or None.  Used before writes, so it raises.

        Raises:
            BackendUnavailable: The service could not be asked.
        """
        params = {"select": "*", "id": f"eq.{record_id}", "limit": "1"}
        try:
            rows = self._read("GET", params).json() or []
        except (requests.RequestException, ValueError) as exc:
            logger.exception("Remote lookup of id=%s failed", record_id)
            raise BackendUnavailable(f"lookup of id {record_id!r} failed: {exc}") from exc
        return PlateRecord.from_row(rows[0]) if rows else None

    def find_exact(self, plate: str) -> Optional[PlateRecord]:
        """Row whose stored plate equals *plate* exactly, or None."""
        return self._first({"select": "*", "plate": f"eq.{plate}", "limit": "1"})

    def search(self, term: str) -> List[PlateRecord]:
        """Case-insensitive substring match on plate, company or association."""
        pattern = _quote(f"*{term}*")
        filt = ",".join(
            f"{col}.ilike.{pattern}" for col in ("plate", "company", "association")
        )
        return self._select({
            "select": "*",
            "or": f"({filt})",
            "order": "plate.asc",
            "limit": str(self.page_size),
        })

    def find_candidates(self, canonical: str) -> List[PlateRecord]:
        """Rows whose plate contains *canonical*'s characters in order.

        "AB12" becomes the pattern *A*B*1*2*, which matches "AB-12",
        "ab 12" and other spellings an exact lookup would miss.  The caller
        still has to compare canonical forms; this is only a pre-filter.

        Short plates can match more rows than one response holds, so pages
        are requested until one comes back short.
        """
        if not canonical:
            return []
        pattern = "*" + "*".join(canonical) + "*"
        params = {
            "select": "*",
            "plate": f"ilike.{pattern}",
            "order": "plate.asc,id.asc",
        }
        records: List[PlateRecord] = []
        seen = set()
        start = 0
        try:
            while True:
                end = start + self.page_size - 1
                resp = self._read(
                    "GET", params,
                    headers={"Range-Unit": "items", "Range": f"{start}-{end}"},
                )
                rows = resp.json() or []
                for row in rows:
                    if row.get("id") in seen:
                        continue
                    seen.add(row.get("id"))
                    records.append(PlateRecord.from_row(row))
                if len(rows) < self.page_size:
                    return records
                start += self.page_size
        except (requests.RequestException, ValueError):
            logger.exception("Remote candidate lookup failed for %s", canonical)
            return []

    # ------------------------------------------------------------------ #
    #  Writes
    # ------------------------------------------------------------------ #

    def add(self, record: PlateRecord) -> PlateRecord:
        rows = self._write(
            "POST", "insert", record.plate,
            json=[record.to_row(include_id=False)],
        )
        if not rows:
            raise BackendUnavailable(f"Insert of {record.plate!r} returned no row")
        return PlateRecord.from_row(rows[0])

    def add_many(self, records: List[PlateRecord]) -> int:
        """Insert *records* with their ids, page_size rows per request.

        Returns:
            Number of rows the service reported as created.
        """
        created = 0
        for i in range(0, len(records), self.page_size):
            batch = records[i:i + self.page_size]
            rows = self._write(
                "POST", "bulk insert", f"{len(batch)} rows",
                json=[r.to_row(include_id=r.id is not None) for r in batch],
            )
            created += len(rows)
        return created

    def put(self, record: PlateRecord) -> PlateRecord:
        rows = self._write(
            "PATCH", "update", record.id,
            params={"id": f"eq.{record.id}"},
            json={
                "plate": record.plate,
                "company": record.company,
                "association": record.association,
            },
        )
        if not rows:
            raise NotFound(record.id)
        return PlateRecord.from_row(rows[0])

    def delete(self, record_id) -> bool:
        rows = self._write(
            "DELETE", "delete", record_id, params={"id": f"eq.{record_id}"},
        )
        if not rows:
            raise NotFound(record_id)
        return True

    def clear(self) -> int:
        rows = self._write("DELETE", "clear", "*", params={"id": "not.is.null"})
        return len(rows)

    # ------------------------------------------------------------------ #
    #  HTTP helpers
    # ------------------------------------------------------------------ #

    def _send(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> requests.Response:
        return self.session.request(
            method,
            self.endpoint,
            params=params,
            headers={**self._headers, **(headers or {})},
            json=json,
            timeout=self.timeout,
        )

    def _read(self, method, params, headers=None) -> requests.Response:
        resp = self._send(method, params, headers)
        resp.raise_for_status()  # raises for 4xx/5xx
        return resp

    def _select(self, params: Dict[str, str]) -> List[PlateRecord]:
        try:
            rows = self._read("GET", params).json() or []
        except (requests.RequestException, ValueError):
            logger.exception("Remote select failed: %s", params)
            return []
        return [PlateRecord.from_row(r) for r in rows]

    def _first(self, params: Dict[str, str]) -> Optional[PlateRecord]:
        rows = self._select(params)
        return rows[0] if rows else None

    def _count(self) -> int:
        resp = self._read(
            "HEAD", {"select": "id"}, headers={"Prefer": "count=exact"},
        )
        return _parse_total(resp.headers.get("Content-Range", ""))

    def _write(self, method, action, subject, params=None, json=None) -> List[dict]:
        """Send a write and return the affected rows (return=representation)."""
        try:
            resp = self._send(
                method, params,
                headers={"Prefer": "return=representation"},
                json=json,
            )
        except requests.RequestException as exc:
            logger.exception("Remote %s failed for %r", action, subject)
            raise BackendUnavailable(f"{action} failed: {exc}") from exc

        if resp.status_code == 409 or _error_code(resp) == UNIQUE_VIOLATION:
            raise ConstraintViolation(
                f"{action} {subject!r} violates a uniqueness constraint"
            )

        try:
            resp.raise_for_status()
            if not resp.content:
                return []
            return resp.json() or []
        except (requests.RequestException, ValueError) as exc:
            logger.exception("Remote %s failed for %r", action, subject)
            raise BackendUnavailable(f"{action} failed: {exc}") from exc


# ═══════════════════════════════════════════════════════════════════════════
#  Private helpers
# ═══════════════════════════════════════════════════════════════════════════

def _quote(value: str) -> str:
    """Double-quote a value for use inside a PostgREST or=(…) list.

    Quoting lets the value contain commas, dots and parentheses.
    """
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _parse_total(content_range: str) -> int:
    """Total row count from a Content-Range header like "0-24/3573".

    Raises:
        ValueError: The header is missing or the total is unknown ("*").
    """
    total = content_range.rpartition("/")[2].strip()
    if not total.isdigit():
        raise ValueError(f"No row total in Content-Range {content_range!r}")
    return int(total)


def _error_code(resp) -> Optional[str]:
    """The PostgREST error code ("23505", "PGRST116", …) of an error body."""
    if resp.status_code < 400:
        return None
    try:
        body = resp.json()
    except ValueError:
        return None
    return body.get("code") if isinstance(body, dict) else None
