"""
conftest.py — Shared fixtures for the plate-registry tests.

pytest loads this file automatically.  The main thing here is
FakePostgrest: an in-memory stand-in for a requests.Session pointed at a
PostgREST table.  It understands just the query shapes RemoteBackend
sends (eq / ilike / not.is.null filters, or=(…), order, limit, Range
headers, count=exact) and enforces the service's per-request row cap,
so pagination bugs show up as missing rows.
"""

import json
import re

import pytest
import requests

from plate_registry.embedded import EmbeddedBackend
from plate_registry.flat import FlatBackend, JsonBlob
from plate_registry.remote import RemoteBackend
from plate_registry.store import RecordStore


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.content = b"" if body is None else json.dumps(body).encode()

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakePostgrest:
    """In-memory PostgREST table reachable through ``request()``.

    Args:
        rows:     Initial rows (dicts with the table columns).
        max_rows: Row cap per response, like the hosted service.
    """

    def __init__(self, rows=None, max_rows=1000):
        self.rows = [dict(r) for r in rows or []]
        self.max_rows = max_rows
        self.calls = []
        self.fail = False
        self._next_id = max((r["id"] for r in self.rows), default=0) + 1

    # ------------------------------------------------------------------ #
    #  requests.Session interface
    # ------------------------------------------------------------------ #

    def request(self, method, url, params=None, headers=None, json=None, timeout=None):
        params = dict(params or {})
        headers = dict(headers or {})
        self.calls.append((method, params, headers))
        if self.fail:
            raise requests.ConnectionError("service unreachable")
        return getattr(self, "_" + method.lower())(params, headers, json)

    def ranges_requested(self):
        """The Range headers of every GET, in order."""
        return [h["Range"] for m, _, h in self.calls if m == "GET" and "Range" in h]

    # ------------------------------------------------------------------ #
    #  Verbs
    # ------------------------------------------------------------------ #

    def _head(self, params, headers, body):
        n = len(self._filter(params))
        return FakeResponse(200, None, {"Content-Range": f"*/{n}"})

    def _get(self, params, headers, body):
        rows = self._order(self._filter(params), params.get("order"))
        if "Range" in headers:
            start, end = (int(x) for x in headers["Range"].split("-"))
            rows = rows[start:end + 1]
        if "limit" in params:
            rows = rows[:int(params["limit"])]
        rows = rows[:self.max_rows]
        return FakeResponse(200, [dict(r) for r in rows])

    def _post(self, params, headers, body):
        created = []
        for row in body:
            if self._plate_taken(row["plate"]):
                return self._conflict(row["plate"])
            if row.get("id") is None:
                row = {**row, "id": self._next_id}
            self._next_id = max(self._next_id, row["id"] + 1)
            self.rows.append(row)
            created.append(dict(row))
        return FakeResponse(201, created)

    def _patch(self, params, headers, body):
        targets = self._filter(params)
        for row in targets:
            if "plate" in body and self._plate_taken(body["plate"], exclude=row["id"]):
                return self._conflict(body["plate"])
        for row in targets:
            row.update(body)
        return FakeResponse(200, [dict(r) for r in targets])

    def _delete(self, params, headers, body):
        targets = self._filter(params)
        self.rows = [r for r in self.rows if r not in targets]
        return FakeResponse(200, [dict(r) for r in targets])

    # ------------------------------------------------------------------ #
    #  Query helpers
    # ------------------------------------------------------------------ #

    def _filter(self, params):
        rows = self.rows
        for key, value in params.items():
            if key in ("select", "order", "limit"):
                continue
            if key == "or":
                rows = [r for r in rows if self._match_or(r, value)]
                continue
            op, _, arg = value.partition(".")
            if op == "eq":
                rows = [r for r in rows if str(r.get(key)) == arg]
            elif op == "ilike":
                rows = [r for r in rows if _ilike(r.get(key), arg)]
            elif value == "not.is.null":
                rows = [r for r in rows if r.get(key) is not None]
            else:
                raise AssertionError(f"Unsupported filter {key}={value}")
        return list(rows)

    @staticmethod
    def _match_or(row, expr):
        parts = re.findall(r'(\w+)\.ilike\.("(?:[^"\\]|\\.)*"|[^,)]*)', expr)
        for col, pattern in parts:
            if pattern.startswith('"'):
                pattern = re.sub(r"\\(.)", r"\1", pattern[1:-1])
            if _ilike(row.get(col), pattern):
                return True
        return False

    @staticmethod
    def _order(rows, order):
        if not order:
            return rows
        keys = [part.split(".")[0] for part in order.split(",")]
        return sorted(rows, key=lambda r: tuple(r.get(k) for k in keys))

    def _plate_taken(self, plate, exclude=None):
        return any(r["plate"] == plate and r["id"] != exclude for r in self.rows)

    @staticmethod
    def _conflict(plate):
        return FakeResponse(409, {
            "code": "23505",
            "message": f'duplicate key value violates unique constraint ({plate})',
        })


def _ilike(value, pattern):
    if value is None:
        return False
    rx = ".*".join(re.escape(p) for p in pattern.split("*"))
    return re.fullmatch(rx, str(value), re.IGNORECASE) is not None


def make_rows(n):
    """*n* table rows with distinct plates P00000, P00001, …"""
    return [
        {
            "id": i + 1,
            "plate": f"P{i:05d}",
            "company": "Fleet Co",
            "association": "",
            "registered_at": "2024-01-01T00:00:00+00:00",
            "registered_by": "system",
        }
        for i in range(n)
    ]


class FrozenClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ── Fixtures ─────────────────────────────────────────────────────────── #

@pytest.fixture
def fake_service():
    return FakePostgrest()


@pytest.fixture
def remote_backend(fake_service):
    backend = RemoteBackend("https://example.test", "test-key", session=fake_service)
    assert backend.connect(retry_delay=0)
    return backend


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture(params=["embedded", "flat", "remote"])
def store(request, tmp_path, clock):
    """A RecordStore on each of the three backends in turn."""
    if request.param == "embedded":
        backend = EmbeddedBackend(str(tmp_path / "plates.db"))
    elif request.param == "flat":
        backend = FlatBackend(JsonBlob(str(tmp_path / "plates.json")))
    else:
        backend = RemoteBackend(
            "https://example.test", "test-key", session=FakePostgrest()
        )
        backend.connect(retry_delay=0)
    return RecordStore(backend, clock=clock, offline_path=str(tmp_path / "offline.json"))
