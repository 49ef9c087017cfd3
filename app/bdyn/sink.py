"""
Append-only storage for telemetry records.

Every sink speaks the same flat-row format produced by the ``to_row`` methods
in ``models``: snake_case keys, ISO-8601 timestamps. Reads can filter by
session and task type and order by the timestamp field; write arrival order
is never relied upon.
"""
from __future__ import annotations
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import logging

from .errors import FetchFailure, WriteFailure
from .models import COLLECTIONS, COMPLETIONS, KEY_EVENTS, POINTER_EVENTS, from_iso

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection!r}")


class Sink:
    def append(self, collection: str, record: Row) -> None:
        raise NotImplementedError

    def query(self, collection: str, session_id: str, task_type: Optional[str] = None,
              order_by_timestamp: bool = False) -> List[Row]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemorySink(Sink):
    """Keeps rows in process memory. Used for tests and throwaway sessions."""

    def __init__(self):
        self._rows: Dict[str, List[Row]] = {c: [] for c in COLLECTIONS}
        self._lock = threading.Lock()

    def append(self, collection: str, record: Row) -> None:
        _check_collection(collection)
        with self._lock:
            self._rows[collection].append(dict(record))

    def query(self, collection: str, session_id: str, task_type: Optional[str] = None,
              order_by_timestamp: bool = False) -> List[Row]:
        _check_collection(collection)
        with self._lock:
            rows = [dict(r) for r in self._rows[collection] if r.get("session_id") == session_id]
        if task_type is not None:
            rows = [r for r in rows if r.get("task_type") == task_type]
        if order_by_timestamp:
            rows.sort(key=lambda r: from_iso(r["timestamp"]))
        return rows


_SCHEMA = """
CREATE TABLE IF NOT EXISTS key_events (
    id INTEGER PRIMARY KEY,
    session_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    key TEXT,
    event_type TEXT NOT NULL,
    dwell_time REAL,
    flight_time REAL,
    task_type TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pointer_events (
    id INTEGER PRIMARY KEY,
    session_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    x REAL,
    y REAL,
    event_type TEXT NOT NULL,
    speed REAL,
    acceleration REAL,
    task_type TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS completions (
    id INTEGER PRIMARY KEY,
    session_id TEXT NOT NULL,
    task_type TEXT NOT NULL,
    duration INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_key_events_session ON key_events(session_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_pointer_events_session ON pointer_events(session_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_completions_session ON completions(session_id);
"""

_COLUMNS = {
    KEY_EVENTS: ("session_id", "timestamp", "key", "event_type", "dwell_time", "flight_time", "task_type"),
    POINTER_EVENTS: ("session_id", "timestamp", "x", "y", "event_type", "speed", "acceleration", "task_type"),
    COMPLETIONS: ("session_id", "task_type", "duration"),
}


class SqliteSink(Sink):
    """
    SQLite file store. Timestamps are stored as fixed-width ISO strings, so
    ``ORDER BY timestamp`` is chronological.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Appends arrive from the dispatcher's worker threads.
        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()
        logger.info("SQLite sink opened at %s", self.path)

    def append(self, collection: str, record: Row) -> None:
        _check_collection(collection)
        cols = _COLUMNS[collection]
        sql = f"INSERT INTO {collection} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})"
        try:
            with self._lock:
                self._conn.execute(sql, tuple(record.get(c) for c in cols))
        except sqlite3.Error as e:
            raise WriteFailure(f"{collection} insert failed: {e}") from e

    def query(self, collection: str, session_id: str, task_type: Optional[str] = None,
              order_by_timestamp: bool = False) -> List[Row]:
        _check_collection(collection)
        cols = _COLUMNS[collection]
        sql = f"SELECT {', '.join(cols)} FROM {collection} WHERE session_id = ?"
        params: List[Any] = [session_id]
        if task_type is not None:
            sql += " AND task_type = ?"
            params.append(task_type)
        if order_by_timestamp:
            sql += " ORDER BY timestamp ASC, id ASC"
        else:
            sql += " ORDER BY id ASC"
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise FetchFailure(f"{collection} query failed: {e}") from e
        return [{k: r[k] for k in r.keys() if r[k] is not None} for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class RestSink(Sink):
    """
    Table API in the PostgREST dialect (as served by Supabase):
    ``POST /rest/v1/<table>`` to insert, ``GET`` with ``col=eq.value`` filters.
    """

    def __init__(self, base_url: str, api_key: str, session: Optional[requests.Session] = None,
                 timeout: float = 5.0, tables: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.tables = dict(tables or {c: c for c in COLLECTIONS})
        self._http = session or requests.Session()
        self._http.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def _url(self, collection: str) -> str:
        _check_collection(collection)
        return f"{self.base_url}/rest/v1/{self.tables[collection]}"

    def append(self, collection: str, record: Row) -> None:
        url = self._url(collection)
        try:
            resp = self._http.post(url, json=[record], headers={"Prefer": "return=minimal"},
                                   timeout=self.timeout)
        except requests.RequestException as e:
            raise WriteFailure(f"{collection} insert error: {e}") from e
        if not resp.ok:
            raise WriteFailure(f"{collection} insert returned {resp.status_code}")

    def query(self, collection: str, session_id: str, task_type: Optional[str] = None,
              order_by_timestamp: bool = False) -> List[Row]:
        url = self._url(collection)
        params = {"select": "*", "session_id": f"eq.{session_id}"}
        if task_type is not None:
            params["task_type"] = f"eq.{task_type}"
        if order_by_timestamp:
            params["order"] = "timestamp.asc"
        try:
            resp = self._http.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchFailure(f"{collection} query error: {e}") from e
        if not resp.ok:
            raise FetchFailure(f"{collection} query returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise FetchFailure(f"{collection} query returned invalid JSON") from e
        if not isinstance(data, list):
            raise FetchFailure(f"{collection} query returned {type(data).__name__}, expected list")
        return data

    def close(self) -> None:
        self._http.close()


def open_sink(storage) -> Sink:
    """Build the sink described by ``settings.StorageSettings``."""
    backend = storage.backend
    if backend == "memory":
        return MemorySink()
    if backend == "sqlite":
        return SqliteSink(Path(storage.db_path))
    if backend == "rest":
        if not storage.rest_url or not storage.rest_key:
            raise ValueError("REST storage needs rest_url and rest_key")
        return RestSink(storage.rest_url, storage.rest_key)
    raise ValueError(f"Unknown storage backend: {backend!r}")
