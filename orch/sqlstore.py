"""SQLite-backed implementation of the event and snapshot store."""

from __future__ import annotations

import json
import re
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from orch.store import EventRecord, RecordNotFound, SnapshotRecord, Store

_DEFAULT_SQLITE_DSN = "file:orch.sqlite?cache=shared&_pragma=busy_timeout(5000)"
_PRAGMA = re.compile(r"^([A-Za-z_]+)\(([A-Za-z0-9_.\-]*)\)$")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id TEXT NOT NULL UNIQUE,
        run_id TEXT NOT NULL,
        seq INTEGER NOT NULL,
        type TEXT NOT NULL,
        payload TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (run_id, seq)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        snapshot_id TEXT NOT NULL UNIQUE,
        run_id TEXT NOT NULL,
        upto_seq INTEGER NOT NULL,
        state TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (run_id, upto_seq)
    )
    """,
)

_EVENT_COLUMNS = "event_id, run_id, seq, type, payload, created_at"
_SNAPSHOT_COLUMNS = "snapshot_id, run_id, upto_seq, state, created_at"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_object(raw: Optional[bytes], what: str) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"invalid {what} json: {exc}") from exc
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"invalid {what} json: expected an object")
    return value


def _encode_object(value: Optional[dict[str, Any]]) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _as_bytes(text: Optional[str]) -> Optional[bytes]:
    return text.encode("utf-8") if text is not None else None


def _event_from_row(row: tuple) -> EventRecord:
    event_id, run_id, seq, type_, payload, created_at = row
    return EventRecord(
        event_id=event_id,
        run_id=run_id,
        seq=seq,
        type=type_,
        payload=_as_bytes(payload),
        created_at=datetime.fromisoformat(created_at),
    )


def _snapshot_from_row(row: tuple) -> SnapshotRecord:
    snapshot_id, run_id, upto_seq, state, created_at = row
    return SnapshotRecord(
        snapshot_id=snapshot_id,
        run_id=run_id,
        upto_seq=upto_seq,
        state=_as_bytes(state),
        created_at=datetime.fromisoformat(created_at),
    )


def _pragmas(dsn: str) -> list[str]:
    _, sep, query = dsn.partition("?")
    if not sep:
        return []
    statements = []
    for value in parse_qs(query).get("_pragma", []):
        match = _PRAGMA.match(value)
        if match is None:
            raise ValueError(f"invalid pragma: {value}")
        name, argument = match.groups()
        statements.append(f"PRAGMA {name}={argument}" if argument else f"PRAGMA {name}")
    return statements


def _connect_sqlite(dsn: str) -> sqlite3.Connection:
    statements = _pragmas(dsn)
    connection = sqlite3.connect(
        dsn, uri=True, check_same_thread=False, isolation_level=None
    )
    try:
        for statement in statements:
            connection.execute(statement)
        connection.execute("SELECT 1").fetchone()
    except Exception:
        connection.close()
        raise
    return connection


class SQLStore(Store):
    """Event log and snapshot store kept in a SQLite database."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._lock = threading.RLock()

    def __enter__(self) -> SQLStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def migrate(self) -> None:
        """Create the tables if they do not exist yet."""
        with self._lock:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    def close(self) -> None:
        """Close the underlying database connection."""
        with self._lock:
            self._conn.close()

    def append_event(self, record: EventRecord) -> EventRecord:
        """Append an event with the next sequence of its run.

        Appending an event whose id already exists returns the stored event.
        """
        payload = _encode_object(_decode_object(record.payload, "payload"))
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                (last,) = self._conn.execute(
                    "SELECT COALESCE(MAX(seq), 0) FROM events WHERE run_id = ?",
                    (record.run_id,),
                ).fetchone()
                created_at = _now()
                self._conn.execute(
                    f"INSERT INTO events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                    (record.event_id, record.run_id, last + 1, record.type, payload, created_at),
                )
            except sqlite3.IntegrityError:
                existing = self._conn.execute(
                    f"SELECT {_EVENT_COLUMNS} FROM events WHERE event_id = ? LIMIT 1",
                    (record.event_id,),
                ).fetchone()
                self._conn.execute("ROLLBACK")
                if existing is not None:
                    return _event_from_row(existing)
                raise
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return EventRecord(
            event_id=record.event_id,
            run_id=record.run_id,
            seq=last + 1,
            type=record.type,
            payload=_as_bytes(payload),
            created_at=datetime.fromisoformat(created_at),
        )

    def list_events(self, run_id: str, after_seq: int = 0, limit: int = 0) -> list[EventRecord]:
        """List a run's events after a sequence in ascending order; ``limit`` 0 means all."""
        sql = f"SELECT {_EVENT_COLUMNS} FROM events WHERE run_id = ?"
        params: list[Any] = [run_id]
        if after_seq > 0:
            sql += " AND seq > ?"
            params.append(after_seq)
        sql += " ORDER BY seq ASC"
        if limit > 0:
            sql += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_event_from_row(row) for row in rows]

    def last_seq(self, run_id: str) -> int:
        """Return the highest sequence of a run, 0 if it has none."""
        with self._lock:
            (last,) = self._conn.execute(
                "SELECT COALESCE(MAX(seq), 0) FROM events WHERE run_id = ?", (run_id,)
            ).fetchone()
        return last

    def get_event_by_id(self, event_id: str) -> EventRecord:
        """Return the event with the given id; raise RecordNotFound if absent."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE event_id = ? LIMIT 1",
                (event_id,),
            ).fetchone()
        if row is None:
            raise RecordNotFound(f"event {event_id!r} not found")
        return _event_from_row(row)

    def save_snapshot(self, snapshot: SnapshotRecord) -> SnapshotRecord:
        """Store a snapshot; each ``(run_id, upto_seq)`` may be saved once."""
        state = _encode_object(_decode_object(snapshot.state, "state"))
        created_at = _now()
        with self._lock:
            self._conn.execute(
                f"INSERT INTO snapshots ({_SNAPSHOT_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (snapshot.snapshot_id, snapshot.run_id, snapshot.upto_seq, state, created_at),
            )
        return SnapshotRecord(
            snapshot_id=snapshot.snapshot_id,
            run_id=snapshot.run_id,
            upto_seq=snapshot.upto_seq,
            state=_as_bytes(state),
            created_at=datetime.fromisoformat(created_at),
        )

    def load_latest_snapshot(self, run_id: str) -> SnapshotRecord:
        """Return the run's snapshot with the highest sequence; raise RecordNotFound if none."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_SNAPSHOT_COLUMNS} FROM snapshots WHERE run_id = ? "
                "ORDER BY upto_seq DESC LIMIT 1",
                (run_id,),
            ).fetchone()
        if row is None:
            raise RecordNotFound(f"no snapshot for run {run_id!r}")
        return _snapshot_from_row(row)


def open_store(database_url: str) -> SQLStore:
    """Open a store from a ``sqlite:<dsn>`` URL; the schema is created by ``migrate``."""
    if not database_url:
        raise ValueError("database_url is empty")
    if database_url.lower().startswith("sqlite:"):
        dsn = database_url[len("sqlite:"):] or _DEFAULT_SQLITE_DSN
        return SQLStore(_connect_sqlite(dsn))
    scheme = urlsplit(database_url).scheme
    if scheme:
        if scheme.lower() in ("postgres", "postgresql"):
            raise ValueError("postgres databases are not supported by this store")
        raise ValueError(f"unsupported scheme: {scheme}")
    if any(key in database_url for key in ("host=", "user=", "dbname=")):
        raise ValueError("postgres databases are not supported by this store")
    raise ValueError("unsupported dsn format")