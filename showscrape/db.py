import json
import sqlite3
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from showscrape.errors import EventNotFound, StoreFailure
from showscrape.models import Event, PendingEntry, StoredEventRecord

# (key, lower bound in days inclusive); upper bound is the next key's lower bound
BUCKETS: list[tuple[str, int]] = [
    ("DAY_OF", 0),
    ("LT_1W", 1),
    ("LT_2W", 7),
    ("LT_1M", 14),
    ("LT_2M", 30),
    ("GTE_2M", 60),
]
BUCKET_KEYS = [key for key, _ in BUCKETS]


class PostOutcome(str, Enum):
    MARKED = "marked"
    ALREADY_POSTED = "already_posted"
    NOT_FOUND = "not_found"


def bucket_for(days_until: int) -> str:
    key = BUCKET_KEYS[0]
    for candidate, lower in BUCKETS:
        if days_until >= lower:
            key = candidate
    return key


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


class EventStore:
    """
    SQLite-backed event history.

    One connection is shared between threads; a store-level lock serializes
    writes so first/last-seen bookkeeping for the same id cannot interleave.
    Every sqlite3 error surfaces as StoreFailure.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()
        with self._guard():
            _create_schema(conn)

    @classmethod
    def open(cls, db_path: Path) -> "EventStore":
        return cls(connect(db_path))

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def _guard(self):
        return _Guard(self._lock)

    # --- Events ---

    def upsert(self, event: Event, now: Optional[datetime] = None) -> bool:
        """
        Insert a new event or refresh an existing one. Returns True if inserted.

        On conflict the payload is replaced and last_seen advances; first_seen
        and posted_at are left alone, so a posted event never reverts to pending.
        """
        stamp = _iso(now or _utc_now())
        with self._guard(), self.conn:
            exists = self.conn.execute(
                "SELECT 1 FROM events WHERE id = ?", (event.id,)
            ).fetchone()
            self.conn.execute(
                """
                INSERT INTO events (id, payload, first_seen_utc, last_seen_utc, posted_at_utc)
                VALUES (:id, :payload, :now, :now, NULL)
                ON CONFLICT(id) DO UPDATE SET
                    payload       = excluded.payload,
                    last_seen_utc = excluded.last_seen_utc
                """,
                {"id": event.id, "payload": event.to_payload(), "now": stamp},
            )
        return exists is None

    def get(self, event_id: str) -> Event:
        return self.get_record(event_id).event

    def get_record(self, event_id: str) -> StoredEventRecord:
        with self._guard():
            row = self.conn.execute(
                """
                SELECT id, payload, first_seen_utc, last_seen_utc, posted_at_utc
                FROM events WHERE id = ?
                """,
                (event_id,),
            ).fetchone()
        if row is None:
            raise EventNotFound(event_id)
        return _row_to_record(row)

    def count(self) -> int:
        with self._guard():
            return self.conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def pending_buckets(self, now: Optional[datetime] = None) -> dict[str, list[PendingEntry]]:
        """
        Group unposted, upcoming events by whole days until the show.

        All bucket keys are always present. days_until is floored, so anything
        later today is DAY_OF. Entries are ordered by start_utc within a bucket.
        """
        now = now or _utc_now()
        with self._guard():
            rows = self.conn.execute(
                "SELECT payload FROM events WHERE posted_at_utc IS NULL"
            ).fetchall()

        buckets: dict[str, list[PendingEntry]] = {key: [] for key in BUCKET_KEYS}
        for row in rows:
            event = _decode(row["payload"])
            start = event.start
            if start < now:
                continue
            days_until = int((start - now).total_seconds() // 86_400)
            buckets[bucket_for(days_until)].append(PendingEntry(event=event, days_until=days_until))

        for entries in buckets.values():
            entries.sort(key=lambda entry: entry.event.start)
        return buckets

    def mark_posted(
        self, event_ids: Iterable[str], now: Optional[datetime] = None
    ) -> dict[str, PostOutcome]:
        """
        Set posted_at for each id. Each id is its own transaction; unknown ids
        are reported as NOT_FOUND and an existing posted_at is never overwritten.
        """
        stamp = _iso(now or _utc_now())
        outcomes: dict[str, PostOutcome] = {}
        for event_id in event_ids:
            with self._guard(), self.conn:
                cursor = self.conn.execute(
                    "UPDATE events SET posted_at_utc = ? WHERE id = ? AND posted_at_utc IS NULL",
                    (stamp, event_id),
                )
                if cursor.rowcount:
                    outcomes[event_id] = PostOutcome.MARKED
                    continue
                exists = self.conn.execute(
                    "SELECT 1 FROM events WHERE id = ?", (event_id,)
                ).fetchone()
            outcomes[event_id] = PostOutcome.ALREADY_POSTED if exists else PostOutcome.NOT_FOUND
        return outcomes

    # --- MusicBrainz cache ---

    def get_cached_profile(self, artist_key: str) -> tuple[bool, Optional[dict]]:
        """Return (hit, profile). A hit with profile None is a cached negative lookup."""
        with self._guard():
            row = self.conn.execute(
                "SELECT profile_json FROM musicbrainz_cache WHERE artist_key = ?",
                (artist_key,),
            ).fetchone()
        if row is None:
            return False, None
        return True, json.loads(row["profile_json"])

    def put_cached_profile(
        self, artist_key: str, profile: Optional[dict], now: Optional[datetime] = None
    ) -> None:
        with self._guard(), self.conn:
            self.conn.execute(
                """
                INSERT INTO musicbrainz_cache (artist_key, profile_json, fetched_at_utc)
                VALUES (:key, :profile, :now)
                ON CONFLICT(artist_key) DO UPDATE SET
                    profile_json   = excluded.profile_json,
                    fetched_at_utc = excluded.fetched_at_utc
                """,
                {"key": artist_key, "profile": json.dumps(profile), "now": _iso(now or _utc_now())},
            )


class _Guard:
    """Hold the store lock and translate sqlite3 errors into StoreFailure."""

    def __init__(self, lock: threading.RLock):
        self.lock = lock

    def __enter__(self):
        self.lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.lock.release()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise StoreFailure(str(exc)) from exc
        return False


def connect(db_path: Path) -> sqlite3.Connection:
    try:
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(db_path, check_same_thread=False)
    except (OSError, sqlite3.Error) as exc:
        raise StoreFailure(f"cannot open {db_path}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    return conn


def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS events (
            id              TEXT PRIMARY KEY,
            payload         TEXT NOT NULL,
            first_seen_utc  TEXT NOT NULL,
            last_seen_utc   TEXT NOT NULL,
            posted_at_utc   TEXT
        );

        CREATE INDEX IF NOT EXISTS events_pending ON events(posted_at_utc);

        CREATE TABLE IF NOT EXISTS musicbrainz_cache (
            artist_key      TEXT PRIMARY KEY,
            profile_json    TEXT NOT NULL,
            fetched_at_utc  TEXT NOT NULL
        );
    """)
    conn.commit()


def _decode(payload: str) -> Event:
    try:
        return Event.from_payload(payload)
    except (ValueError, TypeError) as exc:
        raise StoreFailure(f"corrupt event payload: {exc}") from exc


def _row_to_record(row: sqlite3.Row) -> StoredEventRecord:
    return StoredEventRecord(
        id=row["id"],
        event=_decode(row["payload"]),
        first_seen_utc=row["first_seen_utc"],
        last_seen_utc=row["last_seen_utc"],
        posted_at_utc=row["posted_at_utc"],
    )
