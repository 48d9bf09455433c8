import json
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Optional

UNKNOWN_PERFORMER = "unknown performer"


@dataclass
class RawEvent:
    source: str              # Adapter that produced the record
    venue_id: str            # Matches the [venues.<key>] section in config.toml
    venue_name: str
    start_text: str          # Start as found on the page/feed, e.g. "Show: Fri Oct 3 @ 8pm"
    timezone: str            # IANA name, e.g. "America/Boise"
    artists: list[str] = field(default_factory=list)   # Billing order, headliner first
    event_url: Optional[str] = None
    ticket_url: Optional[str] = None
    price_text: Optional[str] = None                    # e.g. "$15-$20", "Free"
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Event:
    """
    Canonical event. Fields cannot be reassigned, but `artists`, `tags` and
    `extra` are plain containers, so the class is unhashable; key by `id`.
    """

    __hash__ = None

    id: str                  # sha256 of venue_id|start_utc|main_artist
    source: str
    venue_id: str
    start_utc: str           # ISO-8601, seconds precision, +00:00
    artists: list[str]       # Never empty
    scraped_at_utc: str
    venue_name: Optional[str] = None
    venue_url: Optional[str] = None
    start_local: Optional[str] = None
    doors_local: Optional[str] = None
    is_all_ages: Optional[bool] = None
    ticket_url: Optional[str] = None
    event_url: Optional[str] = None
    price_min_cents: Optional[int] = None
    price_max_cents: Optional[int] = None
    currency: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.artists[0] if self.artists else UNKNOWN_PERFORMER

    @property
    def start(self) -> datetime:
        return datetime.fromisoformat(self.start_utc)

    def to_payload(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, sort_keys=True)

    @classmethod
    def from_payload(cls, payload: str) -> "Event":
        data = json.loads(payload)
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class StoredEventRecord:
    id: str
    event: Event
    first_seen_utc: str
    last_seen_utc: str
    posted_at_utc: Optional[str] = None


@dataclass(frozen=True)
class PendingEntry:
    event: Event
    days_until: int
