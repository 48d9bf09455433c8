from datetime import datetime, timezone
from pathlib import Path

import pytest

from showscrape.config import settings_from_dict
from showscrape.db import EventStore, connect
from showscrape.models import Event
from showscrape.normalize import event_id

FIXTURES = Path(__file__).parent / "fixtures"


def _make_event(
    start_utc: str = "2025-01-10T03:00:00+00:00",
    artists: list[str] | None = None,
    venue_id: str = "treefort",
    **overrides,
) -> Event:
    artists = artists or ["The Midnight", "Special Guest"]
    fields = {
        "id": event_id(venue_id, start_utc, artists),
        "source": venue_id,
        "venue_id": venue_id,
        "venue_name": "Treefort Music Hall",
        "start_utc": start_utc,
        "artists": artists,
        "scraped_at_utc": "2025-01-01T00:00:00+00:00",
        "ticket_url": "https://tickets.example.com/midnight",
        "event_url": "https://treefortmusichall.com/shows/midnight",
    }
    fields.update(overrides)
    return Event(**fields)


@pytest.fixture
def fixture_text():
    return lambda name: (FIXTURES / name).read_text(encoding="utf-8")


@pytest.fixture
def make_event():
    return _make_event


@pytest.fixture
def utc_now():
    return datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def store():
    s = EventStore(connect(Path(":memory:")))
    yield s
    s.close()


@pytest.fixture
def settings(tmp_path):
    return settings_from_dict({
        "database": {"path": str(tmp_path / "events.db")},
        "defaults": {"timezone": "America/Boise", "fetch_timeout": 5},
        "llm": {"base_url": "http://llm.test/v1", "model": "test-model", "max_chars": 500},
        "musicbrainz": {"enabled": False},
    })
