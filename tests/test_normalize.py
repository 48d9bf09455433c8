import time
from datetime import date, datetime, timezone

import pytest

from showscrape.errors import AmbiguousLocalTime, RecordMalformed
from showscrape.models import UNKNOWN_PERFORMER, RawEvent
from showscrape.normalize import (
    Normalizer,
    event_id,
    main_artist,
    parse_age_flag,
    parse_local,
    parse_price,
)
from showscrape.scrapers.html import HtmlScraper
from showscrape.scrapers.treefort import TreefortScraper

NOW = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


def raw(start_text, artists=("Built to Spill",), timezone_name="America/Boise", **fields):
    return RawEvent(
        source="treefort",
        venue_id="treefort",
        venue_name="Treefort Music Hall",
        start_text=start_text,
        timezone=timezone_name,
        artists=list(artists),
        **fields,
    )


@pytest.fixture
def local_tz(monkeypatch):
    """Switch the process timezone for one test."""
    def switch(name):
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield switch
    monkeypatch.undo()
    time.tzset()


def test_treefort_card_to_event(fixture_text):
    scraper = TreefortScraper({"url": "https://treefortmusichall.com/shows/"})
    pup, dwellers, nameless = [
        Normalizer().normalize(r, now=NOW)
        for r in scraper.parse_document(fixture_text("treefort.html"))
    ]

    # Treefort only lists doors, which becomes the start
    assert pup.start_local == "2025-10-08T19:00:00-06:00"
    assert pup.start_utc == "2025-10-09T01:00:00+00:00"
    assert pup.doors_local == "2025-10-08T19:00:00-06:00"
    assert pup.artists == ["PUP", "Chase Petra"]
    assert pup.is_all_ages is True
    assert pup.venue_url == "https://treefortmusichall.com/shows/"
    assert pup.scraped_at_utc == "2025-09-01T12:00:00+00:00"

    assert dwellers.start_utc == "2025-10-18T02:00:00+00:00"
    assert dwellers.is_all_ages is False

    # No artist and no time: sentinel headliner, default 8pm start
    assert nameless.artists == [UNKNOWN_PERFORMER]
    assert nameless.start_local == "2025-10-24T20:00:00-06:00"


def test_generic_card_to_event(fixture_text):
    scraper = HtmlScraper({
        "key": "revolution",
        "url": "https://revolution.example.com/events",
        "selectors": {
            "card": "li.show", "artist": ".artist", "date": ".date", "time": ".time",
            "price": ".price", "age": ".age", "ticket": "a.tix",
        },
    })
    beths = Normalizer().normalize(scraper.parse_document(fixture_text("generic.html"))[0], now=NOW)

    # Show time wins over doors; the year is inferred from the run date
    assert beths.start_local == "2025-11-14T20:00:00-07:00"
    assert beths.doors_local == "2025-11-14T19:00:00-07:00"
    assert beths.price_min_cents == 2200
    assert beths.price_max_cents == 2500
    assert beths.currency == "USD"
    assert beths.is_all_ages is False
    assert beths.event_url == beths.ticket_url == "https://revolution.example.com/tickets/the-beths"


def test_offset_timestamp_is_converted_to_utc():
    event = Normalizer().normalize(raw("2025-11-01T21:00:00-06:00"), now=NOW)
    assert event.start_utc == "2025-11-02T03:00:00+00:00"
    assert event.start_local == "2025-11-01T21:00:00-06:00"


def test_zulu_timestamp_from_ics_keeps_instant():
    event = Normalizer().normalize(raw("2025-10-04T02:00:00+00:00", timezone_name="America/Denver"), now=NOW)
    assert event.start_utc == "2025-10-04T02:00:00+00:00"
    assert event.start_local == "2025-10-03T20:00:00-06:00"


def test_bare_date_gets_default_show_time():
    event = Normalizer().normalize(raw("2025-10-12"), now=NOW)
    assert event.start_local == "2025-10-12T20:00:00-06:00"


def test_start_utc_does_not_depend_on_process_timezone(local_tz):
    record = raw("Fri Oct 3 | Show 8pm")

    local_tz("Asia/Tokyo")
    tokyo = Normalizer().normalize(record, now=NOW)
    local_tz("UTC")
    utc = Normalizer().normalize(record, now=NOW)
    local_tz("America/Los_Angeles")
    la = Normalizer().normalize(record, now=NOW)

    assert tokyo.start_utc == utc.start_utc == la.start_utc == "2025-10-04T02:00:00+00:00"
    assert tokyo.id == utc.id == la.id


def test_nonexistent_local_time_is_rejected():
    # Spring forward: 02:30 never happens in Boise on 2025-03-09
    with pytest.raises(AmbiguousLocalTime):
        Normalizer().normalize(raw("2025-03-09T02:30:00"), now=NOW)


def test_ambiguous_local_time_is_rejected():
    # Fall back: 01:30 happens twice in Boise on 2025-11-02
    with pytest.raises(AmbiguousLocalTime):
        Normalizer().normalize(raw("2025-11-02T01:30:00"), now=NOW)


def test_ambiguous_time_is_a_malformed_record():
    assert issubclass(AmbiguousLocalTime, RecordMalformed)


@pytest.mark.parametrize("text", ["", "   ", "TBA", "Doors 7pm"])
def test_unparsable_start_is_malformed(text):
    with pytest.raises(RecordMalformed):
        Normalizer().normalize(raw(text), now=NOW)


def test_unknown_timezone_falls_back_and_is_counted():
    normalizer = Normalizer(default_timezone="America/Boise")
    event = normalizer.normalize(raw("2025-10-12T20:00:00", timezone_name="Mars/Olympus"), now=NOW)

    assert normalizer.timezone_fallbacks == 1
    assert event.start_utc == "2025-10-13T02:00:00+00:00"


@pytest.mark.parametrize("reference, expected", [
    (date(2025, 9, 1), datetime(2025, 10, 5, 20, 0)),
    (date(2025, 11, 1), datetime(2026, 10, 5, 20, 0)),
])
def test_yearless_date_rolls_forward(reference, expected):
    assert parse_local("Oct 5 | Show 8pm", reference) == expected


def test_explicit_year_is_kept_even_if_past():
    assert parse_local("October 5, 2024 | Show: 7:00 pm", date(2025, 9, 1)) == datetime(2024, 10, 5, 19, 0)


def test_show_time_wins_over_doors():
    parsed = parse_local("Saturday, November 15th | Doors 7pm | Show 8:30pm", date(2025, 9, 1))
    assert parsed == datetime(2025, 11, 15, 20, 30)


@pytest.mark.parametrize("text, expected", [
    ("$15-$20", (1500, 2000, "USD")),
    ("$10", (1000, 1000, "USD")),
    ("$12.50", (1250, 1250, "USD")),
    ("£12.50 adv / £15 door", (1250, 1500, "GBP")),
    ("€20", (2000, 2000, "EUR")),
    ("$25 - $18", (1800, 2500, "USD")),
    ("21+ / $18", (1800, 1800, "USD")),
    ("21+ | $15", (1500, 1500, "USD")),
    ("18 and over, $12", (1200, 1200, "USD")),
    ("Tickets $10.", (1000, 1000, "USD")),
    ("Free, 21+", (None, None, None)),
    ("Free", (None, None, None)),
    ("Sold out", (None, None, None)),
    (None, (None, None, None)),
])
def test_parse_price(text, expected):
    assert parse_price(text, "USD") == expected


def test_price_without_symbol_uses_default_currency():
    assert parse_price("15", "CAD") == (1500, 1500, "CAD")


def test_free_show_is_tagged():
    event = Normalizer().normalize(raw("2025-10-12", price_text="FREE w/ RSVP"), now=NOW)
    assert event.price_min_cents is None
    assert event.currency is None
    assert event.tags == ["free"]


def test_tags_are_deduplicated_and_sorted():
    event = Normalizer().normalize(
        raw("2025-10-12", extra={"tags": ["Psych", "funk", "psych", " "]}), now=NOW
    )
    assert event.tags == ["funk", "Psych"]


@pytest.mark.parametrize("text, expected", [
    ("All Ages", True),
    ("all-ages show", True),
    ("21+", False),
    ("18+ w/ ID", False),
    ("", None),
    (None, None),
])
def test_parse_age_flag(text, expected):
    assert parse_age_flag(text) is expected


def test_main_artist():
    assert main_artist(["  The Beths ", "Pllush"]) == "the beths"
    assert main_artist(["", "  "]) == UNKNOWN_PERFORMER
    assert main_artist([]) == UNKNOWN_PERFORMER


def test_event_id_is_stable_over_incidental_fields():
    start = "2025-10-09T01:00:00+00:00"
    first = Normalizer().normalize(raw(start, artists=["PUP", "Chase Petra"], price_text="$20"), now=NOW)
    later = Normalizer().normalize(
        raw(
            start,
            artists=["pup"],
            price_text="$25",
            ticket_url="https://new.example.com",
            extra={"age_text": "21+", "uid": "x-1"},
        ),
        now=datetime(2025, 9, 20, tzinfo=timezone.utc),
    )
    assert first.id == later.id
    assert first.id == event_id("treefort", start, ["PUP"])
    assert len(first.id) == 64


def test_event_id_changes_with_identity_fields():
    start = "2025-10-09T01:00:00+00:00"
    base = event_id("treefort", start, ["PUP"])
    assert event_id("neurolux", start, ["PUP"]) != base
    assert event_id("treefort", "2025-10-10T01:00:00+00:00", ["PUP"]) != base
    assert event_id("treefort", start, ["Chase Petra", "PUP"]) != base


def test_extra_is_carried_through():
    event = Normalizer().normalize(
        raw("2025-10-12", extra={"uid": "fox-3@foxtheatre.org", "venue_url": "https://fox.example.com"}),
        now=NOW,
    )
    assert event.extra["uid"] == "fox-3@foxtheatre.org"
    assert event.venue_url == "https://fox.example.com"


def test_non_string_extras_are_ignored():
    event = Normalizer().normalize(
        raw(
            "2025-10-12",
            price_text="Free, 21+",
            extra={"doors_text": 19, "age_text": {"min": 21}, "tags": 5, "currency": 3, "venue_url": ["x"]},
        ),
        now=NOW,
    )

    assert event.doors_local is None
    assert event.is_all_ages is None
    assert event.venue_url is None
    assert event.price_min_cents is None
    assert event.tags == ["free"]


def test_non_string_tag_items_are_skipped():
    event = Normalizer().normalize(raw("2025-10-12", extra={"tags": ["Funk", 7, None, {"x": 1}]}), now=NOW)
    assert event.tags == ["Funk"]


def test_unexpected_record_shape_is_malformed():
    with pytest.raises(RecordMalformed):
        Normalizer().normalize(raw("2025-10-12", artists=[19]), now=NOW)
