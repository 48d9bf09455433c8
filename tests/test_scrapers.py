"""
Venue adapter tests.

HTML fixtures are recorded venue markup trimmed to a few cards; HTTP is mocked
with the `responses` library.
"""

import pytest
import responses as rsps

from showscrape.errors import ConfigError, FetchFailure
from showscrape.scrapers import SCRAPER_KINDS, SCRAPERS, build_scrapers, scraper_class
from showscrape.scrapers.html import HtmlScraper
from showscrape.scrapers.knittingfactory import KnittingFactoryScraper
from showscrape.scrapers.text import find_first_time, parse_named_time, split_artists
from showscrape.scrapers.treefort import TreefortScraper

TREEFORT_URL = "https://treefortmusichall.com/shows/"
GENERIC_CFG = {
    "key": "revolution",
    "name": "Revolution Concert House",
    "url": "https://revolution.example.com/events",
    "timezone": "America/Boise",
    "selectors": {
        "card": "li.show",
        "artist": ".artist",
        "date": ".date",
        "time": ".time",
        "price": ".price",
        "age": ".age",
        "ticket": "a.tix",
    },
}


def test_scraper_registry_is_dict():
    assert isinstance(SCRAPERS, dict)
    assert set(SCRAPER_KINDS) == {"html", "ics", "json"}


def test_all_scrapers_have_venue_key():
    for key, cls in SCRAPERS.items():
        scraper = cls({})
        assert scraper.venue_key == key, (
            f"Scraper class {cls.__name__} has venue_key='{scraper.venue_key}' "
            f"but is registered under key '{key}'"
        )


def test_scraper_class_prefers_dedicated_then_kind():
    assert scraper_class("treefort", {"url": TREEFORT_URL}) is TreefortScraper
    assert scraper_class("treefort", {"url": TREEFORT_URL, "kind": "ics"}) is SCRAPER_KINDS["ics"]
    with pytest.raises(ConfigError):
        scraper_class("somewhere", {"url": "https://x.example.com", "kind": "pdf"})


def test_build_scrapers_injects_key():
    scrapers = build_scrapers({"revolution": {k: v for k, v in GENERIC_CFG.items() if k != "key"} | {"kind": "html"}})
    assert len(scrapers) == 1
    assert scrapers[0].venue_key == "revolution"
    assert scrapers[0].venue_name == "Revolution Concert House"


def test_html_scraper_requires_card_and_date_selectors():
    with pytest.raises(ConfigError):
        HtmlScraper({"key": "x", "url": "https://x.example.com", "selectors": {"card": ".c"}})


def test_split_artists():
    assert split_artists("Nile, Cryptopsy") == ["Nile", "Cryptopsy"]
    assert split_artists("The Beths w/ Pllush") == ["The Beths", "Pllush"]
    assert split_artists("Tycho feat. Saint Sinner / Poolside") == ["Tycho", "Saint Sinner", "Poolside"]
    assert split_artists("   ") == []


def test_time_helpers():
    assert find_first_time("Show: 7:00 pm") == "19:00"
    assert find_first_time("12am") == "00:00"
    assert find_first_time("starts 20:30") == "20:30"
    assert find_first_time("no time here") is None
    assert parse_named_time("Doors 7pm / Show 8:30pm", "show") == "20:30"
    assert parse_named_time("Doors 7pm / Show 8:30pm", "door") == "19:00"


def test_treefort_parses_cards(fixture_text):
    scraper = TreefortScraper({"url": TREEFORT_URL})
    events = scraper.parse_document(fixture_text("treefort.html"))

    # The card without a date is skipped; the one without an artist degrades
    assert len(events) == 3
    first, second, third = events

    assert first.venue_id == "treefort"
    assert first.artists == ["PUP", "Chase Petra"]
    assert first.ticket_url == "https://link.dice.fm/Ia9b62fa0126"
    assert first.event_url == "https://treefortmusichall.com/shows/pup"
    assert first.extra["age_text"] == "All Ages"
    assert first.extra["doors_text"] == "DOORS: 7pm"
    assert first.extra["rsvp_url"] == "https://www.facebook.com/events/1035975867866154"
    assert first.timezone == "America/Boise"

    assert second.artists == ["Desert Dwellers", "David Starfire", "Deeveaux"]
    assert "rsvp_url" not in second.extra

    assert third.artists == []
    assert third.ticket_url is None


def test_knitting_factory_filters_venue_and_uses_ticket_year(fixture_text):
    scraper = KnittingFactoryScraper({"url": "https://bo.knittingfactory.com/"})
    events = scraper.parse_document(fixture_text("knittingfactory.html"))

    assert len(events) == 1
    event = events[0]
    assert event.artists == ["Nile", "Cryptopsy"]
    assert event.venue_name == "Knitting Factory Boise"
    assert event.start_text == "October 5, 2025 | Show: 7:00 pm"
    assert event.ticket_url.startswith("https://www.ticketmaster.com/nile-cryptopsy")


def test_generic_html_scraper_from_config(fixture_text):
    scraper = HtmlScraper(GENERIC_CFG)
    events = scraper.parse_document(fixture_text("generic.html"))

    assert len(events) == 2
    beths = events[0]
    assert beths.artists == ["The Beths", "Pllush"]
    assert beths.price_text == "$22 adv / $25 dos"
    assert beths.ticket_url == "https://revolution.example.com/tickets/the-beths"
    assert beths.extra["doors_text"] == "Doors 7pm | Show 8pm"
    assert beths.extra["age_text"] == "21+"

    mystery = events[1]
    assert mystery.price_text is None
    assert mystery.ticket_url is None
    assert mystery.start_text == "Saturday, November 15th"


def test_no_cards_is_a_fetch_failure():
    scraper = HtmlScraper(GENERIC_CFG)
    with pytest.raises(FetchFailure):
        scraper.parse_document("<html><body><p>Site redesign!</p></body></html>")


@rsps.activate
def test_fetch_events_over_http(fixture_text):
    rsps.add(rsps.GET, TREEFORT_URL, body=fixture_text("treefort.html"))

    events = TreefortScraper({"url": TREEFORT_URL}).fetch_events()

    assert len(events) == 3
    assert all(e.venue_id == "treefort" for e in events)


@rsps.activate
def test_http_error_is_a_fetch_failure():
    rsps.add(rsps.GET, TREEFORT_URL, status=503)

    with pytest.raises(FetchFailure) as excinfo:
        TreefortScraper({"url": TREEFORT_URL}).fetch_events()
    assert excinfo.value.venue == "treefort"
    assert "503" in excinfo.value.reason


@rsps.activate
def test_network_error_is_a_fetch_failure():
    import requests

    rsps.add(rsps.GET, TREEFORT_URL, body=requests.ConnectionError("connection refused"))

    with pytest.raises(FetchFailure):
        TreefortScraper({"url": TREEFORT_URL}).fetch_events()
