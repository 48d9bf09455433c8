"""
Selector-driven HTML adapter.

Every venue page is treated as a list of repeated "cards". Which elements hold
the artist, date, doors time and so on is configuration:

    [venues.revolution]
    kind = "html"
    url = "https://www.revolutionconcerthouse.com/events"
    timezone = "America/Boise"

    [venues.revolution.selectors]
    card = "div.tw-section"
    artist = ".tw-name a"
    date = ".tw-event-date"
    time = "span.tw-event-time"
    doors = "span.tw-event-door-time"
    ticket = "a.tw-buy-tix-btn"
    info = ".tw-name a"

Recognised selector keys: card, date (both required), artist, support, time,
doors, age, price, ticket, rsvp, info, venue_label. A card missing an optional
element just yields an absent field; a card without a date is skipped.
"""

from typing import Optional

import structlog
from bs4 import BeautifulSoup, Tag

from showscrape.errors import ConfigError, FetchFailure
from showscrape.models import RawEvent
from showscrape.scrapers.base import BaseScraper
from showscrape.scrapers.text import absolute_url, clean_text, split_artists

logger = structlog.get_logger()

REQUIRED_SELECTORS = ("card", "date")


def first_text(card: Tag, selector: Optional[str], separator: str = " ") -> Optional[str]:
    if not selector:
        return None
    el = card.select_one(selector)
    if el is None:
        return None
    return clean_text(el.get_text(separator)) or None


def first_attr(card: Tag, selector: Optional[str], attr: str = "href") -> Optional[str]:
    if not selector:
        return None
    el = card.select_one(selector)
    if el is None:
        return None
    value = el.get(attr)
    return value if isinstance(value, str) else None


class HtmlScraper(BaseScraper):
    # Venue subclasses preset these; [venues.<key>.selectors] overrides them
    selectors: dict[str, str] = {}

    def __init__(self, venue_cfg: dict, session=None):
        super().__init__(venue_cfg, session)
        self.selectors = {**self.selectors, **venue_cfg.get("selectors", {})}
        missing = [k for k in REQUIRED_SELECTORS if not self.selectors.get(k)]
        if missing:
            raise ConfigError(f"[venues.{self.venue_key}.selectors] missing {', '.join(missing)}")
        # Only keep cards whose venue label contains this text (shared ticketing pages)
        self.venue_label_match = venue_cfg.get("venue_label_match")

    def fetch_events(self) -> list[RawEvent]:
        response = self.get()
        return self.parse_document(response.text)

    def parse_document(self, html: str) -> list[RawEvent]:
        soup = BeautifulSoup(html, "lxml")
        cards = soup.select(self.selectors["card"])
        if not cards:
            raise FetchFailure(self.venue_key, f"no cards matched {self.selectors['card']!r}")

        events: list[RawEvent] = []
        for index, card in enumerate(cards):
            try:
                raw = self.parse_card(card)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("card_skipped", venue=self.venue_key, card=index, error=str(exc))
                continue
            if raw is not None:
                events.append(raw)
        return events

    def parse_card(self, card: Tag) -> Optional[RawEvent]:
        sel = self.selectors

        if self.venue_label_match:
            label = first_text(card, sel.get("venue_label")) or ""
            if self.venue_label_match.lower() not in label.lower():
                return None

        date_text = first_text(card, sel["date"])
        if not date_text:
            return None
        time_text = first_text(card, sel.get("time"), separator=" | ")
        doors_text = first_text(card, sel.get("doors"), separator=" | ")

        artists = split_artists(first_text(card, sel.get("artist")))
        # Support acts are often <br>-separated inside one element
        artists += split_artists(first_text(card, sel.get("support"), separator=","))

        ticket_url = absolute_url(self.url, first_attr(card, sel.get("ticket")))
        event_url = absolute_url(self.url, first_attr(card, sel.get("info")))
        rsvp_url = absolute_url(self.url, first_attr(card, sel.get("rsvp")))
        age_text = first_text(card, sel.get("age"))

        extra: dict = {"raw_date": date_text, "venue_url": self.venue_cfg.get("venue_url", self.url)}
        if time_text:
            extra["time_block"] = time_text
        if doors_text or (time_text and "door" in time_text.lower()):
            extra["doors_text"] = doors_text or time_text
        if age_text:
            extra["age_text"] = age_text
        if rsvp_url:
            extra["rsvp_url"] = rsvp_url

        return self.raw_event(
            self.start_text(date_text, time_text, ticket_url),
            artists,
            event_url=event_url,
            ticket_url=ticket_url,
            price_text=first_text(card, sel.get("price")),
            extra=extra,
        )

    def start_text(self, date_text: str, time_text: Optional[str], ticket_url: Optional[str]) -> str:
        """Combine the card's date and time text into one start string for the normalizer."""
        return f"{date_text} | {time_text}" if time_text else date_text
