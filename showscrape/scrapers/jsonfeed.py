"""
JSON/API feed adapter.

Deserializes a feed and remaps each item onto RawEvent fields:

    [venues.pinebox]
    kind = "json"
    url = "https://example.com/api/events"
    items = "data.events"             # dotted path to the list (omit if the root is a list)

    [venues.pinebox.field_map]
    start_text = "start.local"        # required
    artists = "performers"            # list of strings, list of {"name": ...}, or one string
    ticket_url = "links.tickets"
    event_url = "url"
    price_text = "price"
    timezone = "start.tz"
    doors_text = "doors"              # any other key lands in extra

Item keys that no mapping consumed are kept in ``extra`` under "source".
"""

from typing import Any, Optional

import requests
import structlog

from showscrape.errors import ConfigError, FetchFailure
from showscrape.models import RawEvent
from showscrape.scrapers.base import BaseScraper
from showscrape.scrapers.text import absolute_url, clean_text, split_artists

logger = structlog.get_logger()

_RAW_FIELDS = ("start_text", "artists", "ticket_url", "event_url", "price_text", "timezone")
_MISSING = object()


def dig(data: Any, path: str) -> Any:
    """Follow a dotted path ("a.b.0.c") through dicts and lists; _MISSING if absent."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _artists(value: Any) -> list[str]:
    if value is _MISSING or value is None:
        return []
    if isinstance(value, str):
        return split_artists(value)
    names: list[str] = []
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                item = item.get("name")
            if isinstance(item, str) and clean_text(item):
                names.append(clean_text(item))
    return names


def _text(value: Any) -> Optional[str]:
    if value is _MISSING or value is None or isinstance(value, (dict, list)):
        return None
    return clean_text(str(value)) or None


class JsonFeedScraper(BaseScraper):
    def __init__(self, venue_cfg: dict, session=None):
        super().__init__(venue_cfg, session)
        self.items_path = venue_cfg.get("items")
        self.field_map: dict[str, str] = {"start_text": "start", "artists": "artists", **venue_cfg.get("field_map", {})}
        if not self.field_map.get("start_text"):
            raise ConfigError(f"[venues.{self.venue_key}.field_map] needs start_text")

    def fetch_events(self) -> list[RawEvent]:
        response = self.get()
        try:
            payload = response.json()
        except requests.JSONDecodeError as exc:
            raise FetchFailure(self.venue_key, f"invalid JSON: {exc}") from exc
        return self.parse_feed(payload)

    def parse_feed(self, payload: Any) -> list[RawEvent]:
        items = dig(payload, self.items_path) if self.items_path else payload
        if not isinstance(items, list):
            raise FetchFailure(self.venue_key, f"no event list at {self.items_path or '<root>'!r}")

        events: list[RawEvent] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                logger.warning("feed_item_skipped", venue=self.venue_key, item=index, reason="not an object")
                continue
            raw = self.parse_item(item)
            if raw is None:
                logger.warning("feed_item_skipped", venue=self.venue_key, item=index, reason="no start")
                continue
            events.append(raw)
        return events

    def parse_item(self, item: dict) -> Optional[RawEvent]:
        fm = self.field_map
        start_text = _text(dig(item, fm["start_text"]))
        if not start_text:
            return None

        consumed = {path.split(".")[0] for path in fm.values()}
        extra: dict = {"venue_url": self.venue_cfg.get("venue_url", self.url)}
        for key, path in fm.items():
            if key not in _RAW_FIELDS:
                value = dig(item, path)
                if value is not _MISSING:
                    extra[key] = value
        leftovers = {k: v for k, v in item.items() if k not in consumed}
        if leftovers:
            extra["source"] = leftovers

        def mapped(name: str) -> Optional[str]:
            return _text(dig(item, fm[name])) if name in fm else None

        return self.raw_event(
            start_text,
            _artists(dig(item, fm["artists"])),
            timezone=mapped("timezone"),
            ticket_url=absolute_url(self.url, mapped("ticket_url")),
            event_url=absolute_url(self.url, mapped("event_url")),
            price_text=mapped("price_text"),
            extra=extra,
        )
