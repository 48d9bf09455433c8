"""
Scraper registry.

A venue is scraped either by a dedicated class (looked up by its key in
SCRAPERS) or by one of the generic adapters chosen with `kind = "html" |
"ics" | "json"` in its [venues.<key>] section.

To add a dedicated venue scraper:
1. Subclass HtmlScraper (see treefort.py) or BaseScraper in <venue_key>.py
2. Set venue_key, venue_name and timezone; preset selectors if HTML
3. Import and register it in the SCRAPERS dict below
"""

from typing import Optional

import requests

from showscrape.errors import ConfigError
from showscrape.scrapers.base import BaseScraper
from showscrape.scrapers.html import HtmlScraper
from showscrape.scrapers.ics import IcsScraper
from showscrape.scrapers.jsonfeed import JsonFeedScraper
from showscrape.scrapers.knittingfactory import KnittingFactoryScraper
from showscrape.scrapers.treefort import TreefortScraper

SCRAPERS: dict[str, type[BaseScraper]] = {
    "treefort": TreefortScraper,
    "knittingfactory": KnittingFactoryScraper,
}

SCRAPER_KINDS: dict[str, type[BaseScraper]] = {
    "html": HtmlScraper,
    "ics": IcsScraper,
    "json": JsonFeedScraper,
}


def scraper_class(key: str, venue_cfg: dict) -> type[BaseScraper]:
    kind = venue_cfg.get("kind")
    if kind is None and key in SCRAPERS:
        return SCRAPERS[key]
    if kind in SCRAPER_KINDS:
        return SCRAPER_KINDS[kind]
    raise ConfigError(
        f"[venues.{key}] has no dedicated scraper and kind={kind!r} is not one of "
        f"{', '.join(sorted(SCRAPER_KINDS))}"
    )


def build_scrapers(
    venues: dict[str, dict], session: Optional[requests.Session] = None
) -> list[BaseScraper]:
    """Instantiate one scraper per enabled venue section."""
    scrapers = []
    for key, venue_cfg in venues.items():
        cls = scraper_class(key, venue_cfg)
        scrapers.append(cls({"key": key, **venue_cfg}, session=session))
    return scrapers
