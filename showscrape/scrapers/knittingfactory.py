"""
Knitting Factory Boise scraper.

Listing page: https://bo.knittingfactory.com/
  - Event cards: div.tw-section (shared Ticketweb widget, also lists other rooms)
  - Venue label: .tw-venue-name, only "Knitting Factory" cards are kept
  - Headliner + support: .tw-name a, e.g. "Nile, Cryptopsy"
  - Date:        .tw-event-date, e.g. "October 5" (no year)
  - Time:        .tw-event-time, e.g. "Show: 7:00 pm"
  - Links:       a.tw-buy-tix-btn (tickets), a.tw-more-info-btn (detail)

The listing omits the year, but Ticketmaster links embed the show date as
MM-DD-YYYY, so the year is taken from the ticket URL when present.
"""

import re
from typing import Optional

from showscrape.scrapers.html import HtmlScraper

_DATE_IN_URL_RE = re.compile(r"(\d{2})-(\d{2})-(\d{4})")


class KnittingFactoryScraper(HtmlScraper):
    venue_key = "knittingfactory"
    venue_name = "Knitting Factory Boise"
    timezone = "America/Boise"
    selectors = {
        "card": "div.tw-section",
        "venue_label": ".tw-venue-name",
        "artist": ".tw-name a",
        "date": ".tw-event-date",
        "time": ".tw-event-time",
        "ticket": "a.tw-buy-tix-btn",
        "info": "a.tw-more-info-btn",
    }

    def __init__(self, venue_cfg: dict, session=None):
        super().__init__({"venue_label_match": "knitting factory", **venue_cfg}, session)

    def start_text(self, date_text: str, time_text: Optional[str], ticket_url: Optional[str]) -> str:
        time_text = time_text or "7:00 pm"
        year = _year_from_url(ticket_url)
        if year and not re.search(r"\b\d{4}\b", date_text):
            date_text = f"{date_text}, {year}"
        return f"{date_text} | {time_text}"


def _year_from_url(url: Optional[str]) -> Optional[str]:
    m = _DATE_IN_URL_RE.search(url or "")
    return m.group(3) if m else None
