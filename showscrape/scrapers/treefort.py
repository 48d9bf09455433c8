"""
Treefort Music Hall scraper.

Listing page: https://treefortmusichall.com/shows/
  - Event cards: div.mh-show-wrapper
  - Date:        #dat inside the date column, e.g. "10/8/2025"
  - Doors:       #doo, e.g. "DOORS: 7pm" (the only time shown, used as start)
  - Age:         #age, e.g. "All Ages" / "18+"
  - Headliner:   .mh-h1 inside the artist column
  - Openers:     .mh-s1, one per <br>
  - Links:       artist column <a> (detail), .mh-sp-tickets a, .mh-sp-rsvp a
"""

from showscrape.scrapers.html import HtmlScraper


class TreefortScraper(HtmlScraper):
    venue_key = "treefort"
    venue_name = "Treefort Music Hall"
    timezone = "America/Boise"
    selectors = {
        "card": "div.mh-show-wrapper",
        "date": "div.mh-show-col.mh-show-date #dat",
        "time": "div.mh-show-col.mh-show-date #doo",
        "doors": "div.mh-show-col.mh-show-date #doo",
        "age": "div.mh-show-col.mh-show-date #age",
        "artist": "div.mh-show-col.mh-show-artist .mh-h1",
        "support": "div.mh-show-col.mh-show-artist .mh-s1",
        "info": "div.mh-show-col.mh-show-artist a",
        "ticket": "div.mh-sp-tickets a",
        "rsvp": "div.mh-sp-rsvp a",
    }
