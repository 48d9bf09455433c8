"""
ICS calendar adapter.

One RawEvent per VEVENT. SUMMARY is the sole artist; DTSTART is already
machine-readable, so it is handed to the normalizer as ISO-8601:

  DTSTART:20251004T020000Z                    -> "2025-10-04T02:00:00+00:00"
  DTSTART;TZID=America/Denver:20251003T200000 -> naive, timezone = America/Denver
  DTSTART:20251003T200000                     -> naive, venue timezone
  DTSTART;VALUE=DATE:20251003                 -> "2025-10-03" (default show time)
"""

import re
from datetime import datetime
from typing import Optional

import structlog

from showscrape.errors import FetchFailure
from showscrape.models import RawEvent
from showscrape.scrapers.base import BaseScraper
from showscrape.scrapers.text import absolute_url, clean_text

logger = structlog.get_logger()

_DATE_RE = re.compile(r"^\d{8}$")
_DATETIME_RE = re.compile(r"^\d{8}T\d{6}Z?$")


def ics_unescape(value: str) -> str:
    return (
        value.replace("\\n", "\n")
        .replace("\\N", "\n")
        .replace("\\,", ",")
        .replace("\\;", ";")
        .replace("\\\\", "\\")
    )


def unfold(block: str) -> list[str]:
    """Join RFC 5545 continuation lines (leading space or tab) onto their parent."""
    lines: list[str] = []
    for line in block.splitlines():
        if line.startswith((" ", "\t")) and lines:
            lines[-1] += line[1:]
        else:
            lines.append(line.rstrip("\r"))
    return [line for line in lines if line.strip()]


def parse_properties(lines: list[str]) -> dict[str, tuple[dict[str, str], str]]:
    """Map property name -> (params, value); the first occurrence wins."""
    props: dict[str, tuple[dict[str, str], str]] = {}
    for line in lines:
        if ":" not in line:
            continue
        head, value = line.split(":", 1)
        name, *raw_params = head.split(";")
        params = {}
        for p in raw_params:
            key, _, val = p.partition("=")
            params[key.upper()] = val.strip('"')
        props.setdefault(name.upper(), (params, value))
    return props


def ics_start(params: dict[str, str], value: str) -> Optional[tuple[str, Optional[str]]]:
    """Return (iso start, tzid override) for a DTSTART value, or None if unreadable."""
    value = value.strip()
    try:
        if _DATE_RE.match(value):
            return datetime.strptime(value, "%Y%m%d").date().isoformat(), None
        if not _DATETIME_RE.match(value):
            return None
        if value.endswith("Z"):
            parsed = datetime.strptime(value, "%Y%m%dT%H%M%SZ")
            return parsed.isoformat() + "+00:00", None
        parsed = datetime.strptime(value, "%Y%m%dT%H%M%S")
    except ValueError:
        # Right shape, impossible date such as month 13 or Feb 30
        return None
    return parsed.isoformat(), params.get("TZID")


class IcsScraper(BaseScraper):
    def fetch_events(self) -> list[RawEvent]:
        response = self.get()
        return self.parse_calendar(response.text)

    def parse_calendar(self, body: str) -> list[RawEvent]:
        if "BEGIN:VCALENDAR" not in body:
            raise FetchFailure(self.venue_key, "response is not an iCalendar document")

        events: list[RawEvent] = []
        for index, chunk in enumerate(body.split("BEGIN:VEVENT")[1:]):
            props = parse_properties(unfold(chunk.split("END:VEVENT")[0]))

            if "DTSTART" not in props:
                logger.warning("vevent_skipped", venue=self.venue_key, entry=index, reason="no DTSTART")
                continue
            start = ics_start(*props["DTSTART"])
            if start is None:
                logger.warning(
                    "vevent_skipped",
                    venue=self.venue_key,
                    entry=index,
                    reason=f"unreadable DTSTART {props['DTSTART'][1]!r}",
                )
                continue
            start_text, tzid = start

            summary = clean_text(ics_unescape(props.get("SUMMARY", ({}, ""))[1]))
            url = absolute_url(self.url, props.get("URL", ({}, None))[1])

            extra: dict = {"venue_url": self.venue_cfg.get("venue_url", self.url)}
            if "UID" in props:
                extra["uid"] = props["UID"][1].strip()
            if "LOCATION" in props:
                extra["location"] = clean_text(ics_unescape(props["LOCATION"][1]))
            if "DESCRIPTION" in props:
                extra["description"] = ics_unescape(props["DESCRIPTION"][1]).strip()
            if "CATEGORIES" in props:
                extra["tags"] = [
                    clean_text(t) for t in ics_unescape(props["CATEGORIES"][1]).split(",") if t.strip()
                ]

            events.append(self.raw_event(
                start_text,
                [summary] if summary else [],
                timezone=tzid,
                event_url=url,
                extra=extra,
            ))

        return events
