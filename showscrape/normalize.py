"""
Raw-to-canonical normalization.

A RawEvent becomes an Event in four steps:

1. Resolve the start time. Machine-readable timestamps (ISO-8601/RFC-3339 with an
   offset) are converted to UTC directly. Anything else is parsed as a naive
   local date/time from venue phrasing ("Show: Fri Oct 3 @ 8pm") and localized
   in the record's named timezone.
2. Parse the free-text price into integer minor units.
3. Hash venue_id|start_utc|main_artist into the stable event id.
4. Assemble the Event, carrying ``extra`` through unchanged.

Any failure raises RecordMalformed for that record alone.
"""

import hashlib
import re
from datetime import date, datetime, time, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from dateutil import parser as dateparser

from showscrape.config import DEFAULT_CURRENCY, DEFAULT_TIMEZONE
from showscrape.errors import AmbiguousLocalTime, RecordMalformed
from showscrape.models import UNKNOWN_PERFORMER, Event, RawEvent
from showscrape.scrapers.text import TIME_RE, clean_text, find_first_time, parse_named_time

logger = structlog.get_logger()

DEFAULT_SHOW_TIME = time(20, 0)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")
_LABEL_RE = re.compile(r"\b(?:doors?|show\s*time|show|starts?|start)\b\s*[:\-@]?", re.IGNORECASE)
_ORDINAL_RE = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)\b", re.IGNORECASE)

_CURRENCY_SYMBOLS = {"£": "GBP", "€": "EUR"}
# Age markers ("21+", "18 and over") are not amounts
_AGE_SUFFIX = r"(?!\d|\.\d|\s*\+|\s*(?i:and|&)\s*(?i:over))"
_PRICE_RE = re.compile(
    r"(?P<sym1>[$£€])?\s*(?P<low>\d+(?:\.\d{1,2})?)" + _AGE_SUFFIX +
    r"(?:\s*[A-Za-z.]{0,5}\s*[-/–—]\s*(?P<sym2>[$£€])?\s*(?P<high>\d+(?:\.\d{1,2})?))?"
)

# Sentinel defaults used to detect which date parts dateutil actually found
_FILL_A = datetime(2000, 1, 1)
_FILL_B = datetime(2001, 2, 2)


class Normalizer:
    def __init__(
        self,
        default_timezone: str = DEFAULT_TIMEZONE,
        default_currency: str = DEFAULT_CURRENCY,
    ):
        self.default_timezone = default_timezone
        self.default_currency = default_currency
        self.timezone_fallbacks = 0

    def normalize(self, raw: RawEvent, now: Optional[datetime] = None) -> Event:
        """Build the canonical Event. Any problem with the record raises RecordMalformed."""
        try:
            return self._normalize(raw, now or datetime.now(timezone.utc))
        except RecordMalformed:
            raise
        except (TypeError, ValueError, AttributeError, KeyError, OverflowError) as exc:
            raise RecordMalformed(f"{type(exc).__name__}: {exc}") from exc

    def _normalize(self, raw: RawEvent, now: datetime) -> Event:
        zone = self.resolve_timezone(raw.timezone, raw.venue_id)

        start_local = resolve_start(raw.start_text, zone, now)
        start_utc = to_utc_iso(start_local)

        artists = [name for name in (clean_text(a) for a in raw.artists) if name]
        if not artists:
            artists = [UNKNOWN_PERFORMER]

        currency_hint = _extra_text(raw.extra, "currency")
        price_min, price_max, currency = parse_price(
            raw.price_text, currency_hint or self.default_currency
        )

        return Event(
            id=event_id(raw.venue_id, start_utc, artists),
            source=raw.source,
            venue_id=raw.venue_id,
            venue_name=raw.venue_name or None,
            venue_url=_extra_text(raw.extra, "venue_url"),
            start_local=start_local.isoformat(timespec="seconds"),
            start_utc=start_utc,
            doors_local=_doors_local(_extra_text(raw.extra, "doors_text"), start_local),
            artists=artists,
            is_all_ages=parse_age_flag(_extra_text(raw.extra, "age_text")),
            ticket_url=raw.ticket_url,
            event_url=raw.event_url or raw.ticket_url,
            price_min_cents=price_min,
            price_max_cents=price_max,
            currency=currency,
            tags=_tags(raw.extra.get("tags"), raw.price_text),
            scraped_at_utc=to_utc_iso(now),
            extra=raw.extra,
        )

    def resolve_timezone(self, name: Optional[str], venue_id: str = "") -> tzinfo:
        """
        Look up an IANA zone, falling back to the default zone for unknown names.
        The fallback loses accuracy for venues outside the default zone, so it is
        logged and counted rather than treated as a clean parse.
        """
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError, TypeError):
            self.timezone_fallbacks += 1
            logger.warning(
                "timezone_fallback",
                venue=venue_id,
                requested=name,
                fallback=self.default_timezone,
            )
            return ZoneInfo(self.default_timezone)


def resolve_start(text: str, zone: tzinfo, now: datetime) -> datetime:
    """Return the timezone-qualified start for a raw start string."""
    cleaned = clean_text(text)
    if not cleaned:
        raise RecordMalformed("empty start text")

    strict = parse_strict(cleaned)
    if strict is not None:
        if strict.tzinfo is not None:
            # Already an instant; report it in the venue zone for display
            return strict.astimezone(zone)
        return localize(strict, zone)

    reference = now.astimezone(zone).date()
    return localize(parse_local(cleaned, reference), zone)


def parse_strict(text: str) -> Optional[datetime]:
    """Parse machine-readable timestamps. Returns None for anything else."""
    if _ISO_DATE_RE.match(text):
        return datetime.combine(date.fromisoformat(text), DEFAULT_SHOW_TIME)
    if not _ISO_DATETIME_RE.match(text):
        return None
    try:
        return dateparser.isoparse(text)
    except ValueError:
        return None


def parse_local(text: str, reference: date) -> datetime:
    """
    Parse venue phrasing such as "Show: Friday, October 3rd @ 8:00 pm" or
    "Oct 5 | Doors 7pm / Show 8pm" into a naive local datetime.

    The show time wins over the doors time. Year-less dates take the reference
    year, rolling to next year when that date has already passed.
    """
    show_time = parse_named_time(text, "show")
    if show_time is None:
        non_door = [s for s in re.split(r"[|;\n]", text) if "door" not in s.lower()]
        show_time = find_first_time(" ".join(non_door)) or find_first_time(text)

    date_text = TIME_RE.sub(" ", text)
    date_text = re.sub(r"\b\d{1,2}:\d{2}\b", " ", date_text)
    date_text = _LABEL_RE.sub(" ", date_text)
    date_text = _ORDINAL_RE.sub(r"\1", date_text)
    date_text = re.sub(r"(?:^|\s)[@|/,–-]+(?=\s|$)", " ", date_text)
    date_text = clean_text(date_text.replace("@", " ").replace("|", " "))
    if not date_text:
        raise RecordMalformed(f"no date in {text!r}")

    try:
        a = dateparser.parse(date_text, default=_FILL_A, fuzzy=True)
        b = dateparser.parse(date_text, default=_FILL_B, fuzzy=True)
    except (ValueError, OverflowError) as exc:
        raise RecordMalformed(f"unparsable date {text!r}: {exc}") from None

    if a.month != b.month or a.day != b.day:
        raise RecordMalformed(f"no month/day in {text!r}")

    if a.year == b.year:
        day = a.date()
    else:
        day = _infer_year(a.month, a.day, reference, text)

    if show_time:
        hour, minute = (int(p) for p in show_time.split(":"))
        clock = time(hour, minute)
    else:
        clock = DEFAULT_SHOW_TIME
    return datetime.combine(day, clock)


def _infer_year(month: int, day: int, reference: date, text: str) -> date:
    for year in (reference.year, reference.year + 1):
        try:
            candidate = date(year, month, day)
        except ValueError:
            continue  # Feb 29 outside a leap year
        if candidate >= reference:
            return candidate
    raise RecordMalformed(f"cannot place {text!r} in a year")


def localize(naive: datetime, zone: tzinfo) -> datetime:
    """
    Attach zone to a naive local time, rejecting DST gaps and overlaps.

    A wall time that does not survive a round trip through UTC does not exist
    (spring forward); one whose offset depends on ``fold`` happens twice
    (fall back).
    """
    aware = naive.replace(tzinfo=zone, fold=0)
    round_trip = aware.astimezone(timezone.utc).astimezone(zone)
    if round_trip.replace(tzinfo=None) != naive:
        raise AmbiguousLocalTime(f"{naive.isoformat()} does not exist in {zone}")
    if aware.utcoffset() != naive.replace(tzinfo=zone, fold=1).utcoffset():
        raise AmbiguousLocalTime(f"{naive.isoformat()} is ambiguous in {zone}")
    return aware


def to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def parse_price(
    text: Optional[str], default_currency: str = DEFAULT_CURRENCY
) -> tuple[Optional[int], Optional[int], Optional[str]]:
    """
    Parse "$15-$20" / "$10" / "£12.50 adv / £15 door" into minor units.

    Returns (min, max, currency). Text without a number yields (None, None, None).
    """
    matches = list(_PRICE_RE.finditer(text or ""))
    if not matches:
        return None, None, None
    # Prefer an amount with a currency symbol over stray numbers like "21+"
    m = next((c for c in matches if c.group("sym1")), matches[0])

    low = _to_minor(m.group("low"))
    high = _to_minor(m.group("high")) if m.group("high") else low
    if high < low:
        low, high = high, low

    symbol = m.group("sym1") or m.group("sym2")
    currency = _CURRENCY_SYMBOLS.get(symbol, default_currency) if symbol else default_currency
    return low, high, currency


def _to_minor(amount: str) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def main_artist(artists: list[str]) -> str:
    for name in artists:
        cleaned = clean_text(name).casefold()
        if cleaned:
            return cleaned
    return UNKNOWN_PERFORMER


def event_id(venue_id: str, start_utc: str, artists: list[str]) -> str:
    """
    Stable identity: sha256 over venue_id|start_utc|main_artist, full hex digest.

    Two scrapes that agree on these three parts are the same event no matter
    what else changed between them.
    """
    key = f"{venue_id}|{start_utc}|{main_artist(artists)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def parse_age_flag(text: Optional[str]) -> Optional[bool]:
    lower = clean_text(text).lower()
    if not lower:
        return None
    if "all ages" in lower or "all-ages" in lower:
        return True
    if any(marker in lower for marker in ("21+", "18+", "21 and over", "21 & over", "18 and over")):
        return False
    return None


def _doors_local(text: Optional[str], start_local: datetime) -> Optional[str]:
    found = find_first_time(text)
    if not found:
        return None
    hour, minute = (int(p) for p in found.split(":"))
    naive = datetime.combine(start_local.date(), time(hour, minute))
    try:
        return localize(naive, start_local.tzinfo).isoformat(timespec="seconds")
    except AmbiguousLocalTime:
        return None


def _extra_text(extra: dict, key: str) -> Optional[str]:
    # Feed-mapped extras can hold any JSON value; only strings are read
    value = extra.get(key)
    return value if isinstance(value, str) else None


def _tags(raw_tags, price_text: Optional[str]) -> list[str]:
    if isinstance(raw_tags, str):
        raw_tags = re.split(r"[,/|]", raw_tags)
    elif not isinstance(raw_tags, (list, tuple)):
        raw_tags = []
    seen: dict[str, str] = {}
    for tag in raw_tags:
        if not isinstance(tag, str):
            continue
        cleaned = clean_text(tag)
        if cleaned and cleaned.lower() not in seen:
            seen[cleaned.lower()] = cleaned
    if price_text and "free" in price_text.lower() and "free" not in seen:
        seen["free"] = "free"
    return [seen[k] for k in sorted(seen)]
