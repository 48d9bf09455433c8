"""Defensive text helpers shared by the markup adapters and the normalizer."""

import re
from typing import Optional
from urllib.parse import urljoin

_WS_RE = re.compile(r"\s+")
TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m\b\.?", re.IGNORECASE)
_TIME_24H_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
# Separators between billed acts, e.g. "Nile, Cryptopsy w/ Ex Deo feat. Someone"
_ARTIST_SPLIT_RE = re.compile(
    r"\s*(?:[,/&+]|\bw/|\bwith\b|\bfeat\.|\bft\.|\bfeaturing\b)\s*",
    re.IGNORECASE,
)


def clean_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return _WS_RE.sub(" ", value).strip()


def split_artists(text: Optional[str]) -> list[str]:
    text = clean_text(text)
    if not text:
        return []
    return [name for name in (clean_text(p) for p in _ARTIST_SPLIT_RE.split(text)) if name]


def find_first_time(text: Optional[str]) -> Optional[str]:
    """Return the first clock time in text as "HH:MM" (24h), or None."""
    text = clean_text(text)
    m = TIME_RE.search(text)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if m.group(3).lower() == "p" and hour != 12:
            hour += 12
        elif m.group(3).lower() == "a" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute:02d}"
    m = _TIME_24H_RE.search(text)
    if m:
        return f"{int(m.group(1)):02d}:{m.group(2)}"
    return None


def parse_named_time(text: Optional[str], keyword: str) -> Optional[str]:
    """
    Find the time labelled by keyword in blocks like "Doors: 7pm | Show: 8pm".
    Returns "HH:MM" or None.
    """
    keyword = keyword.lower()
    for segment in re.split(r"[|;/\n]", text or ""):
        segment = clean_text(segment)
        if keyword in segment.lower():
            found = find_first_time(segment)
            if found:
                return found
    return None


def absolute_url(base: str, href: Optional[str]) -> Optional[str]:
    href = clean_text(href)
    if not href or href.startswith(("#", "javascript:", "mailto:")):
        return None
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base, href)
