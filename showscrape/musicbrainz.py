"""
Headliner genre lookup against the MusicBrainz search API.

Profiles (including "nothing found") are cached in the event store so each
artist is queried at most once. Enrichment returns a new Event; the stored
record is not touched.
"""

import dataclasses
from typing import Optional

import requests
import structlog

from showscrape.db import EventStore
from showscrape.errors import EnrichmentFailure
from showscrape.models import UNKNOWN_PERFORMER, Event

logger = structlog.get_logger()

SEARCH_URL = "https://musicbrainz.org/ws/2/artist/"


def extract_genres(doc: dict) -> list[str]:
    """Genres then tags, deduplicated case-insensitively, original casing kept."""
    out: list[str] = []
    seen: set[str] = set()
    for tag in (doc.get("genres") or []) + (doc.get("tags") or []):
        name = (tag.get("name") or "").strip() if isinstance(tag, dict) else ""
        if name and name.lower() not in seen:
            seen.add(name.lower())
            out.append(name)
    return out


def _profile(artists: list) -> Optional[dict]:
    """Profile of the best match, or None when it has no genres or tags."""
    if not artists:
        return None
    doc = artists[0]
    genres = extract_genres(doc)
    if not genres:
        return None
    return {
        "id": doc.get("id"),
        "name": doc.get("name"),
        "disambiguation": doc.get("disambiguation"),
        "genres": genres,
    }


class ArtistLookup:
    def __init__(
        self,
        store: EventStore,
        user_agent: str,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ):
        self.store = store
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.timeout = timeout

    def lookup(self, name: str) -> Optional[dict]:
        key = name.strip().lower()
        hit, profile = self.store.get_cached_profile(key)
        if hit:
            return profile

        sanitized = name.replace('"', " ")
        try:
            response = self.session.get(
                SEARCH_URL,
                params={
                    "query": f'artist:"{sanitized}"',
                    "fmt": "json",
                    "limit": 1,
                    "inc": "tags+genres",
                },
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
            profile = _profile(response.json().get("artists") or [])
        except requests.RequestException as exc:
            raise EnrichmentFailure(f"musicbrainz lookup for {name!r} failed: {exc}") from exc
        except (ValueError, AttributeError, TypeError, KeyError) as exc:
            raise EnrichmentFailure(f"musicbrainz response for {name!r} unreadable: {exc}") from exc

        self.store.put_cached_profile(key, profile)
        return profile

    def enrich(self, event: Event) -> Event:
        """Return a copy of event with the headliner's genres merged into its tags."""
        headliner = event.title
        if not headliner.strip() or headliner == UNKNOWN_PERFORMER:
            return event

        profile = self.lookup(headliner)
        if profile is None:
            return event

        tags = list(event.tags)
        known = {t.lower() for t in tags}
        for genre in profile["genres"]:
            if genre.lower() not in known:
                known.add(genre.lower())
                tags.append(genre)

        logger.debug("event_enriched", event_id=event.id, artist=headliner, genres=profile["genres"])
        return dataclasses.replace(
            event,
            tags=tags,
            extra={**event.extra, "musicbrainz": profile},
        )
