"""
Operations exposed to the host application.

    run_ingestion(venue=None) -> RunSummary
    list_pending(now=None)    -> {bucket: [PendingEntry, ...]}
    preview_draft(event_id)   -> str
    compose_post(event_id)    -> str
    mark_posted(event_ids)    -> {event_id: PostOutcome}
    list_venues()             -> [VenueInfo, ...]

Adapter and record failures are collected in the RunSummary; a StoreFailure
aborts the run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog

from showscrape.compose import DraftComposer
from showscrape.config import Settings
from showscrape.db import EventStore, PostOutcome
from showscrape.errors import ConfigError, EnrichmentFailure, RecordMalformed
from showscrape.models import Event, PendingEntry
from showscrape.musicbrainz import ArtistLookup
from showscrape.normalize import Normalizer
from showscrape.runner import Runner
from showscrape.scrapers import build_scrapers
from showscrape.scrapers.base import BaseScraper

logger = structlog.get_logger()


@dataclass
class RunSummary:
    fetched: int = 0
    normalized: int = 0
    dropped: int = 0
    stored: int = 0
    inserted: int = 0
    updated: int = 0
    timezone_fallbacks: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    drop_reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class VenueInfo:
    id: str
    name: str
    url: str


class Pipeline:
    def __init__(
        self,
        settings: Settings,
        store: EventStore,
        scrapers: Optional[list[BaseScraper]] = None,
        composer: Optional[DraftComposer] = None,
        enricher: Optional[ArtistLookup] = None,
    ):
        self.settings = settings
        self.store = store
        self.scrapers = scrapers if scrapers is not None else build_scrapers(settings.venues)
        self.composer = composer or DraftComposer(settings.llm)
        if enricher is None and settings.musicbrainz.enabled:
            enricher = ArtistLookup(store, settings.musicbrainz.user_agent)
        self.enricher = enricher

    def list_venues(self) -> list[VenueInfo]:
        return [VenueInfo(id=s.venue_key, name=s.venue_name, url=s.url) for s in self.scrapers]

    def run_ingestion(self, venue: Optional[str] = None, now: Optional[datetime] = None) -> RunSummary:
        """Fetch, normalize and store; returns counts plus the adapters that failed and why."""
        scrapers = self.scrapers
        if venue is not None:
            scrapers = [s for s in self.scrapers if s.venue_key == venue]
            if not scrapers:
                known = ", ".join(sorted(s.venue_key for s in self.scrapers))
                raise ConfigError(f"unknown venue id {venue!r} (configured: {known})")

        now = now or datetime.now(timezone.utc)
        summary = RunSummary()
        report = Runner(
            scrapers,
            timeout=self.settings.fetch_timeout,
            max_workers=self.settings.max_workers,
        ).run()
        summary.failures = report.failures

        normalizer = Normalizer(self.settings.default_timezone, self.settings.default_currency)
        events: dict[str, Event] = {}
        for raw in report.events:
            summary.fetched += 1
            try:
                event = normalizer.normalize(raw, now=now)
            except RecordMalformed as exc:
                summary.dropped += 1
                summary.drop_reasons.append(f"{raw.venue_id}: {exc}")
                logger.warning("record_dropped", venue=raw.venue_id, start=raw.start_text, error=str(exc))
                continue
            summary.normalized += 1
            # The same show listed twice in one feed collapses to its last listing
            events[event.id] = event
        summary.timezone_fallbacks = normalizer.timezone_fallbacks

        for event in events.values():
            if self.store.upsert(event, now=now):
                summary.inserted += 1
            else:
                summary.updated += 1
            summary.stored += 1

        logger.info(
            "run_complete",
            fetched=summary.fetched,
            normalized=summary.normalized,
            dropped=summary.dropped,
            stored=summary.stored,
            inserted=summary.inserted,
            updated=summary.updated,
            timezone_fallbacks=summary.timezone_fallbacks,
            failed_adapters=sorted(summary.failures),
        )
        return summary

    def list_pending(self, now: Optional[datetime] = None) -> dict[str, list[PendingEntry]]:
        return self.store.pending_buckets(now)

    def preview_draft(self, event_id: str) -> str:
        return self.composer.compose(self._event_for_prompt(event_id), preview=True)

    def compose_post(self, event_id: str) -> str:
        return self.composer.compose(self._event_for_prompt(event_id), preview=False)

    def mark_posted(self, event_ids: Iterable[str], now: Optional[datetime] = None) -> dict[str, PostOutcome]:
        outcomes = self.store.mark_posted(event_ids, now)
        missing = [i for i, o in outcomes.items() if o is PostOutcome.NOT_FOUND]
        if missing:
            logger.warning("mark_posted_unknown_ids", ids=missing)
        return outcomes

    def _event_for_prompt(self, event_id: str) -> Event:
        event = self.store.get(event_id)
        if self.enricher is None:
            return event
        try:
            return self.enricher.enrich(event)
        except EnrichmentFailure as exc:
            logger.warning("enrichment_failed", event_id=event_id, error=str(exc))
            return event
