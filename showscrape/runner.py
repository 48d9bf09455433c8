import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Optional

import structlog

from showscrape.config import DEFAULT_FETCH_TIMEOUT
from showscrape.errors import FetchFailure
from showscrape.models import RawEvent
from showscrape.scrapers.base import BaseScraper

logger = structlog.get_logger()


@dataclass
class VenueResult:
    """Outcome of one adapter invocation."""
    venue: str
    events: list[RawEvent] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FetchReport:
    results: dict[str, VenueResult] = field(default_factory=dict)

    @property
    def events(self) -> list[RawEvent]:
        return [e for r in self.results.values() for e in r.events]

    @property
    def failures(self) -> dict[str, str]:
        return {venue: r.error for venue, r in self.results.items() if r.error is not None}


class Runner:
    """
    Run every adapter's fetch_events on its own worker thread.

    At most `max_workers` adapters run at once. Each gets `timeout` seconds
    from the moment it starts; one still running after that is reported as
    failed and abandoned, and its slot goes to the next queued adapter.
    """

    def __init__(
        self,
        scrapers: list[BaseScraper],
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        max_workers: Optional[int] = None,
    ):
        self.scrapers = scrapers
        self.timeout = timeout
        self.max_workers = max_workers

    def run(self) -> FetchReport:
        report = FetchReport()
        if not self.scrapers:
            return report

        limit = self.max_workers or len(self.scrapers)
        queued = list(self.scrapers)
        running: dict[Future, tuple[BaseScraper, float]] = {}
        # Sized for every adapter: abandoned threads must not hold a slot
        pool = ThreadPoolExecutor(max_workers=len(self.scrapers), thread_name_prefix="scrape")
        try:
            while queued or running:
                while queued and len(running) < limit:
                    scraper = queued.pop(0)
                    running[pool.submit(_fetch_one, scraper)] = (scraper, time.monotonic())

                nearest = min(started for _, started in running.values()) + self.timeout
                done, _ = wait(
                    running,
                    timeout=max(0.0, nearest - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    del running[future]
                    result = future.result()
                    report.results[result.venue] = result

                now = time.monotonic()
                for future, (scraper, started) in list(running.items()):
                    if now - started < self.timeout:
                        continue
                    del running[future]
                    future.cancel()
                    reason = f"timed out after {self.timeout:g}s"
                    logger.warning("adapter_failed", venue=scraper.venue_key, error=reason)
                    report.results[scraper.venue_key] = VenueResult(
                        venue=scraper.venue_key,
                        error=reason,
                        duration_ms=(now - started) * 1000,
                    )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return report

        workers = self.max_workers or len(self.scrapers)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scrape")
        started = time.monotonic()
        try:
            future_map: dict[Future, BaseScraper] = {
                pool.submit(_fetch_one, scraper): scraper for scraper in self.scrapers
            }
            pending = set(future_map)
            deadline = started + self.timeout
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    result = future.result()
                    report.results[result.venue] = result

            for future in pending:
                scraper = future_map[future]
                future.cancel()
                reason = f"timed out after {self.timeout:g}s"
                logger.warning("adapter_failed", venue=scraper.venue_key, error=reason)
                report.results[scraper.venue_key] = VenueResult(
                    venue=scraper.venue_key,
                    error=reason,
                    duration_ms=(time.monotonic() - started) * 1000,
                )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return report


def _fetch_one(scraper: BaseScraper) -> VenueResult:
    """Invoke one adapter, converting any failure into a VenueResult error."""
    started = time.monotonic()
    result = VenueResult(venue=scraper.venue_key)
    try:
        result.events = list(scraper.fetch_events())
    except FetchFailure as exc:
        result.error = exc.reason
    except Exception as exc:  # an adapter bug must not take down its siblings
        result.error = f"{type(exc).__name__}: {exc}"
    result.duration_ms = (time.monotonic() - started) * 1000

    if result.error:
        logger.warning("adapter_failed", venue=scraper.venue_key, error=result.error)
    else:
        logger.info(
            "adapter_fetched",
            venue=scraper.venue_key,
            events=len(result.events),
            duration_ms=round(result.duration_ms),
        )
    return result
