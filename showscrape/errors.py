"""Error taxonomy for the ingestion pipeline.

Adapter and record failures are absorbed into the run summary; only
``StoreFailure`` aborts a run. ``ComposeFailure`` never leaves the composer.
"""


class ShowScrapeError(Exception):
    """Base class for every error raised by showscrape."""


class ConfigError(ShowScrapeError):
    pass


class FetchFailure(ShowScrapeError):
    """One adapter could not produce a listing (network, HTTP status, parse, timeout)."""

    def __init__(self, venue: str, reason: str):
        super().__init__(f"{venue}: {reason}")
        self.venue = venue
        self.reason = reason


class RecordMalformed(ShowScrapeError):
    """A single raw record cannot be normalized; it is dropped from the batch."""


class AmbiguousLocalTime(RecordMalformed):
    """Local time falls in a DST gap or overlap."""


class StoreFailure(ShowScrapeError):
    pass


class EventNotFound(ShowScrapeError, LookupError):
    def __init__(self, event_id: str):
        super().__init__(f"no event with id {event_id!r}")
        self.event_id = event_id


class ComposeFailure(ShowScrapeError):
    pass


class EnrichmentFailure(ShowScrapeError):
    pass
