from abc import ABC, abstractmethod
from typing import Optional

import requests

from showscrape.config import DEFAULT_TIMEZONE
from showscrape.errors import FetchFailure
from showscrape.models import RawEvent

USER_AGENT = "showscrape/0.1 (+https://github.com/showscrape/showscrape)"
REQUEST_TIMEOUT = 20


class BaseScraper(ABC):
    # Subclasses may preset these; config values take precedence
    venue_key: str = ""
    venue_name: str = ""
    timezone: str = DEFAULT_TIMEZONE

    def __init__(self, venue_cfg: dict, session: Optional[requests.Session] = None):
        """
        Args:
            venue_cfg: The [venues.<key>] section from config.toml as a dict.
                       Typically contains at least 'url' and 'enabled'; the
                       registry adds 'key' when it is missing.
            session:   Optional shared requests session (tests inject one).
        """
        self.venue_cfg = venue_cfg
        self.url = venue_cfg.get("url", "")
        self.venue_key = venue_cfg.get("key") or self.venue_key
        self.venue_name = venue_cfg.get("name") or self.venue_name or self.venue_key
        self.timezone = venue_cfg.get("timezone") or self.timezone
        self.session = session or requests.Session()

    @abstractmethod
    def fetch_events(self) -> list[RawEvent]:
        """Fetch and parse the venue listing. Raises FetchFailure for the whole adapter."""
        ...

    def get(self, url: Optional[str] = None) -> requests.Response:
        """GET url (default: the venue url), mapping every transport problem to FetchFailure."""
        url = url or self.url
        try:
            response = self.session.get(
                url,
                timeout=self.venue_cfg.get("request_timeout", REQUEST_TIMEOUT),
                headers={"User-Agent": USER_AGENT},
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise FetchFailure(self.venue_key, f"HTTP {exc.response.status_code} for {url}") from exc
        except requests.RequestException as exc:
            raise FetchFailure(self.venue_key, f"request failed for {url}: {exc}") from exc
        return response

    def raw_event(self, start_text: str, artists: list[str], **fields) -> RawEvent:
        return RawEvent(
            source=self.venue_key,
            venue_id=self.venue_key,
            venue_name=self.venue_name,
            start_text=start_text,
            timezone=fields.pop("timezone", None) or self.timezone,
            artists=artists,
            **fields,
        )
