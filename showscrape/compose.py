"""
Draft composer.

Asks an OpenAI-compatible chat-completion endpoint to write post text for an
event, and falls back to a local Jinja2 template whenever that call fails.
The fallback only reads the event's own fields, so it cannot fail for a valid
Event.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import requests
import structlog
from jinja2 import Environment, FileSystemLoader

from showscrape.config import LLMSettings
from showscrape.errors import ComposeFailure
from showscrape.models import Event

logger = structlog.get_logger()

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Only these fields are ever shown to the model
PROMPT_FIELDS = (
    "artists",
    "venue_name",
    "start_local",
    "start_utc",
    "ticket_url",
    "event_url",
    "price_min_cents",
    "price_max_cents",
    "currency",
    "tags",
    "extra",
)

_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)


def event_payload(event: Event) -> dict:
    return {name: getattr(event, name) for name in PROMPT_FIELDS}


def _local_start(event: Event) -> Optional[datetime]:
    for value in (event.start_local, event.start_utc):
        if value:
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                continue
    return None


def _clock(dt: datetime) -> str:
    return f"{dt.hour % 12 or 12}:{dt:%M} {dt:%p}"


def format_price(event: Event) -> Optional[str]:
    if event.price_min_cents is None:
        return None
    prefix = "$" if (event.currency or "USD") == "USD" else f"{event.currency} "
    low = f"{prefix}{event.price_min_cents / 100:.2f}".replace(".00", "")
    if event.price_max_cents is None or event.price_max_cents == event.price_min_cents:
        return low
    high = f"{prefix}{event.price_max_cents / 100:.2f}".replace(".00", "")
    return f"{low}-{high}"


def fallback(event: Event, preview: bool = False) -> str:
    """Deterministic draft built purely from the event's fields."""
    dt = _local_start(event)
    context = {
        "event": event,
        "price": format_price(event),
        "when_long": f"{dt:%A, %B} {dt.day} at {_clock(dt)}" if dt else event.start_utc,
        "when_short": f"{dt:%a %b} {dt.day} @ {_clock(dt)}" if dt else event.start_utc,
    }
    template = _env.get_template("preview.txt.j2" if preview else "post.txt.j2")
    return template.render(**context).strip()


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    cut = text[: limit - 1]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip() + "…"


class DraftComposer:
    def __init__(self, settings: Optional[LLMSettings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or LLMSettings()
        self.session = session or requests.Session()

    def compose(self, event: Event, preview: bool = False) -> str:
        """Return draft text for event; never raises for a valid Event."""
        try:
            text = self.request_completion(event, preview)
        except ComposeFailure as exc:
            logger.warning("compose_fallback", event_id=event.id, preview=preview, error=str(exc))
            return fallback(event, preview)
        return truncate(text, self.settings.max_chars)

    def build_messages(self, event: Event, preview: bool) -> list[dict]:
        system = _env.get_template("system_preview.txt.j2" if preview else "system_post.txt.j2")
        user = _env.get_template("prompt.txt.j2").render(
            context="internal preview" if preview else "Facebook group",
            style=self.settings.style,
            event_json=json.dumps(event_payload(event), indent=2, ensure_ascii=False),
        )
        return [
            {"role": "system", "content": system.render().strip()},
            {"role": "user", "content": user},
        ]

    def request_completion(self, event: Event, preview: bool = False) -> str:
        s = self.settings
        url = f"{s.base_url.rstrip('/')}/chat/completions"
        payload = {
            "model": s.model,
            "temperature": s.temperature,
            "max_tokens": s.max_tokens,
            "messages": self.build_messages(event, preview),
        }
        headers = {"Authorization": f"Bearer {s.api_key}"} if s.api_key else {}

        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=s.timeout)
        except requests.RequestException as exc:
            raise ComposeFailure(f"request to {url} failed: {exc}") from exc
        if not response.ok:
            raise ComposeFailure(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ComposeFailure(f"unexpected completion body: {exc}") from exc
        if not isinstance(content, str) or not content.strip():
            raise ComposeFailure("completion has no content")
        return content.strip()
