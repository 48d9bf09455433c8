import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from showscrape.errors import ConfigError

_DEFAULT_CONFIG_PATH = Path("config.toml")

DEFAULT_TIMEZONE = "America/Boise"
DEFAULT_CURRENCY = "USD"
DEFAULT_FETCH_TIMEOUT = 30.0


@dataclass(frozen=True)
class LLMSettings:
    base_url: str = "http://127.0.0.1:1234/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 5000       # Output token limit sent with each request
    max_chars: int = 2000        # Ceiling applied to the returned text
    style: str = "concise"
    api_key: Optional[str] = None
    timeout: float = 30.0


@dataclass(frozen=True)
class MusicBrainzSettings:
    enabled: bool = False
    user_agent: str = "showscrape/0.1 (https://github.com/showscrape/showscrape)"


@dataclass(frozen=True)
class Settings:
    database_path: Path = Path("data/showscrape.sqlite")
    default_timezone: str = DEFAULT_TIMEZONE
    default_currency: str = DEFAULT_CURRENCY
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_workers: Optional[int] = None
    llm: LLMSettings = field(default_factory=LLMSettings)
    musicbrainz: MusicBrainzSettings = field(default_factory=MusicBrainzSettings)
    venues: dict[str, dict] = field(default_factory=dict)


def load(path: Path = _DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load the raw config dict from TOML."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {path}") from None
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def load_settings(path: Path = _DEFAULT_CONFIG_PATH) -> Settings:
    return settings_from_dict(load(path))


def settings_from_dict(cfg: dict) -> Settings:
    """
    Validate a raw config dict into Settings.

    Expected layout:

        [database]      path
        [defaults]      timezone, currency, fetch_timeout, max_workers
        [llm]           base_url, model, temperature, max_tokens, max_chars, style, api_key, timeout
        [musicbrainz]   enabled, user_agent
        [venues.<key>]  url, name, kind, timezone, enabled, selectors, field_map, ...
    """
    defaults = cfg.get("defaults", {})
    default_timezone = defaults.get("timezone", DEFAULT_TIMEZONE)
    _require_zone(default_timezone)
    currency = str(defaults.get("currency", DEFAULT_CURRENCY)).upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ConfigError(f"defaults.currency must be an ISO 4217 code, got {currency!r}")

    max_workers = defaults.get("max_workers")
    if max_workers is not None:
        max_workers = _number(defaults, "max_workers", int, section_name="defaults")
        if max_workers < 1:
            raise ConfigError("defaults.max_workers must be at least 1")

    return Settings(
        database_path=get_database_path(cfg),
        default_timezone=default_timezone,
        default_currency=currency,
        fetch_timeout=_number(defaults, "fetch_timeout", float, DEFAULT_FETCH_TIMEOUT, "defaults"),
        max_workers=max_workers,
        llm=_llm_settings(cfg.get("llm", {})),
        musicbrainz=_musicbrainz_settings(cfg.get("musicbrainz", {})),
        venues=get_venues(cfg),
    )


def get_database_path(cfg: dict) -> Path:
    return Path(cfg.get("database", {}).get("path", "data/showscrape.sqlite"))


def get_venues(cfg: dict) -> dict[str, dict]:
    """Return the venues section, filtering to only enabled venues."""
    venues = cfg.get("venues", {})
    for key, v in venues.items():
        if not isinstance(v, dict):
            raise ConfigError(f"[venues.{key}] must be a table")
        if "url" not in v:
            raise ConfigError(f"[venues.{key}] is missing 'url'")
    return {key: v for key, v in venues.items() if v.get("enabled", True)}


def _llm_settings(section: dict) -> LLMSettings:
    base = LLMSettings()
    return LLMSettings(
        base_url=str(section.get("base_url", base.base_url)),
        model=str(section.get("model", base.model)),
        temperature=_number(section, "temperature", float, base.temperature, "llm"),
        max_tokens=_number(section, "max_tokens", int, base.max_tokens, "llm"),
        max_chars=_number(section, "max_chars", int, base.max_chars, "llm"),
        style=str(section.get("style", base.style)),
        api_key=section.get("api_key") or None,
        timeout=_number(section, "timeout", float, base.timeout, "llm"),
    )


def _musicbrainz_settings(section: dict) -> MusicBrainzSettings:
    base = MusicBrainzSettings()
    return MusicBrainzSettings(
        enabled=bool(section.get("enabled", base.enabled)),
        user_agent=str(section.get("user_agent", base.user_agent)),
    )


def _number(section: dict, key: str, kind: type, default=None, section_name: str = ""):
    value = section.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section_name}.{key} must be a number, got {value!r}") from None


def _require_zone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ConfigError(f"unknown timezone {name!r}") from None
