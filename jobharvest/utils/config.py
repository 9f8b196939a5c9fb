from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


DEFAULT_ORIGIN = "https://www.randstad.fr"
DEFAULT_LISTING_PATH = "/emploi/"
DEFAULT_PAYLOAD_MARKER = "__ROUTE_DATA__"
POSTED_DATE_FILTERS = ("any", "last_24_hours", "last_7_days", "last_30_days")


class ConfigError(RuntimeError):
    pass


def load_config(path: str | Path) -> dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigError(f"Config not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ConfigError("Config root must be a mapping")
    return loaded


def _as_int(value: Any, default: int, minimum: int) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(minimum, number)


def _as_float(value: Any, default: float, minimum: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(minimum, number)


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in {"true", "yes", "1", "on"}:
        return True
    if text in {"false", "no", "0", "off"}:
        return False
    return default


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


@dataclass(slots=True)
class SiteConfig:
    origin: str = DEFAULT_ORIGIN
    listing_path: str = DEFAULT_LISTING_PATH
    payload_marker: str = DEFAULT_PAYLOAD_MARKER


@dataclass(slots=True)
class HarvestConfig:
    keyword: str = ""
    location: str = ""
    category: str = ""
    posted_date_filter: str = "any"
    start_urls: list[str] = field(default_factory=list)
    results_wanted: int = 100
    max_pages: int = 20
    collect_details: bool = True
    dedupe: bool = True
    max_concurrency: int = 10
    detail_concurrency: int = 4
    request_timeout_seconds: float = 30.0
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    delay_min_seconds: float = 0.5
    delay_max_seconds: float = 2.0
    db_path: str = "data/jobharvest.db"
    excel_path: str | None = None
    site: SiteConfig = field(default_factory=SiteConfig)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> HarvestConfig:
        """Build a config from a loaded YAML mapping.

        Bad numbers fall back to defaults and out-of-range numbers are clamped,
        so a sloppy input still produces a usable run.
        """
        defaults = cls()
        retry = _section(raw, "retry")
        delay = _section(raw, "delay")
        site = _section(raw, "site")
        storage = _section(raw, "storage")

        start_urls: list[str] = []
        listed = raw.get("start_urls") or []
        if isinstance(listed, str):
            listed = [listed]
        for entry in [*listed, raw.get("start_url"), raw.get("url")]:
            # Crawler-style inputs sometimes wrap URLs as {"url": ...}
            if isinstance(entry, dict):
                entry = entry.get("url")
            text = _as_str(entry)
            if text and text not in start_urls:
                start_urls.append(text)

        posted = _as_str(raw.get("posted_date_filter")).lower() or "any"
        if posted not in POSTED_DATE_FILTERS:
            posted = "any"

        delay_min = _as_float(delay.get("min_seconds"), defaults.delay_min_seconds)
        delay_max = _as_float(delay.get("max_seconds"), defaults.delay_max_seconds)
        excel_path = _as_str(raw.get("excel_path")) or None

        return cls(
            keyword=_as_str(raw.get("keyword")),
            location=_as_str(raw.get("location")),
            category=_as_str(raw.get("category")),
            posted_date_filter=posted,
            start_urls=start_urls,
            results_wanted=_as_int(raw.get("results_wanted"), defaults.results_wanted, 1),
            max_pages=_as_int(raw.get("max_pages"), defaults.max_pages, 1),
            collect_details=_as_bool(raw.get("collect_details"), defaults.collect_details),
            dedupe=_as_bool(raw.get("dedupe"), defaults.dedupe),
            max_concurrency=_as_int(raw.get("max_concurrency"), defaults.max_concurrency, 1),
            detail_concurrency=_as_int(raw.get("detail_concurrency"), defaults.detail_concurrency, 1),
            request_timeout_seconds=_as_float(
                raw.get("request_timeout_seconds"), defaults.request_timeout_seconds, 1.0
            ),
            retry_max_attempts=_as_int(retry.get("max_attempts"), defaults.retry_max_attempts, 1),
            retry_base_delay_seconds=_as_float(retry.get("base_delay_seconds"), defaults.retry_base_delay_seconds),
            delay_min_seconds=delay_min,
            delay_max_seconds=max(delay_min, delay_max),
            db_path=_as_str(storage.get("db_path")) or defaults.db_path,
            excel_path=excel_path,
            site=SiteConfig(
                origin=(_as_str(site.get("origin")) or DEFAULT_ORIGIN).rstrip("/"),
                listing_path=_as_str(site.get("listing_path")) or DEFAULT_LISTING_PATH,
                payload_marker=_as_str(site.get("payload_marker")) or DEFAULT_PAYLOAD_MARKER,
            ),
        )
