from __future__ import annotations

import logging
import re
from urllib.parse import ParseResult, parse_qsl, urlencode, urljoin, urlparse, urlunparse

from jobharvest.core.models import PageKind
from jobharvest.utils.config import DEFAULT_LISTING_PATH, DEFAULT_ORIGIN

logger = logging.getLogger(__name__)

# Final path segment of a job posting: "<slug>_<more-slug>_<numeric id>"
DETAIL_SEGMENT = re.compile(r"^[0-9a-zà-ÿ][0-9a-zà-ÿ-]*(?:_[0-9a-zà-ÿ-]+)*_\d+$", re.IGNORECASE)
PAGE_SEGMENT = re.compile(r"^page-(\d+)$", re.IGNORECASE)
PAGE_PARAM = "page"

POSTED_DATE_PARAMS = {
    "last_24_hours": "1",
    "last_7_days": "7",
    "last_30_days": "30",
}


def _segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def classify_path(path: str) -> PageKind:
    segments = _segments(path or "")
    if segments and DETAIL_SEGMENT.match(segments[-1]):
        return PageKind.DETAIL
    return PageKind.LISTING


def classify_url(url: str) -> PageKind:
    try:
        path = urlparse(url).path
    except ValueError:
        return PageKind.LISTING
    return classify_path(path)


def to_absolute(href: str | None, base: str = DEFAULT_ORIGIN) -> str | None:
    if not href:
        return None
    href = href.strip()
    if href.startswith(("mailto:", "javascript:", "tel:", "#")):
        return None
    try:
        absolute = urljoin(base, href)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return absolute


def _safe_parse(url: str, origin: str = DEFAULT_ORIGIN, listing_path: str = DEFAULT_LISTING_PATH) -> ParseResult:
    try:
        parsed = urlparse(url or "")
        if parsed.scheme in {"http", "https"} and parsed.netloc:
            return parsed
    except ValueError:
        pass
    logger.warning("malformed_url", extra={"extra_fields": {"url": url}})
    return urlparse(urljoin(origin + "/", listing_path.lstrip("/")))


def start_url_or_default(
    url: str, origin: str = DEFAULT_ORIGIN, listing_path: str = DEFAULT_LISTING_PATH
) -> str:
    """Return ``url`` when it is an absolute http(s) URL, else the default listing URL."""
    url = (url or "").strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        parsed = None
    if parsed is not None and parsed.scheme in {"http", "https"} and parsed.netloc:
        return url
    logger.warning("malformed_url", extra={"extra_fields": {"url": url}})
    return build_search_url(origin=origin, listing_path=listing_path)


def current_page(url: str) -> int:
    parsed = _safe_parse(url)
    segments = _segments(parsed.path)
    if segments:
        match = PAGE_SEGMENT.match(segments[-1])
        if match:
            return int(match.group(1))
    query = dict(parse_qsl(parsed.query))
    if query.get(PAGE_PARAM, "").isdigit():
        return max(1, int(query[PAGE_PARAM]))
    return 1


def next_listing_url(current_url: str) -> str:
    """Return the listing URL for the page after ``current_url``.

    A trailing ``page-N`` segment is incremented, an explicit ``page`` query
    parameter is incremented, otherwise ``page-2`` is appended to the path.
    """
    parsed = _safe_parse(current_url)
    segments = _segments(parsed.path)
    trailing = parsed.path.endswith("/") or not segments

    if segments:
        match = PAGE_SEGMENT.match(segments[-1])
        if match:
            segments[-1] = f"page-{int(match.group(1)) + 1}"
            path = "/" + "/".join(segments) + ("/" if trailing else "")
            return urlunparse(parsed._replace(path=path, fragment=""))

    query = parse_qsl(parsed.query, keep_blank_values=True)
    if any(key == PAGE_PARAM for key, _ in query):
        current = current_page(current_url)
        query = [(k, str(current + 1) if k == PAGE_PARAM else v) for k, v in query]
        return urlunparse(parsed._replace(query=urlencode(query), fragment=""))

    segments.append("page-2")
    path = "/" + "/".join(segments) + ("/" if trailing else "")
    return urlunparse(parsed._replace(path=path, fragment=""))


def build_search_url(
    keyword: str = "",
    location: str = "",
    posted_date_filter: str = "any",
    page_number: int = 1,
    category: str = "",
    origin: str = DEFAULT_ORIGIN,
    listing_path: str = DEFAULT_LISTING_PATH,
) -> str:
    base = _safe_parse(urljoin(origin.rstrip("/") + "/", listing_path.lstrip("/")), origin, listing_path)
    segments = _segments(base.path)
    if page_number > 1:
        segments.append(f"page-{page_number}")
    path = "/" + "/".join(segments) + "/" if segments else "/"

    params: list[tuple[str, str]] = []
    for key, value in (("q", keyword), ("location", location), ("category", category)):
        text = (value or "").strip()
        if text:
            params.append((key, text))
    posted = POSTED_DATE_PARAMS.get((posted_date_filter or "").strip().lower())
    if posted:
        params.append(("posted", posted))
    return urlunparse(base._replace(path=path, query=urlencode(params), fragment=""))
