from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Comment, Tag

from jobharvest.core.models import JobFields, JobPreview, Location, PageKind, Salary
from jobharvest.core.urls import classify_url, to_absolute
from jobharvest.extract.html_clean import DROPPED_TAGS, clean_description_html
from jobharvest.utils.config import DEFAULT_ORIGIN
from jobharvest.utils.text import clean_value, normalize_whitespace

logger = logging.getLogger(__name__)

HEADING_TAGS = ["h1", "h2", "h3", "h4"]

SECTION_LABELS = {
    "description": (
        "summary",
        "job details",
        "job description",
        "about the job",
        "about the role",
        "descriptif du poste",
        "about the company",
        "about our client",
        "à propos de notre client",
        "a propos de notre client",
    ),
    "requirements": (
        "requirements",
        "your profile",
        "what we are looking for",
        "profil recherché",
        "qualifications",
    ),
    "benefits": (
        "benefits",
        "what we offer",
        "avantages",
        "perks",
    ),
}

STOP_MARKERS = (
    "related jobs",
    "similar jobs",
    "share this job",
    "offres similaires",
    "partager cette offre",
    "jobs you may like",
)

FALLBACK_CONTAINERS = (
    "[data-cy='job-description']",
    ".job-description",
    ".descriptif-du-poste",
    "[itemprop='description']",
    "article",
    ".content",
)

CONSENT_TEXT = re.compile(r"cookie|consentement|consent|gdpr|traceur", re.IGNORECASE)

# Hard ceilings keep one runaway section from swallowing the rest of the page.
MAX_SECTION_CHARS = 12000
MAX_BODY_SCAN_CHARS = 60000
MIN_BLOCK_CHARS = 40

SALARY_PATTERN = re.compile(
    r"(\d[\d\s.,]*(?:\s*(?:-|–|à|to)\s*\d[\d\s.,]*)?\s*(?:€|EUR|£|GBP|\$|USD)"
    r"(?:\s*(?:per|par|a|an|/)?\s*(?:hour|heure|day|jour|month|mois|year|année|annum|an)\b)?)",
    re.IGNORECASE,
)
CONTRACT_PATTERN = re.compile(
    r"\b(permanent|temporary|fixed[- ]term|contract|internship|apprenticeship|freelance|"
    r"full[- ]time|part[- ]time|cdi|cdd|intérim|interim|stage|alternance)\b",
    re.IGNORECASE,
)
DATE_VALUE = r"(\d{1,2}[\s/.-]\w+[\s/.-]\d{2,4}|\d{4}-\d{2}-\d{2}|\d+\s+(?:days?|jours?|hours?|heures?)\s+ago)"
POSTED_PATTERN = re.compile(r"(?:posted(?:\s+on)?|published(?:\s+on)?|publié le)\s*:?\s*" + DATE_VALUE, re.IGNORECASE)
CLOSES_PATTERN = re.compile(
    r"(?:closes(?:\s+on)?|closing date|expires(?:\s+on)?|apply before|date limite)\s*:?\s*" + DATE_VALUE,
    re.IGNORECASE,
)
REFERENCE_PATTERN = re.compile(
    r"\b(?:reference|référence|ref)\b\.?\s*(?:number|no\.?|n°)?\s*[:#]\s*([A-Z0-9][A-Z0-9/_-]{3,})",
    re.IGNORECASE,
)
POSTAL_CODE = re.compile(r"\b(\d{4,5})\b")

CARD_SELECTORS = (
    "article[class*='job']",
    "li[class*='job']",
    "div[class*='job-card']",
    "[data-cy*='job-card']",
    "[data-testid*='job-card']",
    "div[class*='vacancy']",
    "li[class*='result']",
)
COMPANY_SELECTORS = "[data-cy='job-company'], [itemprop='hiringOrganization'], .company, [class*='company']"
LOCATION_SELECTORS = "[data-cy='job-location'], [itemprop='jobLocation'], .location, [class*='location']"
DATE_SELECTORS = "time, [data-cy='job-date'], [class*='date']"
SALARY_SELECTORS = "[data-cy='job-salary'], [class*='salary']"
SNIPPET_SELECTORS = "[class*='description'], [class*='snippet'], [class*='summary'], p"
TAG_SELECTORS = "[data-cy='job-tag'], .tags li, .job-tags a, [class*='specialism']"


def _text(node: Tag | None) -> str | None:
    if node is None:
        return None
    return clean_value(node.get_text(" "))


def _select_text(root: Tag, selectors: str) -> str | None:
    return _text(root.select_one(selectors))


def split_location(display: str | None) -> Location:
    """Break a "City, Region, Country" style string into components."""
    text = clean_value(display)
    if not text:
        return Location()
    postal_code = None
    parts: list[str] = []
    for raw in text.split(","):
        part = raw.strip()
        match = POSTAL_CODE.search(part)
        if match and postal_code is None:
            postal_code = match.group(1)
            part = normalize_whitespace(POSTAL_CODE.sub("", part).strip(" -()"))
        if part:
            parts.append(part)
    return Location(
        city=parts[0] if parts else None,
        region=parts[1] if len(parts) > 1 else None,
        country=parts[2] if len(parts) > 2 else None,
        postal_code=postal_code,
        display=text,
    )


def _same_site(url: str, base_url: str) -> bool:
    host = urlparse(url).netloc.lower().removeprefix("www.")
    base_host = urlparse(base_url).netloc.lower().removeprefix("www.")
    return bool(host) and (not base_host or host == base_host or host.endswith("." + base_host))


def _detail_link(root: Tag, base_url: str) -> str | None:
    for anchor in root.find_all("a", href=True):
        url = to_absolute(anchor["href"], base_url)
        if url and _same_site(url, base_url) and classify_url(url) is PageKind.DETAIL:
            return url.split("#", 1)[0]
    return None


def _preview_from_card(card: Tag, url: str) -> JobPreview:
    heading = card.find(["h2", "h3", "h4"])
    anchor = card.find("a", href=True)
    location = _select_text(card, LOCATION_SELECTORS)
    snippet_node = card.select_one(SNIPPET_SELECTORS)
    salary_text = _select_text(card, SALARY_SELECTORS)
    date_node = card.select_one(DATE_SELECTORS)
    posted = None
    if date_node is not None:
        posted = clean_value(date_node.get("datetime")) or _text(date_node)
    tags = {text for text in (_text(node) for node in card.select(TAG_SELECTORS)) if text}
    return JobPreview(
        job_url=url,
        title=_text(heading) or _text(anchor),
        company=_select_text(card, COMPANY_SELECTORS),
        location=split_location(location),
        posted_at=posted,
        salary=Salary(text=salary_text),
        snippet=_text(snippet_node),
        snippet_html=clean_description_html(snippet_node) if snippet_node is not None else None,
        tags=tags,
    )


def listing_from_markup(document: BeautifulSoup | None, base_url: str = DEFAULT_ORIGIN) -> list[JobPreview]:
    """Pull previews from job cards, or from bare detail links when no card matches."""
    if document is None:
        return []
    previews: list[JobPreview] = []
    seen: set[str] = set()
    for selector in CARD_SELECTORS:
        for card in document.select(selector):
            url = _detail_link(card, base_url)
            if not url or url in seen:
                continue
            seen.add(url)
            previews.append(_preview_from_card(card, url))
        if previews:
            return previews

    for anchor in document.find_all("a", href=True):
        url = to_absolute(anchor["href"], base_url)
        if not url or not _same_site(url, base_url) or classify_url(url) is not PageKind.DETAIL:
            continue
        url = url.split("#", 1)[0]
        if url in seen:
            continue
        seen.add(url)
        previews.append(JobPreview(job_url=url, title=_text(anchor)))
    logger.debug("markup_link_scan", extra={"extra_fields": {"url": base_url, "links": len(previews)}})
    return previews


def _heading_level(tag: Tag) -> int:
    return int(tag.name[1]) if tag.name in HEADING_TAGS else 99


def _section_kind(heading: Tag) -> str | None:
    text = (_text(heading) or "").lower()
    for kind, labels in SECTION_LABELS.items():
        if any(label in text for label in labels):
            return kind
    return None


def _stop_index(text: str) -> int:
    lowered = text.lower()
    found = [lowered.find(marker) for marker in STOP_MARKERS]
    found = [index for index in found if index >= 0]
    return min(found) if found else -1


def _collect_section(heading: Tag, seen_texts: set[str]) -> tuple[list[Tag], bool]:
    """Gather siblings after ``heading`` up to the next heading of the same or higher rank.

    Returns the blocks and whether a stop marker ended the scan.
    """
    level = _heading_level(heading)
    blocks: list[Tag] = []
    total = 0
    for sibling in heading.find_next_siblings():
        if sibling.name in HEADING_TAGS and _heading_level(sibling) <= level:
            break
        text = _text(sibling) or ""
        if _stop_index(text) >= 0:
            return blocks, True
        if not text or CONSENT_TEXT.search(text) or text in seen_texts:
            continue
        total += len(text)
        if total > MAX_SECTION_CHARS:
            break
        seen_texts.add(text)
        blocks.append(sibling)
    return blocks, False


def _sections(document: BeautifulSoup) -> dict[str, list[Tag]]:
    found: dict[str, list[Tag]] = {kind: [] for kind in SECTION_LABELS}
    seen_texts: set[str] = set()
    seen_headings: set[str] = set()
    for heading in document.find_all(HEADING_TAGS):
        heading_text = (_text(heading) or "").lower()
        if _stop_index(heading_text) >= 0:
            break
        kind = _section_kind(heading)
        if kind is None or heading_text in seen_headings:
            continue
        seen_headings.add(heading_text)
        blocks, stopped = _collect_section(heading, seen_texts)
        found[kind].extend(blocks)
        if stopped:
            break
    return found


def _fallback_description(document: BeautifulSoup) -> list[Tag]:
    for selector in FALLBACK_CONTAINERS:
        for node in document.select(selector):
            text = _text(node) or ""
            if len(text) >= MIN_BLOCK_CHARS and not CONSENT_TEXT.search(text[:200]):
                return [node]
    return []


def _body_text(document: BeautifulSoup) -> str:
    body = document.body or document
    strings = (
        text
        for text in body.find_all(string=True)
        if text.parent is not None and text.parent.name not in DROPPED_TAGS and not isinstance(text, Comment)
    )
    text = normalize_whitespace(" ".join(strings))[:MAX_BODY_SCAN_CHARS]
    stop = _stop_index(text)
    return text[:stop] if stop >= 0 else text


def _match(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return clean_value(match.group(1)) if match else None


def detail_from_markup(document: BeautifulSoup | None, base_url: str = DEFAULT_ORIGIN) -> JobFields | None:
    """Heuristic read of a detail page's visible markup.

    Anything that cannot be located stays ``None``; the body text scan is the
    last resort for salary, contract and date hints.
    """
    if document is None:
        return None
    sections = _sections(document)
    description_blocks = sections["description"] + sections["requirements"]
    if not description_blocks:
        description_blocks = _fallback_description(document)

    body = _body_text(document)
    location_text = _select_text(document, LOCATION_SELECTORS)
    tags = {text for text in (_text(node) for node in document.select(TAG_SELECTORS)) if text}
    fields = JobFields(
        title=_text(document.find("h1")),
        company=_select_text(document, COMPANY_SELECTORS),
        location=split_location(location_text),
        job_type=_match(CONTRACT_PATTERN, body),
        posted_at=_match(POSTED_PATTERN, body),
        salary=Salary(text=_select_text(document, SALARY_SELECTORS) or _match(SALARY_PATTERN, body)),
        reference_number=_match(REFERENCE_PATTERN, body),
        valid_through=_match(CLOSES_PATTERN, body),
        description_html=clean_description_html(description_blocks) if description_blocks else None,
        requirements=" ".join(filter(None, (_text(node) for node in sections["requirements"]))) or None,
        benefits=" ".join(filter(None, (_text(node) for node in sections["benefits"]))) or None,
        tags=tags,
    )
    if fields.is_empty():
        logger.debug("markup_found_nothing", extra={"extra_fields": {"url": base_url, "strategy": "markup"}})
        return None
    return fields
