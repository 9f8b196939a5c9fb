from __future__ import annotations

import json
import logging
from typing import Any, Iterator

from bs4 import BeautifulSoup

from jobharvest.core.models import JobFields, JobPreview, Location, Salary
from jobharvest.core.urls import to_absolute
from jobharvest.extract.html_clean import clean_description_html, html_to_text
from jobharvest.utils.config import DEFAULT_ORIGIN
from jobharvest.utils.text import clean_value, to_number

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 300
MAX_HIT_SEARCH_DEPTH = 6


def iter_balanced_objects(text: str, marker: str) -> Iterator[str]:
    """Yield each balanced ``{...}`` object that follows an occurrence of ``marker``.

    Braces inside double-quoted strings (including escaped quotes) are not
    counted, so the object is cut exactly where its outermost brace closes.
    """
    if not text or not marker:
        return
    search_from = 0
    while True:
        position = text.find(marker, search_from)
        if position < 0:
            return
        start = text.find("{", position + len(marker))
        if start < 0:
            return
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = index
                    break
        if end < 0:
            return
        yield text[start : end + 1]
        search_from = end + 1


def extract_balanced_json(text: str, marker: str) -> str | None:
    return next(iter_balanced_objects(text, marker), None)


def find_embedded_payload(document: BeautifulSoup | None, raw_body: str | None, marker: str) -> dict[str, Any] | None:
    """Parse the JSON object assigned after ``marker`` in inline script content."""
    sources: list[str] = []
    if document is not None:
        for script in document.find_all("script"):
            if script.get("src"):
                continue
            content = script.string or script.get_text()
            if content and marker in content:
                sources.append(content)
    if raw_body and marker in raw_body:
        sources.append(raw_body)

    for source in sources:
        for candidate in iter_balanced_objects(source, marker):
            try:
                payload = json.loads(candidate)
            except ValueError as exc:
                logger.debug(
                    "payload_parse_failed",
                    extra={"extra_fields": {"strategy": "embedded_payload", "error": str(exc)[:200]}},
                )
                continue
            if isinstance(payload, dict):
                return payload
    return None


def _get(data: Any, *names: str) -> Any:
    """Case-insensitive lookup of the first present key among ``names``."""
    if not isinstance(data, dict):
        return None
    lowered = {str(key).lower(): key for key in data}
    for name in names:
        key = lowered.get(name.lower())
        if key is None:
            continue
        value = data[key]
        if value not in (None, "", [], {}):
            return value
    return None


def _text(value: Any) -> str | None:
    if isinstance(value, dict):
        return _text(_get(value, "Name", "Label", "Value", "Description", "Text", "Title"))
    if isinstance(value, list):
        parts = [part for part in (_text(item) for item in value) if part]
        return ", ".join(dict.fromkeys(parts)) or None
    return clean_value(value)


def _plain(value: Any) -> str | None:
    text = _text(value)
    if text and "<" in text:
        return html_to_text(text)
    return text


def _tag_values(value: Any) -> set[str]:
    if isinstance(value, list):
        found: set[str] = set()
        for item in value:
            found |= _tag_values(item)
        return found
    text = _text(value)
    return {text} if text else set()


def _location(source: dict[str, Any]) -> Location:
    raw = _get(source, "JobLocation", "Location", "LocationInformation", "Address")
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    if isinstance(raw, str):
        return Location(display=clean_value(raw))
    if not isinstance(raw, dict):
        return Location()
    return Location(
        city=_text(_get(raw, "City", "Town", "Locality", "AddressLocality")),
        region=_text(_get(raw, "Region", "State", "Area", "Department", "AddressRegion")),
        country=_text(_get(raw, "Country", "CountryName", "AddressCountry")),
        postal_code=_text(_get(raw, "PostalCode", "ZipCode", "PostCode")),
        display=_text(_get(raw, "Display", "DisplayName", "FullLocation")),
    )


def _salary(source: dict[str, Any], info: dict[str, Any]) -> Salary:
    raw = _get(source, "SalaryInformation", "Salary", "Remuneration") or _get(info, "Salary", "SalaryInformation")
    if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        return Salary(text=clean_value(raw))
    if not isinstance(raw, dict):
        return Salary()
    return Salary(
        minimum=to_number(_get(raw, "Min", "MinSalary", "SalaryMin", "From", "Minimum")),
        maximum=to_number(_get(raw, "Max", "MaxSalary", "SalaryMax", "To", "Maximum")),
        currency=_text(_get(raw, "Currency", "CurrencyCode")),
        interval=_text(_get(raw, "Interval", "Period", "Unit", "Frequency", "SalaryType")),
        text=_text(_get(raw, "Text", "Display", "Description", "SalaryText")),
    )


def _remote(info: dict[str, Any]) -> str | None:
    raw = _get(info, "RemoteType", "RemoteWork", "WorkFromHome", "Teleworking")
    if isinstance(raw, bool):
        return "remote" if raw else None
    return _text(raw)


def fields_from_hit(hit: dict[str, Any], origin: str = DEFAULT_ORIGIN) -> JobFields:
    """Map one search hit (or a bare job object) to partial job fields."""
    source = _get(hit, "_source")
    if not isinstance(source, dict):
        source = hit
    info = _get(source, "JobInformation", "Job", "JobDetails")
    if not isinstance(info, dict):
        info = source
    dates = _get(source, "Dates", "JobDates")
    if not isinstance(dates, dict):
        dates = info
    company = _get(source, "CompanyInformation", "ClientInformation", "Company") or _get(
        info, "Company", "CompanyName", "ClientName"
    )
    description = _get(info, "Description", "JobDescription", "DescriptionHtml")

    tags: set[str] = set()
    for container in (source, info):
        tags |= _tag_values(_get(container, "Specialisms", "SubSpecialisms", "Sectors", "Tags"))
    category = _text(_get(info, "Category", "JobCategory", "Specialism", "Sector"))
    if category:
        tags.add(category)

    location = _location(source)
    if location.is_empty():
        location = _location(info)

    url = _text(_get(info, "JobUrl", "Url", "Link", "Permalink")) or _text(_get(source, "JobUrl", "Url", "Link"))
    return JobFields(
        job_id=_text(_get(hit, "_id")) or _text(_get(source, "JobId", "Id")) or _text(_get(info, "JobId", "Id")),
        job_url=to_absolute(url, origin),
        title=_text(_get(info, "Title", "JobTitle")),
        company=_text(company),
        location=location,
        job_type=_text(_get(info, "JobType", "ContractType", "Contract")),
        job_category=category,
        posted_at=_text(_get(dates, "PostedDate", "DatePosted", "PublicationDate", "PublishedDate")),
        salary=_salary(source, info),
        reference_number=_text(_get(info, "Reference", "ReferenceNumber", "JobReference")),
        employment_type=_text(_get(info, "EmploymentType", "WorkingTime")),
        valid_through=_text(_get(dates, "ExpiryDate", "ValidThrough", "ClosingDate")),
        description_html=clean_description_html(description) if isinstance(description, str) else None,
        requirements=_plain(_get(info, "Requirements", "Profile", "CandidateProfile")),
        benefits=_plain(_get(info, "Benefits", "Advantages")),
        tags=tags,
        seniority=_text(_get(info, "Seniority", "ExperienceLevel", "CareerLevel")),
        work_hours=_text(_get(info, "WorkingHours", "WorkHours", "Hours")),
        remote_type=_remote(info),
    )


def _hits_container(data: Any, depth: int = 0) -> dict[str, Any] | None:
    """Depth-first search for an object shaped like ``{"hits": {"hits": [...]}}``."""
    if depth > MAX_HIT_SEARCH_DEPTH or not isinstance(data, dict):
        return None
    inner = data.get("hits")
    if isinstance(inner, dict) and isinstance(inner.get("hits"), list):
        return inner
    for key, value in data.items():
        if key == "jobData":
            continue
        found = _hits_container(value, depth + 1)
        if found is not None:
            return found
    return None


def _total(container: dict[str, Any]) -> int | None:
    total = container.get("total")
    if isinstance(total, dict):
        total = total.get("value")
    number = to_number(total)
    return int(number) if number is not None else None


def listing_from_payload(payload: dict[str, Any] | None, origin: str = DEFAULT_ORIGIN) -> tuple[list[JobPreview], int | None]:
    """Read the search hits array into previews, plus the reported result total."""
    if not payload:
        return [], None
    container = _hits_container(payload)
    if container is None:
        return [], None
    previews: list[JobPreview] = []
    for hit in container["hits"]:
        if not isinstance(hit, dict):
            continue
        fields = fields_from_hit(hit, origin)
        if not fields.job_url:
            logger.debug("payload_hit_without_url", extra={"extra_fields": {"job_id": fields.job_id}})
            continue
        snippet = html_to_text(fields.description_html)
        if snippet and len(snippet) > SNIPPET_LENGTH:
            snippet = snippet[:SNIPPET_LENGTH].rsplit(" ", 1)[0] + "..."
        previews.append(
            JobPreview(
                job_url=fields.job_url,
                job_id=fields.job_id,
                title=fields.title,
                company=fields.company,
                location=fields.location,
                job_type=fields.job_type,
                job_category=fields.job_category,
                posted_at=fields.posted_at,
                salary=fields.salary,
                snippet=snippet,
                snippet_html=fields.description_html,
                tags=fields.tags,
            )
        )
    return previews, _total(container)


def detail_from_payload(payload: dict[str, Any] | None, origin: str = DEFAULT_ORIGIN) -> JobFields | None:
    """Read the job data object of a detail page payload."""
    if not payload:
        return None
    job_data = _get(payload, "jobData")
    if not isinstance(job_data, dict):
        return None
    hits = job_data.get("hits")
    if isinstance(hits, dict) and isinstance(hits.get("hits"), list):
        first = next((hit for hit in hits["hits"] if isinstance(hit, dict)), None)
        if first is None:
            return None
        fields = fields_from_hit(first, origin)
    else:
        fields = fields_from_hit(job_data, origin)
    return None if fields.is_empty() else fields
