from __future__ import annotations

import json
import logging
from typing import Any

from bs4 import BeautifulSoup

from jobharvest.core.models import Breadcrumb, JobFields, Location, Salary
from jobharvest.core.urls import to_absolute
from jobharvest.extract.html_clean import clean_description_html, html_to_text
from jobharvest.utils.config import DEFAULT_ORIGIN
from jobharvest.utils.text import clean_value, to_number

logger = logging.getLogger(__name__)

LD_JSON_SELECTOR = "script[type='application/ld+json']"


def _types(node: dict[str, Any]) -> set[str]:
    raw = node.get("@type")
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return set()
    return {str(item).split("/")[-1].lower() for item in raw}


def _flatten(node: Any, pool: list[dict[str, Any]]) -> None:
    if isinstance(node, list):
        for item in node:
            _flatten(item, pool)
        return
    if not isinstance(node, dict):
        return
    pool.append(node)
    for key, value in node.items():
        if key == "@context":
            continue
        if isinstance(value, (dict, list)):
            _flatten(value, pool)


def collect_linked_data(document: BeautifulSoup | None) -> list[dict[str, Any]]:
    """Parse every JSON-LD block and flatten nested objects into one pool."""
    pool: list[dict[str, Any]] = []
    if document is None:
        return pool
    for script in document.select(LD_JSON_SELECTOR):
        content = script.string or script.get_text()
        if not content or not content.strip():
            continue
        try:
            payload = json.loads(content)
        except ValueError as exc:
            logger.debug(
                "ld_json_parse_failed",
                extra={"extra_fields": {"strategy": "linked_data", "error": str(exc)[:200]}},
            )
            continue
        _flatten(payload, pool)
    return pool


def find_job_posting(pool: list[dict[str, Any]]) -> dict[str, Any] | None:
    for node in pool:
        if "jobposting" in _types(node):
            return node
    return None


def _name(value: Any) -> str | None:
    if isinstance(value, dict):
        return clean_value(value.get("name") or value.get("value"))
    if isinstance(value, list):
        parts = [part for part in (_name(item) for item in value) if part]
        return ", ".join(dict.fromkeys(parts)) or None
    return clean_value(value)


def _location(raw: Any) -> Location:
    if isinstance(raw, list):
        raw = next((item for item in raw if isinstance(item, dict)), None)
    if not isinstance(raw, dict):
        return Location()
    address = raw.get("address", raw)
    if isinstance(address, str):
        return Location(display=clean_value(address))
    if not isinstance(address, dict):
        return Location()
    return Location(
        city=_name(address.get("addressLocality")),
        region=_name(address.get("addressRegion")),
        country=_name(address.get("addressCountry")),
        postal_code=_name(address.get("postalCode")),
    )


def _salary(raw: Any) -> Salary:
    if isinstance(raw, list):
        raw = next((item for item in raw if isinstance(item, dict)), None)
    if not isinstance(raw, dict):
        return Salary(text=clean_value(raw)) if isinstance(raw, (str, int, float)) else Salary()
    value = raw.get("value")
    currency = clean_value(raw.get("currency"))
    if isinstance(value, dict):
        single = to_number(value.get("value"))
        minimum = to_number(value.get("minValue"))
        maximum = to_number(value.get("maxValue"))
        if minimum is None and maximum is None and single is not None:
            minimum = maximum = single
        return Salary(
            minimum=minimum,
            maximum=maximum,
            currency=currency,
            interval=clean_value(value.get("unitText") or raw.get("unitText")),
        )
    number = to_number(value)
    return Salary(
        minimum=number,
        maximum=number,
        currency=currency,
        interval=clean_value(raw.get("unitText")),
    )


def _breadcrumbs(pool: list[dict[str, Any]], origin: str) -> list[Breadcrumb]:
    for node in pool:
        if "breadcrumblist" not in _types(node):
            continue
        crumbs: list[Breadcrumb] = []
        elements = node.get("itemListElement")
        if not isinstance(elements, list):
            continue
        for index, element in enumerate(elements, start=1):
            if not isinstance(element, dict):
                continue
            item = element.get("item")
            name = clean_value(element.get("name")) or (_name(item) if isinstance(item, dict) else None)
            if not name:
                continue
            link = (item.get("@id") or item.get("url")) if isinstance(item, dict) else item
            position = to_number(element.get("position"))
            crumbs.append(
                Breadcrumb(
                    position=int(position) if position is not None else index,
                    name=name,
                    link=to_absolute(link, origin) if isinstance(link, str) else None,
                )
            )
        crumbs.sort(key=lambda crumb: crumb.position)
        return crumbs
    return []


def _remote_type(posting: dict[str, Any]) -> str | None:
    location_type = _name(posting.get("jobLocationType"))
    if location_type and "telecommute" in location_type.lower():
        return "remote"
    return location_type


def _identifier(raw: Any) -> str | None:
    if isinstance(raw, dict):
        return clean_value(raw.get("value") or raw.get("name"))
    return _name(raw)


def detail_from_linked_data(document: BeautifulSoup | None, origin: str = DEFAULT_ORIGIN) -> JobFields | None:
    pool = collect_linked_data(document)
    posting = find_job_posting(pool)
    if posting is None:
        return None

    tags: set[str] = set()
    for key in ("industry", "occupationalCategory"):
        value = posting.get(key)
        for item in value if isinstance(value, list) else [value]:
            name = _name(item)
            if name:
                tags.add(name)

    description = posting.get("description")
    url = posting.get("url")
    fields = JobFields(
        job_url=to_absolute(url, origin) if isinstance(url, str) else None,
        title=clean_value(posting.get("title")),
        company=_name(posting.get("hiringOrganization")),
        location=_location(posting.get("jobLocation")),
        job_category=_name(posting.get("occupationalCategory")) or _name(posting.get("industry")),
        posted_at=clean_value(posting.get("datePosted")),
        salary=_salary(posting.get("baseSalary")),
        reference_number=_identifier(posting.get("identifier")),
        employment_type=_name(posting.get("employmentType")),
        valid_through=clean_value(posting.get("validThrough")),
        description_html=clean_description_html(description) if isinstance(description, str) else None,
        requirements=html_to_text(_name(posting.get("qualifications") or posting.get("experienceRequirements"))),
        benefits=html_to_text(_name(posting.get("jobBenefits"))),
        tags=tags,
        work_hours=_name(posting.get("workHours")),
        remote_type=_remote_type(posting),
        breadcrumbs=_breadcrumbs(pool, origin),
    )
    return None if fields.is_empty() else fields
