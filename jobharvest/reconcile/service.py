from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from jobharvest.core.models import DataSource, JobFields, JobPreview, JobRecord, Location, Salary
from jobharvest.extract.html_clean import clean_description_html, html_to_text, text_to_html
from jobharvest.extract.strategies import DetailExtraction
from jobharvest.utils.text import canonicalize_url, clean_value, format_number, normalize_whitespace

logger = logging.getLogger(__name__)


def _first(values: Iterable[Any]) -> str | None:
    for value in values:
        cleaned = clean_value(value)
        if cleaned:
            return cleaned
    return None


def _first_number(values: Iterable[float | None]) -> float | None:
    for value in values:
        if value is not None:
            return value
    return None


def format_salary(salary: Salary) -> str | None:
    """Render "CUR MIN - MAX / interval", falling back to the captured free text."""
    low, high = salary.minimum, salary.maximum
    if low is None and high is None:
        return clean_value(salary.text)
    if low is not None and high is not None and low != high:
        amount = f"{format_number(low)} - {format_number(high)}"
    else:
        amount = format_number(low if low is not None else high)
    if salary.currency:
        amount = f"{salary.currency} {amount}"
    if salary.interval:
        amount = f"{amount} / {salary.interval}"
    return clean_value(amount)


class RecordReconciler:
    """Merge partial extraction results into one canonical record.

    Visible-page fields (title, company, location, salary, description) trust
    the markup first because it is what the reader actually sees; the other
    fields trust structured sources first.
    """

    def reconcile(
        self,
        url: str,
        extraction: DetailExtraction,
        preview: JobPreview | None = None,
        scraped_at: str | None = None,
    ) -> JobRecord | None:
        preview_fields = preview.as_fields() if preview else None
        visible_order = [extraction.markup, extraction.payload, extraction.linked_data, preview_fields]
        structured_order = [extraction.payload, extraction.linked_data, extraction.markup, preview_fields]
        source = DataSource.DETAIL if extraction.has_structured else DataSource.PREVIEW_FALLBACK
        return self._build(
            url=url,
            visible=[fields for fields in visible_order if fields is not None],
            structured=[fields for fields in structured_order if fields is not None],
            data_source=source,
            snippet=preview.snippet if preview else None,
            scraped_at=scraped_at,
        )

    def from_preview(self, preview: JobPreview, scraped_at: str | None = None) -> JobRecord | None:
        fields = [preview.as_fields()]
        return self._build(
            url=preview.job_url,
            visible=fields,
            structured=fields,
            data_source=DataSource.LIST,
            snippet=preview.snippet,
            scraped_at=scraped_at,
        )

    def _build(
        self,
        url: str,
        visible: list[JobFields],
        structured: list[JobFields],
        data_source: DataSource,
        snippet: str | None,
        scraped_at: str | None,
    ) -> JobRecord | None:
        def pick(getter: Callable[[JobFields], Any], order: list[JobFields] = structured) -> str | None:
            return _first(getter(fields) for fields in order)

        job_url = clean_value(url) or pick(lambda f: f.job_url)
        title = pick(lambda f: f.title, visible)
        if not title or not job_url:
            logger.error(
                "record_dropped_schema",
                extra={"extra_fields": {"url": url, "has_title": bool(title), "has_url": bool(job_url)}},
            )
            return None

        description_html = None
        for fields in visible:
            description_html = clean_description_html(fields.description_html) if fields.description_html else None
            if description_html:
                break
        if not description_html:
            description_html = text_to_html(snippet)

        tags: set[str] = set()
        for fields in structured:
            tags |= {tag for tag in (clean_value(item) for item in fields.tags) if tag}

        breadcrumbs = next((fields.breadcrumbs for fields in structured if fields.breadcrumbs), [])

        return JobRecord(
            job_url=canonicalize_url(job_url),
            title=title,
            data_source=data_source,
            scraped_at=scraped_at or JobRecord.now_iso(),
            job_id=pick(lambda f: f.job_id),
            company=pick(lambda f: f.company, visible),
            location=self._location(visible),
            job_type=pick(lambda f: f.job_type),
            job_category=pick(lambda f: f.job_category),
            posted_at=pick(lambda f: f.posted_at),
            salary=self._salary(visible),
            snippet=clean_value(snippet),
            reference_number=pick(lambda f: f.reference_number),
            employment_type=pick(lambda f: f.employment_type),
            valid_through=pick(lambda f: f.valid_through),
            description_html=description_html,
            description_text=html_to_text(description_html),
            requirements=pick(lambda f: f.requirements),
            benefits=pick(lambda f: f.benefits),
            tags=sorted(tags),
            seniority=pick(lambda f: f.seniority),
            work_hours=pick(lambda f: f.work_hours),
            remote_type=pick(lambda f: f.remote_type),
            breadcrumbs=[crumb for crumb in breadcrumbs if normalize_whitespace(crumb.name)],
        )

    @staticmethod
    def _location(order: list[JobFields]) -> Location:
        location = Location(
            city=_first(fields.location.city for fields in order),
            region=_first(fields.location.region for fields in order),
            country=_first(fields.location.country for fields in order),
            postal_code=_first(fields.location.postal_code for fields in order),
        )
        location.display = location.composed() or _first(fields.location.display for fields in order)
        return location

    @staticmethod
    def _salary(order: list[JobFields]) -> Salary:
        salary = Salary(
            minimum=_first_number(fields.salary.minimum for fields in order),
            maximum=_first_number(fields.salary.maximum for fields in order),
            currency=_first(fields.salary.currency for fields in order),
            interval=_first(fields.salary.interval for fields in order),
            text=_first(fields.salary.text for fields in order),
        )
        salary.text = format_salary(salary)
        return salary
