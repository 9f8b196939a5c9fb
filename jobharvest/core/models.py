from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class PageKind(str, Enum):
    LISTING = "LISTING"
    DETAIL = "DETAIL"


class DataSource(str, Enum):
    LIST = "list"
    DETAIL = "detail"
    PREVIEW_FALLBACK = "previewFallback"


@dataclass(slots=True)
class Location:
    city: str | None = None
    region: str | None = None
    country: str | None = None
    postal_code: str | None = None
    display: str | None = None

    def components(self) -> list[str]:
        return [part for part in (self.city, self.region, self.country, self.postal_code) if part]

    def composed(self) -> str | None:
        parts = self.components()
        return ", ".join(parts) if parts else None

    def is_empty(self) -> bool:
        return not self.components() and not self.display


@dataclass(slots=True)
class Salary:
    minimum: float | None = None
    maximum: float | None = None
    currency: str | None = None
    interval: str | None = None
    text: str | None = None

    def is_empty(self) -> bool:
        return self.minimum is None and self.maximum is None and not self.text


@dataclass(slots=True)
class Breadcrumb:
    position: int
    name: str
    link: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"position": self.position, "name": self.name}
        if self.link:
            payload["link"] = self.link
        return payload


@dataclass(slots=True)
class JobFields:
    """Whatever one extraction strategy managed to read from a page."""

    job_id: str | None = None
    job_url: str | None = None
    title: str | None = None
    company: str | None = None
    location: Location = field(default_factory=Location)
    job_type: str | None = None
    job_category: str | None = None
    posted_at: str | None = None
    salary: Salary = field(default_factory=Salary)
    reference_number: str | None = None
    employment_type: str | None = None
    valid_through: str | None = None
    description_html: str | None = None
    requirements: str | None = None
    benefits: str | None = None
    tags: set[str] = field(default_factory=set)
    seniority: str | None = None
    work_hours: str | None = None
    remote_type: str | None = None
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)

    def is_empty(self) -> bool:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, (Location, Salary)):
                if not value.is_empty():
                    return False
            elif value:
                return False
        return True


@dataclass(slots=True)
class JobPreview:
    job_url: str
    job_id: str | None = None
    title: str | None = None
    company: str | None = None
    location: Location = field(default_factory=Location)
    job_type: str | None = None
    job_category: str | None = None
    posted_at: str | None = None
    salary: Salary = field(default_factory=Salary)
    snippet: str | None = None
    snippet_html: str | None = None
    tags: set[str] = field(default_factory=set)

    def as_fields(self) -> JobFields:
        return JobFields(
            job_id=self.job_id,
            job_url=self.job_url,
            title=self.title,
            company=self.company,
            location=self.location,
            job_type=self.job_type,
            job_category=self.job_category,
            posted_at=self.posted_at,
            salary=self.salary,
            description_html=self.snippet_html,
            tags=set(self.tags),
        )


@dataclass(slots=True)
class JobRecord:
    job_url: str
    title: str
    data_source: DataSource
    scraped_at: str
    job_id: str | None = None
    company: str | None = None
    location: Location = field(default_factory=Location)
    job_type: str | None = None
    job_category: str | None = None
    posted_at: str | None = None
    salary: Salary = field(default_factory=Salary)
    snippet: str | None = None
    reference_number: str | None = None
    employment_type: str | None = None
    valid_through: str | None = None
    description_html: str | None = None
    description_text: str | None = None
    requirements: str | None = None
    benefits: str | None = None
    tags: list[str] = field(default_factory=list)
    seniority: str | None = None
    work_hours: str | None = None
    remote_type: str | None = None
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)

    @staticmethod
    def now_iso() -> str:
        return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the stored schema, leaving out every empty field."""
        payload: dict[str, Any] = {
            "job_id": self.job_id,
            "job_url": self.job_url,
            "title": self.title,
            "company": self.company,
            "location": self.location.display,
            "location_city": self.location.city,
            "location_region": self.location.region,
            "location_country": self.location.country,
            "location_postal_code": self.location.postal_code,
            "job_type": self.job_type,
            "job_category": self.job_category,
            "posted_at": self.posted_at,
            "salary": self.salary.text,
            "salary_min": self.salary.minimum,
            "salary_max": self.salary.maximum,
            "salary_currency": self.salary.currency,
            "salary_interval": self.salary.interval,
            "snippet": self.snippet,
            "reference_number": self.reference_number,
            "employment_type": self.employment_type,
            "valid_through": self.valid_through,
            "description_html": self.description_html,
            "description_text": self.description_text,
            "requirements": self.requirements,
            "benefits": self.benefits,
            "tags": sorted(self.tags),
            "seniority": self.seniority,
            "work_hours": self.work_hours,
            "remote_type": self.remote_type,
            "breadcrumbs": [crumb.to_dict() for crumb in self.breadcrumbs],
            "data_source": self.data_source.value,
            "scraped_at": self.scraped_at,
        }
        sparse: dict[str, Any] = {}
        for key, value in payload.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, list) and not value:
                continue
            sparse[key] = value
        return sparse


@dataclass(slots=True)
class CrawlRequest:
    url: str
    kind: PageKind
    page_number: int = 1
    preview: JobPreview | None = None
    referer: str | None = None
