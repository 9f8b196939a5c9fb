from __future__ import annotations

from jobharvest.core.models import DataSource, JobFields, JobPreview, Location, Salary
from jobharvest.extract.strategies import DetailExtraction
from jobharvest.reconcile.service import RecordReconciler, format_salary

URL = "https://www.randstad.fr/emploi/data-analyst_paris_42/"


def test_visible_fields_prefer_markup_and_others_prefer_structured() -> None:
    extraction = DetailExtraction(
        payload=JobFields(title="Payload Title", company="Acme", job_type="CDI", job_id="42"),
        markup=JobFields(title="Visible Title", job_type="Permanent", description_html="<p>Shown text</p>"),
    )
    record = RecordReconciler().reconcile(URL, extraction)
    assert record is not None
    assert record.title == "Visible Title"
    assert record.company == "Acme"
    assert record.job_type == "CDI"
    assert record.job_id == "42"
    assert record.description_html == "<p>Shown text</p>"
    assert record.data_source is DataSource.DETAIL


def test_location_display_is_composed_from_components() -> None:
    extraction = DetailExtraction(
        linked_data=JobFields(title="Cook", location=Location(city="Lyon", country="FR")),
        markup=JobFields(location=Location(display="somewhere nice")),
    )
    record = RecordReconciler().reconcile(URL, extraction)
    assert record is not None
    assert record.location.display == "Lyon, FR"
    assert record.to_dict()["location_city"] == "Lyon"


def test_salary_rendering() -> None:
    assert format_salary(Salary(minimum=30000, maximum=40000, currency="EUR", interval="year")) == (
        "EUR 30000 - 40000 / year"
    )
    assert format_salary(Salary(minimum=11.65, maximum=11.65, currency="EUR", interval="hour")) == "EUR 11.65 / hour"
    assert format_salary(Salary(maximum=2500)) == "2500"
    assert format_salary(Salary(text=" Competitive ")) == "Competitive"
    assert format_salary(Salary()) is None


def test_description_text_matches_html() -> None:
    extraction = DetailExtraction(
        payload=JobFields(
            title="Dev",
            description_html="<p>Build <strong>things</strong></p><script>x()</script><ul><li>Python</li></ul>",
        )
    )
    record = RecordReconciler().reconcile(URL, extraction)
    assert record is not None
    assert record.description_html == "<p>Build <strong>things</strong></p><ul><li>Python</li></ul>"
    assert record.description_text == "Build things Python"


def test_tags_are_merged_across_sources() -> None:
    extraction = DetailExtraction(
        payload=JobFields(title="Dev", tags={"IT"}),
        linked_data=JobFields(tags={"Data", "IT", " "}),
    )
    record = RecordReconciler().reconcile(URL, extraction)
    assert record is not None
    assert record.tags == ["Data", "IT"]


def test_serialized_record_omits_empty_fields() -> None:
    extraction = DetailExtraction(payload=JobFields(title="Dev", company="  "))
    record = RecordReconciler().reconcile(URL + "?utm_source=mail#top", extraction, scraped_at="2026-01-01T00:00:00Z")
    assert record is not None
    assert record.to_dict() == {
        "job_url": URL,
        "title": "Dev",
        "data_source": "detail",
        "scraped_at": "2026-01-01T00:00:00Z",
    }


def test_record_without_title_is_dropped() -> None:
    extraction = DetailExtraction(payload=JobFields(company="Acme"))
    assert RecordReconciler().reconcile(URL, extraction) is None


def test_markup_only_page_is_marked_as_fallback() -> None:
    preview = JobPreview(job_url=URL, title="Data Analyst", company="Acme", snippet="Short text")
    extraction = DetailExtraction(markup=JobFields(title="Data Analyst"))
    record = RecordReconciler().reconcile(URL, extraction, preview)
    assert record is not None
    assert record.data_source is DataSource.PREVIEW_FALLBACK
    assert record.company == "Acme"
    assert record.description_html == "<p>Short text</p>"


def test_preview_record_is_marked_as_list() -> None:
    preview = JobPreview(
        job_url=URL,
        job_id="42",
        title="Data Analyst",
        snippet="Analyse data",
        snippet_html="<p>Analyse <em>data</em></p>",
        tags={"Data"},
    )
    record = RecordReconciler().from_preview(preview)
    assert record is not None
    data = record.to_dict()
    assert data["data_source"] == "list"
    assert data["snippet"] == "Analyse data"
    assert data["description_text"] == "Analyse data"
    assert data["tags"] == ["Data"]
