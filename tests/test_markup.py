from __future__ import annotations

from bs4 import BeautifulSoup

from jobharvest.extract.markup import detail_from_markup, listing_from_markup, split_location
from jobharvest.extract.strategies import ListingExtractor

BASE = "https://www.randstad.fr/emploi/"

DETAIL_PAGE = """
<html><body>
<h1>Senior Data Engineer</h1>
<div class="company">Acme Corp</div>
<div class="location">Paris 75001, Île-de-France, France</div>
<div class="salary">35 000 € par an</div>
<p>Contrat : CDI</p>
<p>Publié le 12 mars 2026</p>
<h2>Summary</h2>
<p>You will design and run the data platform for our analytics teams.</p>
<p>Accepter les cookies pour continuer</p>
<h2>Requirements</h2>
<ul><li>Five years of Python experience</li></ul>
<h2>Related jobs</h2>
<p>Junior Data Engineer</p>
<script>var tracking = "99 € per hour";</script>
</body></html>
"""


def soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def test_detail_markup_reads_visible_fields() -> None:
    fields = detail_from_markup(soup(DETAIL_PAGE), BASE)
    assert fields is not None
    assert fields.title == "Senior Data Engineer"
    assert fields.company == "Acme Corp"
    assert fields.location.city == "Paris"
    assert fields.location.postal_code == "75001"
    assert fields.location.country == "France"
    assert fields.salary.text == "35 000 € par an"
    assert fields.job_type == "CDI"
    assert fields.posted_at == "12 mars 2026"
    assert fields.requirements == "Five years of Python experience"


def test_detail_markup_stops_at_related_jobs_and_skips_consent() -> None:
    fields = detail_from_markup(soup(DETAIL_PAGE), BASE)
    assert fields is not None
    assert fields.description_html == (
        "<p>You will design and run the data platform for our analytics teams.</p>"
        "<ul><li>Five years of Python experience</li></ul>"
    )
    assert "Junior" not in fields.description_html
    assert "cookies" not in fields.description_html


def test_repeated_section_is_kept_once() -> None:
    html = """
    <html><body><h1>Nurse</h1>
    <h2>Job description</h2><p>Care for patients in the day ward.</p>
    <h2>Job description</h2><p>Care for patients in the day ward.</p>
    </body></html>
    """
    fields = detail_from_markup(soup(html), BASE)
    assert fields is not None
    assert fields.description_html == "<p>Care for patients in the day ward.</p>"


def test_stop_marker_inside_section_ends_description() -> None:
    html = """
    <html><body><h1>Welder</h1>
    <h2>Job description</h2>
    <p>Weld steel frames on site.</p>
    <div>Share this job on LinkedIn</div>
    <p>Unrelated footer text</p>
    </body></html>
    """
    fields = detail_from_markup(soup(html), BASE)
    assert fields is not None
    assert fields.description_html == "<p>Weld steel frames on site.</p>"


def test_fallback_container_used_without_section_headings() -> None:
    html = """
    <html><body><h1>Driver</h1>
    <div class="job-description"><p>Deliver parcels across the city with a company van every weekday.</p></div>
    </body></html>
    """
    fields = detail_from_markup(soup(html), BASE)
    assert fields is not None
    assert fields.description_html == "<p>Deliver parcels across the city with a company van every weekday.</p>"


def test_empty_page_yields_nothing() -> None:
    assert detail_from_markup(soup("<html><body><div>   </div></body></html>"), BASE) is None
    assert detail_from_markup(None, BASE) is None


def test_listing_cards_become_previews() -> None:
    html = """
    <ul>
      <li class="job-item">
        <a href="/emploi/data-analyst_lyon_111/"><h3>Data Analyst</h3></a>
        <span class="location">Lyon</span>
        <p class="summary">Analyse sales data.</p>
      </li>
      <li class="job-item"><a href="/emploi/data-engineer_paris_222/#apply">Data Engineer</a></li>
      <li class="job-item"><a href="/emploi/cdi/">CDI jobs</a></li>
    </ul>
    """
    previews = listing_from_markup(soup(html), BASE)
    assert [preview.job_url for preview in previews] == [
        "https://www.randstad.fr/emploi/data-analyst_lyon_111/",
        "https://www.randstad.fr/emploi/data-engineer_paris_222/",
    ]
    assert previews[0].title == "Data Analyst"
    assert previews[0].location.city == "Lyon"
    assert previews[0].snippet == "Analyse sales data."
    assert previews[1].title == "Data Engineer"


def test_listing_link_scan_fallback_filters_links() -> None:
    html = """
    <div>
      <a href="/emploi/chef-de-projet_nantes_333/">Chef de projet</a>
      <a href="mailto:jobs@example.fr">Mail us</a>
      <a href="https://other.example.com/emploi/cook_paris_1/">Elsewhere</a>
      <a href="/emploi/chef-de-projet_nantes_333/">Duplicate</a>
    </div>
    """
    previews = listing_from_markup(soup(html), BASE)
    assert [(preview.job_url, preview.title) for preview in previews] == [
        ("https://www.randstad.fr/emploi/chef-de-projet_nantes_333/", "Chef de projet"),
    ]


def test_empty_listing_does_not_raise() -> None:
    result = ListingExtractor().extract(soup("<html></html>"), "", BASE)
    assert result.previews == []
    assert result.total_results is None


def test_split_location_components() -> None:
    location = split_location("Bordeaux, Nouvelle-Aquitaine")
    assert (location.city, location.region, location.country) == ("Bordeaux", "Nouvelle-Aquitaine", None)
    assert location.display == "Bordeaux, Nouvelle-Aquitaine"
    assert split_location(None).is_empty()
