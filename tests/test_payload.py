from __future__ import annotations

import json

from bs4 import BeautifulSoup

from jobharvest.core.models import DataSource
from jobharvest.extract.payload import extract_balanced_json, find_embedded_payload, listing_from_payload
from jobharvest.extract.strategies import DetailExtractor, ListingExtractor
from jobharvest.reconcile.service import RecordReconciler


def page_with_payload(payload: dict) -> str:
    return (
        "<html><head><script>window.__ROUTE_DATA__ = "
        + json.dumps(payload)
        + ";</script></head><body></body></html>"
    )


def test_balanced_scan_handles_nested_objects() -> None:
    text = 'marker({"a":{"b":1},"c":2}); var x = {};'
    assert extract_balanced_json(text, "marker") == '{"a":{"b":1},"c":2}'


def test_balanced_scan_ignores_braces_inside_strings() -> None:
    text = r'm = {"text": "a } b { c", "quote": "say \"}\" ok"}; tail {'
    found = extract_balanced_json(text, "m =")
    assert found == r'{"text": "a } b { c", "quote": "say \"}\" ok"}'
    assert json.loads(found)["quote"] == 'say "}" ok'


def test_balanced_scan_returns_none_for_unterminated_object() -> None:
    assert extract_balanced_json('m = {"a": {"b": 1}', "m =") is None
    assert extract_balanced_json("no marker here", "m =") is None


def test_detail_payload_produces_full_record() -> None:
    payload = {
        "jobData": {
            "hits": {
                "hits": [
                    {
                        "_id": "123456",
                        "_source": {
                            "JobInformation": {
                                "Title": "Data Analyst",
                                "Description": "<p class='intro'>Analyse data</p>",
                                "JobType": "CDI",
                            },
                            "CompanyInformation": {"Name": "Acme"},
                            "Location": {"City": "Paris", "Region": "Île-de-France", "Country": "France"},
                            "Salary": {"Min": 30000, "Max": 40000, "Currency": "EUR", "Interval": "year"},
                        },
                    }
                ]
            }
        }
    }
    html = page_with_payload(payload)
    url = "https://www.randstad.fr/emploi/data-analyst_paris_123456/"
    extraction = DetailExtractor().extract(BeautifulSoup(html, "html.parser"), html, url)
    assert extraction.payload is not None
    assert not extraction.needs_retry

    record = RecordReconciler().reconcile(url, extraction)
    assert record is not None
    data = record.to_dict()
    assert data["title"] == "Data Analyst"
    assert data["company"] == "Acme"
    assert data["job_id"] == "123456"
    assert data["job_type"] == "CDI"
    assert data["location"] == "Paris, Île-de-France, France"
    assert data["salary"] == "EUR 30000 - 40000 / year"
    assert data["description_html"] == "<p>Analyse data</p>"
    assert data["description_text"] == "Analyse data"
    assert data["data_source"] == DataSource.DETAIL.value


def test_listing_payload_reads_hits_and_total() -> None:
    payload = {
        "search": {
            "hits": {
                "total": {"value": 42},
                "hits": [
                    {"_id": "1", "_source": {"JobInformation": {"Title": "Welder", "JobUrl": "/emploi/welder_lille_1/"}}},
                    {"_id": "2", "_source": {"JobInformation": {"Title": "No link"}}},
                ],
            }
        }
    }
    previews, total = listing_from_payload(payload)
    assert total == 42
    assert [preview.job_url for preview in previews] == ["https://www.randstad.fr/emploi/welder_lille_1/"]
    assert previews[0].job_id == "1"
    assert previews[0].title == "Welder"


def test_listing_extractor_prefers_payload_over_markup() -> None:
    payload = {"hits": {"total": 1, "hits": [{"_id": "9", "Title": "Cook", "Url": "/emploi/cook_paris_9/"}]}}
    html = page_with_payload(payload).replace(
        "<body></body>", '<body><article class="job"><a href="/emploi/other_paris_10/">Other</a></article></body>'
    )
    result = ListingExtractor().extract(BeautifulSoup(html, "html.parser"), html, "https://www.randstad.fr/emploi/")
    assert result.strategy == "embedded_payload"
    assert result.total_results == 1
    assert [preview.title for preview in result.previews] == ["Cook"]


def test_malformed_payload_is_ignored() -> None:
    html = '<html><script>window.__ROUTE_DATA__ = {"jobData": {broken}};</script></html>'
    document = BeautifulSoup(html, "html.parser")
    assert find_embedded_payload(document, html, "__ROUTE_DATA__") is None
    extraction = DetailExtractor().extract(document, html, "https://www.randstad.fr/emploi/a_1/")
    assert extraction.payload is None


def test_custom_marker_call_payload_is_read() -> None:
    script = 'marker({"jobData":{"hits":{"hits":[{"_source":{"JobInformation":{"Title":"Data Analyst"}}}]}}})'
    html = f"<html><head><script>{script}</script></head><body></body></html>"
    url = "https://www.randstad.fr/emploi/data-analyst_paris_123456/"
    extraction = DetailExtractor(marker="marker").extract(BeautifulSoup(html, "html.parser"), html, url)
    record = RecordReconciler().reconcile(url, extraction)
    assert record is not None
    assert record.title == "Data Analyst"
    assert record.data_source is DataSource.DETAIL
