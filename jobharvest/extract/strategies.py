from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from jobharvest.core.models import JobFields, JobPreview
from jobharvest.extract.linked_data import detail_from_linked_data
from jobharvest.extract.markup import detail_from_markup, listing_from_markup
from jobharvest.extract.payload import detail_from_payload, find_embedded_payload, listing_from_payload
from jobharvest.utils.config import DEFAULT_ORIGIN, DEFAULT_PAYLOAD_MARKER

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ListingExtraction:
    previews: list[JobPreview] = field(default_factory=list)
    total_results: int | None = None
    strategy: str | None = None


@dataclass(slots=True)
class DetailExtraction:
    payload: JobFields | None = None
    linked_data: JobFields | None = None
    markup: JobFields | None = None

    @property
    def has_structured(self) -> bool:
        return self.payload is not None or self.linked_data is not None

    @property
    def needs_retry(self) -> bool:
        """True when the page looks like an interstitial or a truncated response."""
        if self.has_structured:
            return False
        return not (self.markup and self.markup.title and self.markup.description_html)


class ListingStrategy(ABC):
    name: str

    @abstractmethod
    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> ListingExtraction:
        raise NotImplementedError


class DetailStrategy(ABC):
    name: str

    @abstractmethod
    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> JobFields | None:
        raise NotImplementedError


class EmbeddedPayloadListing(ListingStrategy):
    name = "embedded_payload"

    def __init__(self, marker: str = DEFAULT_PAYLOAD_MARKER, origin: str = DEFAULT_ORIGIN) -> None:
        self.marker = marker
        self.origin = origin

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> ListingExtraction:
        payload = find_embedded_payload(document, raw_body, self.marker)
        previews, total = listing_from_payload(payload, self.origin)
        return ListingExtraction(previews=previews, total_results=total, strategy=self.name)


class MarkupListing(ListingStrategy):
    name = "markup"

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> ListingExtraction:
        return ListingExtraction(previews=listing_from_markup(document, url), strategy=self.name)


class EmbeddedPayloadDetail(DetailStrategy):
    name = "embedded_payload"

    def __init__(self, marker: str = DEFAULT_PAYLOAD_MARKER, origin: str = DEFAULT_ORIGIN) -> None:
        self.marker = marker
        self.origin = origin

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> JobFields | None:
        return detail_from_payload(find_embedded_payload(document, raw_body, self.marker), self.origin)


class LinkedDataDetail(DetailStrategy):
    name = "linked_data"

    def __init__(self, origin: str = DEFAULT_ORIGIN) -> None:
        self.origin = origin

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> JobFields | None:
        return detail_from_linked_data(document, self.origin)


class MarkupDetail(DetailStrategy):
    name = "markup"

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> JobFields | None:
        return detail_from_markup(document, url)


class ListingExtractor:
    """Runs listing strategies in order and keeps the first one that finds previews."""

    def __init__(
        self,
        strategies: list[ListingStrategy] | None = None,
        marker: str = DEFAULT_PAYLOAD_MARKER,
        origin: str = DEFAULT_ORIGIN,
    ) -> None:
        self.strategies = strategies or [EmbeddedPayloadListing(marker, origin), MarkupListing()]

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> ListingExtraction:
        total: int | None = None
        for strategy in self.strategies:
            try:
                result = strategy.extract(document, raw_body or "", url)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "listing_strategy_failed",
                    extra={"extra_fields": {"url": url, "strategy": strategy.name, "error": str(exc)}},
                )
                continue
            if total is None:
                total = result.total_results
            if result.previews:
                result.total_results = result.total_results if result.total_results is not None else total
                return result
            logger.info("listing_strategy_empty", extra={"extra_fields": {"url": url, "strategy": strategy.name}})
        logger.warning("listing_page_empty", extra={"extra_fields": {"url": url}})
        return ListingExtraction(total_results=total)


class DetailExtractor:
    """Runs every detail strategy; each fills a different slice of the record."""

    def __init__(self, marker: str = DEFAULT_PAYLOAD_MARKER, origin: str = DEFAULT_ORIGIN) -> None:
        self.payload = EmbeddedPayloadDetail(marker, origin)
        self.linked_data = LinkedDataDetail(origin)
        self.markup = MarkupDetail()

    def _run(self, strategy: DetailStrategy, document: BeautifulSoup | None, raw_body: str, url: str) -> JobFields | None:
        try:
            return strategy.extract(document, raw_body or "", url)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "detail_strategy_failed",
                extra={"extra_fields": {"url": url, "strategy": strategy.name, "error": str(exc)}},
            )
            return None

    def extract(self, document: BeautifulSoup | None, raw_body: str, url: str) -> DetailExtraction:
        return DetailExtraction(
            payload=self._run(self.payload, document, raw_body, url),
            linked_data=self._run(self.linked_data, document, raw_body, url),
            markup=self._run(self.markup, document, raw_body, url),
        )
