from __future__ import annotations

import asyncio
import logging

from jobharvest.core.models import JobPreview
from jobharvest.dedupe.service import DedupeService
from jobharvest.utils.text import canonicalize_url

logger = logging.getLogger(__name__)


class CrawlState:
    """Run-scoped counters and seen-sets.

    Every check-then-update sequence runs under one lock so concurrent workers
    cannot both pass a capacity or dedupe check before either records its claim.
    """

    def __init__(self, target: int, dedupe: bool = True) -> None:
        self.target = max(1, target)
        self.dedupe = dedupe
        self.saved_count = 0
        self.seen_keys: set[str] = set()
        self.seen_listing_urls: set[str] = set()
        self.pending_detail_urls: set[str] = set()
        self.listing_pages = 0
        self.page_size = 0
        self.found = 0
        self.failed = 0
        self.dropped = 0
        self.duplicates = 0
        self.discarded = 0
        self._lock = asyncio.Lock()

    @property
    def target_met(self) -> bool:
        return self.saved_count >= self.target

    @property
    def reserved(self) -> int:
        return self.saved_count + len(self.pending_detail_urls)

    async def mark_listing(self, url: str) -> bool:
        """Claim a listing URL; False when it was already visited or queued."""
        key = canonicalize_url(url)
        async with self._lock:
            if key in self.seen_listing_urls:
                return False
            self.seen_listing_urls.add(key)
            return True

    async def record_listing(self, previews: int) -> None:
        async with self._lock:
            self.listing_pages += 1
            self.found += previews
            self.page_size = max(self.page_size, previews)

    async def record_failure(self) -> None:
        async with self._lock:
            self.failed += 1

    def _is_duplicate(self, keys: list[str]) -> bool:
        if self.dedupe and any(key in self.seen_keys for key in keys):
            self.duplicates += 1
            return True
        return False

    async def reserve_detail(self, preview: JobPreview) -> bool:
        """Claim a detail fetch if it is new and saved + in-flight work is under target."""
        keys = DedupeService.keys_for(preview)
        url = canonicalize_url(preview.job_url)
        async with self._lock:
            if self._is_duplicate(keys):
                return False
            if self.reserved >= self.target or url in self.pending_detail_urls:
                return False
            self.seen_keys.update(keys)
            self.pending_detail_urls.add(url)
            return True

    async def complete_detail(self, url: str) -> None:
        """Count a record once it is stored; the count never goes down."""
        key = canonicalize_url(url)
        async with self._lock:
            self.pending_detail_urls.discard(key)
            self.saved_count += 1

    async def discard_detail(self, url: str) -> bool:
        """Drop a pending URL whose record arrived after the target was met."""
        key = canonicalize_url(url)
        async with self._lock:
            if not self.target_met:
                return False
            self.pending_detail_urls.discard(key)
            self.discarded += 1
            return True

    async def release_detail(self, url: str, failed: bool = True) -> None:
        key = canonicalize_url(url)
        async with self._lock:
            self.pending_detail_urls.discard(key)
            if failed:
                self.failed += 1
            else:
                self.dropped += 1

    async def record_dropped(self) -> None:
        async with self._lock:
            self.dropped += 1

    def summary(self) -> dict[str, int]:
        return {
            "found": self.found,
            "saved": self.saved_count,
            "failed": self.failed,
            "dropped": self.dropped,
            "duplicates": self.duplicates,
            "discarded": self.discarded,
            "listing_pages": self.listing_pages,
        }
