from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from jobharvest.collectors.fetcher import MAX_BACKOFF_SECONDS, Fetcher, FetchError, FetchResult, HttpFetcher
from jobharvest.core.models import CrawlRequest, JobPreview, JobRecord, PageKind
from jobharvest.core.retry import RetryPolicy
from jobharvest.core.state import CrawlState
from jobharvest.core.urls import (
    build_search_url,
    classify_url,
    current_page,
    next_listing_url,
    start_url_or_default,
)
from jobharvest.extract.strategies import DetailExtraction, DetailExtractor, ListingExtraction, ListingExtractor
from jobharvest.reconcile.service import RecordReconciler
from jobharvest.storage.repository import RecordRepository, RecordSink
from jobharvest.utils.config import HarvestConfig
from jobharvest.utils.throttle import HumanDelay

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HarvestRun:
    state: CrawlState
    fetcher: Fetcher
    listing_slots: asyncio.Semaphore
    detail_slots: asyncio.Semaphore
    queue: asyncio.Queue[CrawlRequest] = field(default_factory=asyncio.Queue)
    run_id: int | None = None


class HarvestOrchestrator:
    def __init__(
        self,
        config: HarvestConfig,
        repository: RecordSink | None = None,
        fetcher: Fetcher | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.repository = repository or RecordRepository(config.db_path)
        self.fetcher = fetcher
        self.sleep = sleep
        self.listing_extractor = ListingExtractor(marker=config.site.payload_marker, origin=config.site.origin)
        self.detail_extractor = DetailExtractor(marker=config.site.payload_marker, origin=config.site.origin)
        self.reconciler = RecordReconciler()
        self.retry_policy = RetryPolicy(
            max_attempts=config.retry_max_attempts,
            base_delay_seconds=config.retry_base_delay_seconds,
        )
        # Bounds one whole fetch call, including the adapter's own retries, backoff waits and delays.
        backoff = sum(
            min(MAX_BACKOFF_SECONDS, config.retry_base_delay_seconds * 2**n)
            for n in range(config.retry_max_attempts - 1)
        )
        self.fetch_deadline = (
            config.request_timeout_seconds * config.retry_max_attempts + backoff + 2 * config.delay_max_seconds
        )

    def initial_urls(self) -> list[str]:
        if self.config.start_urls:
            return list(self.config.start_urls)
        return [
            build_search_url(
                keyword=self.config.keyword,
                location=self.config.location,
                posted_date_filter=self.config.posted_date_filter,
                category=self.config.category,
                origin=self.config.site.origin,
                listing_path=self.config.site.listing_path,
            )
        ]

    def _default_fetcher(self) -> Fetcher:
        return HttpFetcher(
            timeout_seconds=self.config.request_timeout_seconds,
            max_retries=self.config.retry_max_attempts - 1,
            backoff_seconds=self.config.retry_base_delay_seconds,
            delay=HumanDelay(self.config.delay_min_seconds, self.config.delay_max_seconds),
        )

    def run(self) -> dict[str, int]:
        return asyncio.run(self.run_async())

    async def run_async(self) -> dict[str, int]:
        started = datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat()
        run_id = self.repository.create_run(started) if isinstance(self.repository, RecordRepository) else None
        fetcher = self.fetcher or self._default_fetcher()
        run = HarvestRun(
            state=CrawlState(self.config.results_wanted, self.config.dedupe),
            fetcher=fetcher,
            listing_slots=asyncio.Semaphore(self.config.max_concurrency),
            detail_slots=asyncio.Semaphore(self.config.detail_concurrency),
            run_id=run_id,
        )
        urls = self.initial_urls()
        logger.info(
            "run_started",
            extra={
                "extra_fields": {
                    "start_urls": urls,
                    "target": self.config.results_wanted,
                    "max_pages": self.config.max_pages,
                    "collect_details": self.config.collect_details,
                }
            },
        )
        await self._seed(run, urls)

        workers = [
            asyncio.create_task(self._worker(run))
            for _ in range(self.config.max_concurrency + self.config.detail_concurrency)
        ]
        try:
            await run.queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if self.fetcher is None:
                await fetcher.aclose()

        counts = run.state.summary()
        if run_id is not None and isinstance(self.repository, RecordRepository):
            finished = datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat()
            self.repository.finish_run(run_id, finished, counts)
        logger.info("run_completed", extra={"extra_fields": counts})
        if counts["saved"] == 0:
            logger.error(
                "run_saved_nothing",
                extra={"extra_fields": {"hint": "check selectors, blocking or a changed page template"}},
            )
        return counts

    async def _seed(self, run: HarvestRun, urls: list[str]) -> None:
        for raw_url in urls:
            url = start_url_or_default(raw_url, self.config.site.origin, self.config.site.listing_path)
            if classify_url(url) is PageKind.DETAIL:
                preview = JobPreview(job_url=url)
                if self.config.collect_details and await run.state.reserve_detail(preview):
                    run.queue.put_nowait(CrawlRequest(url=url, kind=PageKind.DETAIL, preview=preview))
                continue
            if await run.state.mark_listing(url):
                run.queue.put_nowait(CrawlRequest(url=url, kind=PageKind.LISTING))

    async def _worker(self, run: HarvestRun) -> None:
        while True:
            request = await run.queue.get()
            try:
                if request.kind is PageKind.LISTING:
                    await self._handle_listing(run, request)
                else:
                    await self._handle_detail(run, request)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "request_failed",
                    extra={"extra_fields": {"url": request.url, "kind": request.kind.value}},
                )
                if request.kind is PageKind.DETAIL:
                    await run.state.release_detail(request.url)
                self._record_error(run, request.url, request.kind, str(exc))
            finally:
                run.queue.task_done()

    def _record_error(self, run: HarvestRun, url: str, kind: PageKind, reason: str) -> None:
        if run.run_id is None or not isinstance(self.repository, RecordRepository):
            return
        try:
            self.repository.add_run_error(run.run_id, url, kind.value, reason)
        except Exception:  # noqa: BLE001
            logger.exception("run_error_not_recorded", extra={"extra_fields": {"url": url}})

    async def _fetch(self, run: HarvestRun, request: CrawlRequest, attempt: int = 1) -> FetchResult | None:
        slots = run.listing_slots if request.kind is PageKind.LISTING else run.detail_slots
        async with slots:
            try:
                return await asyncio.wait_for(
                    run.fetcher.fetch(request.url, referer=request.referer),
                    timeout=self.fetch_deadline,
                )
            except (FetchError, asyncio.TimeoutError) as exc:
                reason = str(exc) or "timeout"
                logger.error(
                    "fetch_failed",
                    extra={
                        "extra_fields": {
                            "url": request.url,
                            "kind": request.kind.value,
                            "attempt": attempt,
                            "reason": reason,
                        }
                    },
                )
                self._record_error(run, request.url, request.kind, reason)
                return None

    async def _handle_listing(self, run: HarvestRun, request: CrawlRequest) -> None:
        result = await self._fetch(run, request)
        if result is None:
            await run.state.record_failure()
            return
        extraction = self.listing_extractor.extract(result.document, result.raw_body, request.url)
        await run.state.record_listing(len(extraction.previews))
        logger.info(
            "listing_page",
            extra={
                "extra_fields": {
                    "url": request.url,
                    "page": request.page_number,
                    "previews": len(extraction.previews),
                    "strategy": extraction.strategy,
                    "saved": run.state.saved_count,
                    "pending": len(run.state.pending_detail_urls),
                    "target": run.state.target,
                }
            },
        )

        for preview in extraction.previews:
            if self.config.collect_details:
                if run.state.reserved >= run.state.target:
                    break
                if await run.state.reserve_detail(preview):
                    run.queue.put_nowait(
                        CrawlRequest(url=preview.job_url, kind=PageKind.DETAIL, preview=preview, referer=request.url)
                    )
            else:
                if run.state.target_met:
                    break
                record = self.reconciler.from_preview(preview)
                if record is None:
                    await run.state.record_dropped()
                    continue
                if not await run.state.reserve_detail(preview):
                    continue
                try:
                    await self._persist(run, preview.job_url, record)
                except Exception as exc:  # noqa: BLE001
                    logger.exception("record_store_failed", extra={"extra_fields": {"url": preview.job_url}})
                    await run.state.release_detail(preview.job_url)
                    self._record_error(run, preview.job_url, PageKind.DETAIL, str(exc))

        next_url = await self._next_listing(run, request, extraction)
        if next_url:
            run.queue.put_nowait(
                CrawlRequest(
                    url=next_url,
                    kind=PageKind.LISTING,
                    page_number=request.page_number + 1,
                    referer=request.url,
                )
            )

    async def _next_listing(self, run: HarvestRun, request: CrawlRequest, extraction: ListingExtraction) -> str | None:
        state = run.state
        reason = None
        if self.config.collect_details and state.reserved >= state.target:
            reason = "target_reserved"
        elif state.target_met:
            reason = "target_met"
        elif request.page_number >= self.config.max_pages:
            reason = "max_pages"
        elif not extraction.previews:
            reason = "empty_page"
        elif (
            extraction.total_results is not None
            and current_page(request.url) * max(state.page_size, 1) >= extraction.total_results
        ):
            reason = "source_exhausted"

        if reason is None:
            next_url = next_listing_url(request.url)
            if await state.mark_listing(next_url):
                logger.info("listing_enqueued", extra={"extra_fields": {"url": next_url, "page": request.page_number + 1}})
                return next_url
            reason = "already_visited"
        logger.info(
            "listing_stop",
            extra={"extra_fields": {"url": request.url, "page": request.page_number, "reason": reason}},
        )
        return None

    async def _handle_detail(self, run: HarvestRun, request: CrawlRequest) -> None:
        if await run.state.discard_detail(request.url):
            logger.info("detail_skipped_target_met", extra={"extra_fields": {"url": request.url}})
            return

        attempt = 1
        extraction: DetailExtraction | None = None
        while True:
            result = await self._fetch(run, request, attempt)
            if result is None:
                if extraction is None:
                    await run.state.release_detail(request.url)
                    return
                # A retry failed; keep what the earlier attempt found.
                logger.warning(
                    "detail_forced_accept",
                    extra={"extra_fields": {"url": request.url, "attempt": attempt, "reason": "retry_fetch_failed"}},
                )
                break
            extraction = self.detail_extractor.extract(result.document, result.raw_body, request.url)
            if not extraction.needs_retry:
                break
            if not self.retry_policy.should_retry(attempt):
                logger.warning(
                    "detail_forced_accept",
                    extra={"extra_fields": {"url": request.url, "attempt": attempt}},
                )
                break
            delay = self.retry_policy.delay_for(attempt)
            logger.info(
                "detail_retry",
                extra={"extra_fields": {"url": request.url, "attempt": attempt, "delay": delay}},
            )
            await self.sleep(delay)
            attempt += 1

        await self._finish_detail(run, request, extraction)

    async def _finish_detail(self, run: HarvestRun, request: CrawlRequest, extraction: DetailExtraction) -> None:
        record = self.reconciler.reconcile(request.url, extraction, request.preview)
        if record is None:
            await run.state.release_detail(request.url, failed=False)
            return
        if await run.state.discard_detail(request.url):
            logger.info("detail_discarded_target_met", extra={"extra_fields": {"url": request.url}})
            return
        await self._persist(run, request.url, record)

    async def _persist(self, run: HarvestRun, url: str, record: JobRecord) -> None:
        """Store a record, then count it; a failed store leaves the count untouched."""
        await asyncio.to_thread(self.repository.append, record)
        await run.state.complete_detail(url)
        logger.info(
            "record_saved",
            extra={
                "extra_fields": {
                    "saved": run.state.saved_count,
                    "title": record.title,
                    "url": record.job_url,
                    "data_source": record.data_source.value,
                }
            },
        )
