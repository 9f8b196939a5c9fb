from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx
from bs4 import BeautifulSoup
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from jobharvest.utils.throttle import HumanDelay

logger = logging.getLogger(__name__)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:127.0) Gecko/20100101 Firefox/127.0",
]
ACCEPT_LANGUAGES = ["fr-FR,fr;q=0.9,en;q=0.8", "fr-FR,fr;q=0.8,en-US;q=0.6", "en-GB,en;q=0.9,fr;q=0.7"]
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_BACKOFF_SECONDS = 16.0


class FetchError(RuntimeError):
    def __init__(self, url: str, reason: str, status: int | None = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status


class _RetryableStatus(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


@dataclass(slots=True)
class FetchResult:
    url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    document: BeautifulSoup | None = None
    raw_body: str = ""


class Fetcher(ABC):
    @abstractmethod
    async def fetch(self, url: str, referer: str | None = None, headers: dict[str, str] | None = None) -> FetchResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class HttpFetcher(Fetcher):
    def __init__(
        self,
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        delay: HumanDelay | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self.delay = delay or HumanDelay(0.0, 0.0)
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)

    @staticmethod
    def _headers(referer: str | None, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {
            "User-Agent": random.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": random.choice(ACCEPT_LANGUAGES),
        }
        if referer:
            headers["Referer"] = referer
        if extra:
            headers.update(extra)
        return headers

    async def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        retrying = AsyncRetrying(
            wait=wait_exponential(multiplier=self.backoff_seconds, max=MAX_BACKOFF_SECONDS),
            stop=stop_after_attempt(self.max_retries + 1),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info("fetch_retry", extra={"extra_fields": {"url": url, "attempt": number}})
                response = await self.client.get(url, headers=headers)
                if response.status_code in RETRYABLE_STATUS:
                    raise _RetryableStatus(response.status_code)
                return response
        raise FetchError(url, "retries exhausted")

    async def fetch(self, url: str, referer: str | None = None, headers: dict[str, str] | None = None) -> FetchResult:
        await self.delay.wait()
        try:
            response = await self._get(url, self._headers(referer, headers))
        except _RetryableStatus as exc:
            raise FetchError(url, str(exc), exc.status) from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, str(exc) or type(exc).__name__) from exc
        finally:
            await self.delay.wait()

        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)
        body = response.text or ""
        return FetchResult(
            url=str(response.url),
            status=response.status_code,
            headers=dict(response.headers),
            document=BeautifulSoup(body, "html.parser"),
            raw_body=body,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
