"""
HTTP fetcher for the content store.

Fetches URLs with httpx, retrying transient failures with tenacity, and
returns CachedResponse objects ready to be stored.
"""

from __future__ import annotations

import asyncio

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from boxcache.config import Settings
from boxcache.exceptions import FetchError
from boxcache.logging import get_logger
from boxcache.retrieval.base import Fetcher
from boxcache.types import CachedResponse

logger = get_logger(__name__)

# Request timeout
REQUEST_TIMEOUT = 30.0

# Max content size to fetch (10MB)
MAX_CONTENT_SIZE = 10 * 1024 * 1024

USER_AGENT = "boxcache/0.1 (+https://pypi.org/project/boxcache/)"

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _is_retryable(exc: BaseException) -> bool:
    """Transport errors, 429 and 5xx responses are worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class ResponseFetcher(Fetcher):
    """Fetches URLs over HTTP for storage in a content-store namespace.

    Features:
    - Lazily created httpx.AsyncClient following redirects
    - Retries with exponential backoff for transient failures
    - Bounded concurrency for batch fetches
    - Batch fetches fail as a unit
    """

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = 2,
        backoff: float = 0.5,
        concurrency: int = 5,
        max_content_bytes: int = MAX_CONTENT_SIZE,
        user_agent: str = USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds.
            max_retries: Retry attempts after the first failure.
            backoff: Multiplier for exponential backoff between retries.
            concurrency: Maximum concurrent requests in fetch_all.
            max_content_bytes: Largest response body accepted.
            user_agent: User-Agent header value.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.concurrency = concurrency
        self.max_content_bytes = max_content_bytes
        self.user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ResponseFetcher:
        """Create a fetcher configured from settings."""
        return cls(
            timeout=settings.FETCH_TIMEOUT,
            max_retries=settings.FETCH_MAX_RETRIES,
            backoff=settings.FETCH_BACKOFF_SECONDS,
            concurrency=settings.FETCH_CONCURRENCY,
            max_content_bytes=settings.MAX_CONTENT_BYTES,
            user_agent=settings.USER_AGENT,
            transport=transport,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Fetch attempt failed, retrying",
            attempt=retry_state.attempt_number,
            error=str(exc),
        )

    async def _get(self, url: str) -> httpx.Response:
        """GET url, retrying transient failures. Raises httpx errors."""
        client = await self._get_client()

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff, max=30),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                response = await client.get(url)
                response.raise_for_status()

        return response

    async def fetch(self, url: str) -> CachedResponse:
        """Fetch a URL.

        Args:
            url: Canonical URL to fetch. The response is keyed by this URL
                even if redirects were followed.

        Returns:
            CachedResponse with body, status and headers.

        Raises:
            FetchError: On a non-2xx response, transport failure or oversized body.
        """
        try:
            response = await self._get(url)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise FetchError(
                f"HTTP {status} fetching {url}",
                context={"url": url, "status_code": status},
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"Failed to fetch {url}",
                context={"url": url, "error": str(e)},
            ) from e

        content = response.content
        if len(content) > self.max_content_bytes:
            raise FetchError(
                f"Content too large: {len(content)} bytes",
                context={"url": url, "limit": self.max_content_bytes},
            )

        logger.debug("Fetched URL", url=url, status=response.status_code, size=len(content))

        return CachedResponse(
            url=url,
            status_code=response.status_code,
            content=content,
            headers=dict(response.headers),
            content_type=response.headers.get("content-type", DEFAULT_CONTENT_TYPE),
        )

    async def fetch_all(self, urls: list[str]) -> list[CachedResponse]:
        """Fetch multiple URLs concurrently.

        Args:
            urls: URLs to fetch.

        Returns:
            Responses in input order.

        Raises:
            FetchError: If any URL failed; no partial result is returned.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch_with_semaphore(url: str) -> CachedResponse:
            async with semaphore:
                return await self.fetch(url)

        results = await asyncio.gather(
            *[fetch_with_semaphore(url) for url in urls],
            return_exceptions=True,
        )

        failed = [
            (url, result)
            for url, result in zip(urls, results)
            if isinstance(result, BaseException)
        ]
        if failed:
            raise FetchError(
                f"{len(failed)} of {len(urls)} fetches failed",
                context={"failed": [url for url, _ in failed]},
            ) from failed[0][1]

        return list(results)
