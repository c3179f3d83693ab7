"""Single-page fetch worker with failure classification."""

from __future__ import annotations

import logging

import httpx

from geocrawl.core.config import DEFAULT_USER_AGENT
from geocrawl.core.errors import ValidationError
from geocrawl.core.url_validation import UrlValidator
from geocrawl.crawler.models import (
    FetchFailure,
    FetchFailureKind,
    FetchResult,
    FetchSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT_BYTES = 5 * 1024 * 1024
MAX_REDIRECTS = 5


class PageFetcher:
    """Fetches one page and classifies what went wrong.

    ``fetch`` never raises; every call returns either FetchSuccess or
    FetchFailure.

    Args:
        client: Shared HTTP client, owned by the caller
        user_agent: Identifying User-Agent header
        timeout: Timeout in seconds for each request
        max_content_bytes: Largest accepted response body
        validator: URL validator; defaults to one that blocks private hosts
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES,
        validator: UrlValidator | None = None,
    ) -> None:
        self._client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_content_bytes = max_content_bytes
        self.validator = validator or UrlValidator()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a page.

        Args:
            url: Absolute http(s) URL. Redirects are followed up to
                MAX_REDIRECTS hops and every hop is validated like ``url``.

        Returns:
            FetchSuccess with decoded content, or FetchFailure classified as
            timeout, http_status, network, malformed_url or too_large
        """
        try:
            self.validator.validate(url)
        except ValidationError as exc:
            return FetchFailure(url, FetchFailureKind.MALFORMED_URL, str(exc))

        try:
            return await self._fetch(url)
        except httpx.TimeoutException:
            return FetchFailure(
                url,
                FetchFailureKind.TIMEOUT,
                f"Timed out after {self.timeout:g}s",
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            return FetchFailure(url, FetchFailureKind.MALFORMED_URL, str(exc))
        except httpx.HTTPError as exc:
            return FetchFailure(
                url,
                FetchFailureKind.NETWORK,
                f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error fetching %s: %r", url, exc)
            return FetchFailure(url, FetchFailureKind.NETWORK, str(exc) or repr(exc))

    async def _fetch(self, url: str) -> FetchResult:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html",
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
        }
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            async with self._client.stream(
                "GET",
                current,
                headers=headers,
                timeout=self.timeout,
                follow_redirects=False,
            ) as response:
                if response.next_request is None:
                    return await self._read(url, response)
                current = str(response.next_request.url)

            # every hop goes through the same host checks as the first URL
            try:
                self.validator.validate(current)
            except ValidationError as exc:
                logger.warning("Blocked redirect from %s to %s", url, current)
                return FetchFailure(
                    url, FetchFailureKind.MALFORMED_URL, f"Redirect blocked: {exc}"
                )

        return FetchFailure(
            url, FetchFailureKind.NETWORK, f"Exceeded {MAX_REDIRECTS} redirects"
        )

    async def _read(self, url: str, response: httpx.Response) -> FetchResult:
        if not response.is_success:
            return FetchFailure(
                url,
                FetchFailureKind.HTTP_STATUS,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_content_bytes:
            return self._too_large(url, response.status_code)

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > self.max_content_bytes:
                return self._too_large(url, response.status_code)

        encoding = response.encoding or "utf-8"
        return FetchSuccess(
            url=url,
            content=bytes(body).decode(encoding, errors="replace"),
            status_code=response.status_code,
            final_url=str(response.url),
            content_type=response.headers.get("content-type"),
        )

    def _too_large(self, url: str, status_code: int) -> FetchFailure:
        limit_mb = self.max_content_bytes / (1024 * 1024)
        return FetchFailure(
            url,
            FetchFailureKind.TOO_LARGE,
            f"Content too large (>{limit_mb:g}MB)",
            status_code=status_code,
        )
