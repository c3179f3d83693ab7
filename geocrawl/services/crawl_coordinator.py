"""Batch crawl coordinator: robots.txt checks, bounded fetching, progress.

A batch moves through four stages::

    extracting -> checking_robots -> crawling -> completed

URLs disallowed by robots.txt are recorded as skipped. Allowed URLs are put
on an indexed task queue drained by a fixed number of workers, so at most
``max_concurrent`` pages are fetched at once regardless of batch size. Each
outcome is written to the slot matching its input position, which keeps the
result order equal to the input order whatever the completion order.

After a variation analysis, crawl_cited_pages feeds the URLs the engines
cited through the same pipeline and separates own pages from competitors.

Example:
    >>> async with httpx.AsyncClient() as client:
    ...     coordinator = BatchCrawlCoordinator.from_settings(client, Settings())
    ...     result = await coordinator.crawl_batch(
    ...         ["https://example.com/a", "https://example.com/b"],
    ...         analysis_id="analysis-1",
    ...     )
    >>> [outcome.status.value for outcome in result.outcomes]
    ['fetched', 'skipped']
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable, Sequence

import httpx

from geocrawl.core.config import Settings
from geocrawl.core.errors import InternalError, ValidationError
from geocrawl.core.interfaces import RecordStoreProtocol
from geocrawl.core.progress import CrawlProgress, CrawlProgressReporter, CrawlStage
from geocrawl.core.url_validation import UrlValidator, is_same_site, normalize_domain
from geocrawl.crawler.fetcher import PageFetcher
from geocrawl.crawler.models import (
    CrawlOutcome,
    CrawlOutcomeStatus,
    CrawlSummary,
    FetchFailure,
    FetchFailureKind,
    PageContent,
    PolicyDecision,
)
from geocrawl.crawler.page_parser import parse_page
from geocrawl.crawler.robots import RobotsPolicyChecker
from geocrawl.services.models import (
    CitedPagesResult,
    CrawlBatchResult,
    QueryAnalysisResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 3
DEFAULT_MAX_BATCH_SIZE = 10
DEFAULT_MAX_CITED_PAGES = 30


class BatchCrawlCoordinator:
    """Crawls a batch of 1-10 URLs for one analysis.

    Args:
        policy_checker: robots.txt checker
        fetcher: Page fetch worker
        store: Optional record store receiving every outcome
        max_concurrent: Worker pool size for the crawling stage
        max_batch_size: Largest accepted batch
        html_snippet_chars: Characters of raw HTML kept on fetched outcomes
        max_cited_pages: Most cited pages crawled by crawl_cited_pages
    """

    def __init__(
        self,
        policy_checker: RobotsPolicyChecker,
        fetcher: PageFetcher,
        store: RecordStoreProtocol | None = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        html_snippet_chars: int = 50_000,
        max_cited_pages: int = DEFAULT_MAX_CITED_PAGES,
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")
        self.policy_checker = policy_checker
        self.fetcher = fetcher
        self.store = store
        self.max_concurrent = max_concurrent
        self.max_batch_size = max_batch_size
        self.html_snippet_chars = html_snippet_chars
        self.max_cited_pages = max_cited_pages

    @classmethod
    def from_settings(
        cls,
        client: httpx.AsyncClient,
        settings: Settings,
        store: RecordStoreProtocol | None = None,
    ) -> BatchCrawlCoordinator:
        """Build a coordinator whose collaborators share ``client``."""
        validator = UrlValidator(settings.allow_private_hosts)
        return cls(
            policy_checker=RobotsPolicyChecker(
                client,
                user_agent=settings.user_agent,
                timeout=settings.robots_timeout,
                validator=validator,
            ),
            fetcher=PageFetcher(
                client,
                user_agent=settings.user_agent,
                timeout=settings.fetch_timeout,
                max_content_bytes=settings.max_content_bytes,
                validator=validator,
            ),
            store=store,
            max_concurrent=settings.max_concurrent_fetches,
            max_batch_size=settings.max_batch_size,
            html_snippet_chars=settings.html_snippet_chars,
            max_cited_pages=settings.max_cited_pages,
        )

    async def crawl_batch(
        self,
        urls: Sequence[str],
        analysis_id: str,
        on_progress: Callable[[CrawlProgress], None] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> CrawlBatchResult:
        """Check robots.txt for and crawl every URL of a batch.

        Args:
            urls: 1 to ``max_batch_size`` URLs
            analysis_id: Analysis the batch belongs to
            on_progress: Called with every progress snapshot
            cancel_event: When set, no further fetch is started; in-flight
                fetches finish and unstarted URLs are recorded as cancelled

        Returns:
            CrawlBatchResult with exactly one outcome per input URL, in input
            order

        Raises:
            ValidationError: If the batch is empty, too large, contains
                non-string entries, or analysis_id is missing. Raised before
                any network call.
            InternalError: If orchestration itself fails
        """
        self._validate(urls, analysis_id)

        try:
            return await self._run(list(urls), analysis_id, on_progress, cancel_event)
        except InternalError:
            logger.exception("Crawl batch %s failed", analysis_id)
            raise
        except Exception as exc:
            logger.exception("Crawl batch %s failed", analysis_id)
            raise InternalError(f"Crawl batch {analysis_id} failed: {exc}") from exc

    async def crawl_cited_pages(
        self,
        results: Iterable[QueryAnalysisResult],
        analysis_id: str,
        my_domain: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> CitedPagesResult:
        """Crawl the pages engines cited and split them by ownership.

        Cited URLs are deduplicated in citation order and capped at
        ``max_cited_pages``. They are crawled in consecutive batches of at
        most ``max_batch_size`` URLs; each batch starts once the previous one
        finished.

        Args:
            results: Per-query results of a variation analysis
            analysis_id: Analysis the crawl records belong to
            my_domain: Own domain; its pages and subdomain pages go to
                my_pages
            cancel_event: When set, no further batch or fetch is started

        Returns:
            CitedPagesResult over every page that was crawled

        Raises:
            ValidationError: If analysis_id is missing
            InternalError: If orchestration itself fails
        """
        if not isinstance(analysis_id, str) or not analysis_id.strip():
            raise ValidationError("analysisId is required")
        urls = extract_cited_urls(results)[: self.max_cited_pages]
        logger.info("Crawling %d cited pages for %s", len(urls), analysis_id)

        outcomes: list[CrawlOutcome] = []
        cancelled = False
        for start in range(0, len(urls), self.max_batch_size):
            if _cancelled(cancel_event):
                cancelled = True
                break
            batch = await self.crawl_batch(
                urls[start : start + self.max_batch_size],
                analysis_id,
                cancel_event=cancel_event,
            )
            outcomes.extend(
                dataclasses.replace(outcome, index=start + outcome.index)
                for outcome in batch.outcomes
            )
            cancelled = cancelled or batch.cancelled

        my_pages, competitor_pages = categorize_outcomes(outcomes, my_domain)
        return CitedPagesResult(
            my_pages=my_pages,
            competitor_pages=competitor_pages,
            summary=summarize_outcomes(outcomes),
            cancelled=cancelled,
        )

    def _validate(self, urls: Sequence[str], analysis_id: str) -> None:
        if isinstance(urls, str) or not isinstance(urls, Sequence) or not urls:
            raise ValidationError("urls array is required")
        if len(urls) > self.max_batch_size:
            raise ValidationError(f"Maximum {self.max_batch_size} URLs per request")
        if any(not isinstance(url, str) or not url.strip() for url in urls):
            raise ValidationError("urls must be non-empty strings")
        if not isinstance(analysis_id, str) or not analysis_id.strip():
            raise ValidationError("analysisId is required")

    async def _run(
        self,
        urls: list[str],
        analysis_id: str,
        on_progress: Callable[[CrawlProgress], None] | None,
        cancel_event: asyncio.Event | None,
    ) -> CrawlBatchResult:
        total = len(urls)
        reporter = CrawlProgressReporter(
            total=total, listeners=[on_progress] if on_progress else ()
        )
        logger.info("Crawl batch %s started with %d URLs", analysis_id, total)

        reporter.update(CrawlStage.EXTRACTING, 0)
        targets = [url.strip() for url in urls]

        reporter.update(CrawlStage.CHECKING_ROBOTS, 0)
        decisions = await self.policy_checker.check_policy_batch(targets)
        for checked in range(1, total + 1):
            reporter.update(CrawlStage.CHECKING_ROBOTS, checked)

        slots: list[CrawlOutcome | None] = [None] * total
        finished = 0

        async def _finish(outcome: CrawlOutcome) -> None:
            nonlocal finished
            await self._save(analysis_id, outcome)
            slots[outcome.index] = outcome
            finished += 1
            reporter.update(CrawlStage.CRAWLING, finished)

        reporter.update(CrawlStage.CRAWLING, 0)
        tasks: asyncio.Queue[tuple[int, str]] = asyncio.Queue()
        for index, url in enumerate(targets):
            decision = decisions[url]
            if decision.allowed:
                tasks.put_nowait((index, url))
            else:
                logger.info("Skipping %s: %s", url, decision.reason)
                await _finish(
                    CrawlOutcome(
                        url=url,
                        index=index,
                        status=CrawlOutcomeStatus.SKIPPED,
                        policy=decision,
                    )
                )

        async def _worker() -> None:
            while not _cancelled(cancel_event):
                try:
                    index, url = tasks.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await _finish(await self._crawl_unit(index, url, decisions[url]))

        workers = min(self.max_concurrent, tasks.qsize())
        await asyncio.gather(*(_worker() for _ in range(workers)))

        cancelled = not tasks.empty()
        while not tasks.empty():
            index, url = tasks.get_nowait()
            await _finish(
                CrawlOutcome(
                    url=url,
                    index=index,
                    status=CrawlOutcomeStatus.FAILED,
                    policy=decisions[url],
                    failure=FetchFailure(
                        url, FetchFailureKind.CANCELLED, "Cancelled before fetch"
                    ),
                )
            )

        reporter.update(CrawlStage.COMPLETED, total)

        outcomes = [outcome for outcome in slots if outcome is not None]
        if len(outcomes) != total:
            raise InternalError(f"{total - len(outcomes)} URLs have no outcome")

        summary = summarize_outcomes(outcomes)
        logger.info(
            "Crawl batch %s completed: %d fetched, %d skipped, %d failed%s",
            analysis_id,
            summary.fetched,
            summary.skipped,
            summary.failed,
            " (cancelled)" if cancelled else "",
        )
        return CrawlBatchResult(
            analysis_id=analysis_id,
            outcomes=outcomes,
            summary=summary,
            progress=list(reporter.snapshots),
            cancelled=cancelled,
        )

    async def _crawl_unit(
        self, index: int, url: str, decision: PolicyDecision
    ) -> CrawlOutcome:
        result = await self.fetcher.fetch(url)
        if isinstance(result, FetchFailure):
            logger.warning(
                "Fetch failed for %s (%s): %s", url, result.kind.value, result.message
            )
            return CrawlOutcome(
                url=url,
                index=index,
                status=CrawlOutcomeStatus.FAILED,
                policy=decision,
                status_code=result.status_code,
                failure=result,
            )

        return CrawlOutcome(
            url=url,
            index=index,
            status=CrawlOutcomeStatus.FETCHED,
            policy=decision,
            status_code=result.status_code,
            page=self._parse(url, result.content),
            html=result.content[: self.html_snippet_chars],
        )

    def _parse(self, url: str, html: str) -> PageContent | None:
        try:
            return parse_page(html)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not parse HTML from %s: %s", url, exc)
            return None

    async def _save(self, analysis_id: str, outcome: CrawlOutcome) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_page_crawl(analysis_id, outcome)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not store crawl record for %s: %s", outcome.url, exc)


def _cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def summarize_outcomes(outcomes: Sequence[CrawlOutcome]) -> CrawlSummary:
    """Count outcomes by status.

    Returns:
        CrawlSummary; success_rate is the fetched share as a whole percentage
    """
    total = len(outcomes)
    fetched = sum(1 for o in outcomes if o.status is CrawlOutcomeStatus.FETCHED)
    skipped = sum(1 for o in outcomes if o.status is CrawlOutcomeStatus.SKIPPED)
    failed = sum(1 for o in outcomes if o.status is CrawlOutcomeStatus.FAILED)
    return CrawlSummary(
        total=total,
        fetched=fetched,
        failed=failed,
        skipped=skipped,
        success_rate=round(fetched / total * 100) if total else 0,
    )


def categorize_outcomes(
    outcomes: Sequence[CrawlOutcome], my_domain: str | None
) -> tuple[list[CrawlOutcome], list[CrawlOutcome]]:
    """Split outcomes into own-domain pages and competitor pages.

    Subdomains of ``my_domain`` count as own pages. Without a domain every
    page is a competitor page.

    Returns:
        (my_pages, competitor_pages)
    """
    domain = normalize_domain(my_domain)
    if not domain:
        return [], list(outcomes)

    mine: list[CrawlOutcome] = []
    competitors: list[CrawlOutcome] = []
    for outcome in outcomes:
        if is_same_site(outcome.url, domain):
            mine.append(outcome)
        else:
            competitors.append(outcome)
    return mine, competitors


def extract_cited_urls(results: Iterable[QueryAnalysisResult]) -> list[str]:
    """Collect URLs cited by successful engine answers, deduplicated.

    URLs keep the order in which they were first cited.
    """
    urls: dict[str, None] = {}
    for result in results:
        for outcome in result.outcomes:
            if not outcome.success:
                continue
            for url in outcome.citations:
                if url:
                    urls.setdefault(url, None)
    return list(urls)
