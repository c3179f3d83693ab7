"""In-memory record store keyed by analysis id."""

from __future__ import annotations

from collections import defaultdict

from geocrawl.crawler.models import CrawlOutcome
from geocrawl.services.models import BatchAnalysisResult, GeneratedVariation


class InMemoryRecordStore:
    """Keeps crawl and analysis records for the lifetime of the process.

    Implements RecordStoreProtocol. Nothing survives a restart.

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.save_page_crawl("analysis-1", outcome)
        >>> store.page_crawls["analysis-1"]
        [CrawlOutcome(...)]
    """

    def __init__(self) -> None:
        self.page_crawls: dict[str, list[CrawlOutcome]] = defaultdict(list)
        self.variations: dict[str, tuple[str, list[GeneratedVariation]]] = {}
        self.analyses: dict[str, BatchAnalysisResult] = {}

    async def save_page_crawl(self, analysis_id: str, outcome: CrawlOutcome) -> None:
        self.page_crawls[analysis_id].append(outcome)

    async def save_variations(
        self,
        analysis_id: str,
        base_query: str,
        variations: list[GeneratedVariation],
    ) -> None:
        self.variations[analysis_id] = (base_query, list(variations))

    async def save_analysis(self, result: BatchAnalysisResult) -> None:
        self.analyses[result.analysis_id] = result
