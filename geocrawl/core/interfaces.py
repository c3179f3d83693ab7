"""Core protocol definitions for geocrawl collaborators.

The record store, the analysis engines and the variation generator live
outside the pipeline. These protocols are what the coordinators depend on,
so tests and callers can substitute their own implementations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from geocrawl.crawler.models import CrawlOutcome
    from geocrawl.services.models import (
        BatchAnalysisResult,
        EngineResponse,
        GeneratedVariation,
        VariationGenerationResult,
        VisibilityTarget,
    )
    from geocrawl.services.variations import VariationRequest


class RecordStoreProtocol(Protocol):
    """Protocol for persisting batch results keyed by analysis id.

    Methods required:
    - save_page_crawl: Store the terminal outcome of one crawled URL
    - save_variations: Register the variation set of an analysis batch
    - save_analysis: Store the terminal result of an analysis batch
    """

    async def save_page_crawl(self, analysis_id: str, outcome: CrawlOutcome) -> None:
        ...

    async def save_variations(
        self,
        analysis_id: str,
        base_query: str,
        variations: list[GeneratedVariation],
    ) -> None:
        ...

    async def save_analysis(self, result: BatchAnalysisResult) -> None:
        ...


class AnalysisEngineProtocol(Protocol):
    """Protocol for one downstream LLM analysis engine.

    Attributes:
        name: Engine name reported in progress and results
    """

    name: str

    async def analyze(
        self, query: str, target: VisibilityTarget | None = None
    ) -> EngineResponse:
        """Analyze a query.

        ``target`` carries the own domain, brand and competitors the answer
        is judged against; engines may ignore it.

        Returns:
            EngineResponse; implementations may also raise, which the
            orchestrator records as a failure for this engine
        """
        ...


class VariationGeneratorProtocol(Protocol):
    """Protocol for generating query variations from a base query."""

    async def generate(self, request: VariationRequest) -> VariationGenerationResult:
        ...
