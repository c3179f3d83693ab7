"""Service layer for crawl batches and variation analysis."""

from geocrawl.services.analysis_orchestrator import (
    BatchAnalysisOrchestrator,
    aggregate_results,
    generate_analysis_id,
)
from geocrawl.services.crawl_coordinator import (
    BatchCrawlCoordinator,
    categorize_outcomes,
    extract_cited_urls,
    summarize_outcomes,
)
from geocrawl.services.engines import HttpAnalysisEngine, build_engines
from geocrawl.services.models import (
    AnalysisMetrics,
    BatchAnalysisResult,
    CrawlBatchResult,
    EngineOutcome,
    EngineResponse,
    GeneratedVariation,
    QueryAnalysisResult,
    QueryType,
    VariationGenerationResult,
    VariationType,
)
from geocrawl.services.store import InMemoryRecordStore
from geocrawl.services.variations import (
    ChatVariationGenerator,
    VariationRequest,
    VariationService,
    validate_variations,
)

__all__ = [
    "aggregate_results",
    "AnalysisMetrics",
    "BatchAnalysisOrchestrator",
    "BatchAnalysisResult",
    "BatchCrawlCoordinator",
    "build_engines",
    "categorize_outcomes",
    "ChatVariationGenerator",
    "CrawlBatchResult",
    "EngineOutcome",
    "EngineResponse",
    "extract_cited_urls",
    "generate_analysis_id",
    "GeneratedVariation",
    "HttpAnalysisEngine",
    "InMemoryRecordStore",
    "QueryAnalysisResult",
    "QueryType",
    "summarize_outcomes",
    "validate_variations",
    "VariationGenerationResult",
    "VariationRequest",
    "VariationService",
    "VariationType",
]
