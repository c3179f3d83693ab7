"""Service-layer data models for crawl batches and variation analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from geocrawl.core.progress import BatchAnalysisProgress, CrawlProgress
from geocrawl.crawler.models import CrawlOutcome, CrawlSummary


class VariationType(str, Enum):
    """Search intent a generated variation targets."""

    DEMOGRAPHIC = "demographic"
    INFORMATIONAL = "informational"
    COMPARISON = "comparison"
    RECOMMENDATION = "recommendation"


class QueryType(str, Enum):
    """Whether an analyzed query is the base query or a variation."""

    BASE = "base"
    VARIATION = "variation"


@dataclass(frozen=True)
class GeneratedVariation:
    """A query variation produced by the generator.

    Args:
        query: Variation text
        type: Search intent of the variation
        reasoning: Generator's explanation for the variation
    """

    query: str
    type: VariationType
    reasoning: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"query": self.query, "type": self.type.value, "reasoning": self.reasoning}


@dataclass(frozen=True)
class VariationGenerationResult:
    """Output of one generator call.

    Args:
        variations: Generated variations
        model_used: Model name reported by the generator
        tokens_used: Total tokens consumed
        warnings: Quality problems found by validate_variations
    """

    variations: list[GeneratedVariation]
    model_used: str
    tokens_used: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Competitor:
    """A competing brand and the other names it goes by."""

    name: str
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class VisibilityTarget:
    """The site and brand whose visibility an analysis measures.

    Every field is optional. Engines receive the fields that are set; the
    orchestrator uses the domain and the brand names to compute citation and
    mention statistics.

    Args:
        my_domain: Own domain, e.g. "example.com"; subdomains count as own
        my_brand: Own brand name
        brand_aliases: Other spellings of the brand
        competitors: Competing brands passed through to the engines
    """

    my_domain: str | None = None
    my_brand: str | None = None
    brand_aliases: tuple[str, ...] = ()
    competitors: tuple[Competitor, ...] = ()

    @property
    def brand_names(self) -> list[str]:
        names = (name.strip() for name in (self.my_brand, *self.brand_aliases) if name)
        return list(dict.fromkeys(name for name in names if name))

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.my_domain:
            payload["domain"] = self.my_domain
        if self.my_brand:
            payload["brand"] = self.my_brand
        if self.brand_aliases:
            payload["brandAliases"] = list(self.brand_aliases)
        if self.competitors:
            payload["competitors"] = [
                {"name": competitor.name, "aliases": list(competitor.aliases)}
                for competitor in self.competitors
            ]
        return payload


@dataclass(frozen=True)
class EngineResponse:
    """What an analysis engine returns for one query.

    Args:
        success: Whether the engine produced an answer
        answer: Answer text
        citations: URLs cited in the answer
        error: Error message when success is False
    """

    success: bool
    answer: str = ""
    citations: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class EngineOutcome:
    """Recorded result of one (query x engine) cell.

    Args:
        engine: Engine name
        success: Whether the call succeeded
        answer: Answer text on success
        citations: Cited URLs on success
        error: Failure description
        duration_ms: Wall time of the call
    """

    engine: str
    success: bool
    answer: str = ""
    citations: list[str] = field(default_factory=list)
    error: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "success": self.success,
            "answer": self.answer,
            "citations": self.citations,
            "error": self.error,
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class QueryAnalysisResult:
    """All engine outcomes for one analyzed query.

    Args:
        query: Query text
        query_type: base or variation
        outcomes: One outcome per engine, in engine order
        variation_type: Intent of the variation (None for the base query)
    """

    query: str
    query_type: QueryType
    outcomes: list[EngineOutcome]
    variation_type: VariationType | None = None

    @property
    def successful_engines(self) -> list[str]:
        return [outcome.engine for outcome in self.outcomes if outcome.success]

    @property
    def failed_engines(self) -> list[str]:
        return [outcome.engine for outcome in self.outcomes if not outcome.success]

    @property
    def success(self) -> bool:
        return bool(self.successful_engines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "queryType": self.query_type.value,
            "variationType": None if self.variation_type is None else self.variation_type.value,
            "results": [outcome.to_dict() for outcome in self.outcomes],
            "successfulEngines": self.successful_engines,
            "failedEngines": self.failed_engines,
        }


@dataclass(frozen=True)
class EngineStats:
    """Success and failure counts for one engine across a batch."""

    engine: str
    succeeded: int
    failed: int


@dataclass(frozen=True)
class CitedDomain:
    """A domain cited by engine answers."""

    domain: str
    count: int
    percentage: int


@dataclass(frozen=True)
class EngineCitationStats:
    """How often one engine cited the own domain.

    Args:
        engine: Engine name
        cited: Successful answers citing the own domain at least once
        total: Successful answers
    """

    engine: str
    cited: int
    total: int


@dataclass(frozen=True)
class DomainCitationStats:
    """Own-domain citations across a batch."""

    total_citations: int
    queries_with_citation: int
    citation_rate: int
    by_engine: list[EngineCitationStats]


@dataclass(frozen=True)
class BrandMentionStats:
    """Own-brand mentions in engine answers across a batch."""

    total_mentions: int
    queries_with_mention: int
    mention_rate: int


@dataclass(frozen=True)
class QueryTypePerformance:
    """Citation and mention rates for one kind of query.

    Args:
        type: "base", a variation type, or "unknown"
        avg_citation_rate: Share of these queries citing the own domain, 0-100
        avg_brand_mention_rate: Share of these queries mentioning the brand,
            0-100
        count: Successful queries of this type
    """

    type: str
    avg_citation_rate: int
    avg_brand_mention_rate: int
    count: int


@dataclass(frozen=True)
class AnalysisMetrics:
    """Aggregates over a variation analysis batch.

    Args:
        total_queries: Queries analyzed
        successful_queries: Queries where at least one engine succeeded
        failed_queries: Queries where every engine failed
        by_engine: Per-engine success and failure counts, in engine order
        top_cited_domains: Up to ten most cited domains
        avg_citation_rate_by_engine: Mean own-domain share of each engine's
            citations, in percent
        my_domain_stats: Own-domain citation counts
        brand_mention_stats: Own-brand mention counts
        performance_by_query_type: Rates per query type, in order of first
            appearance
    """

    total_queries: int
    successful_queries: int
    failed_queries: int
    by_engine: list[EngineStats]
    top_cited_domains: list[CitedDomain]
    avg_citation_rate_by_engine: dict[str, float] = field(default_factory=dict)
    my_domain_stats: DomainCitationStats = field(
        default_factory=lambda: DomainCitationStats(0, 0, 0, [])
    )
    brand_mention_stats: BrandMentionStats = field(
        default_factory=lambda: BrandMentionStats(0, 0, 0)
    )
    performance_by_query_type: list[QueryTypePerformance] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalQueries": self.total_queries,
            "successfulQueries": self.successful_queries,
            "failedQueries": self.failed_queries,
            "byEngine": {
                stats.engine: {"succeeded": stats.succeeded, "failed": stats.failed}
                for stats in self.by_engine
            },
            "topCitedDomains": [
                {"domain": item.domain, "count": item.count, "percentage": item.percentage}
                for item in self.top_cited_domains
            ],
            "avgCitationRateByEngine": dict(self.avg_citation_rate_by_engine),
            "myDomainStats": {
                "totalCitations": self.my_domain_stats.total_citations,
                "queriesWithCitation": self.my_domain_stats.queries_with_citation,
                "citationRate": self.my_domain_stats.citation_rate,
                "byEngine": {
                    stats.engine: {"cited": stats.cited, "total": stats.total}
                    for stats in self.my_domain_stats.by_engine
                },
            },
            "brandMentionStats": {
                "totalMentions": self.brand_mention_stats.total_mentions,
                "queriesWithMention": self.brand_mention_stats.queries_with_mention,
                "mentionRate": self.brand_mention_stats.mention_rate,
            },
            "performanceByQueryType": [
                {
                    "type": item.type,
                    "avgCitationRate": item.avg_citation_rate,
                    "avgBrandMentionRate": item.avg_brand_mention_rate,
                    "count": item.count,
                }
                for item in self.performance_by_query_type
            ],
        }


@dataclass(frozen=True)
class CrawlBatchResult:
    """Terminal result of a crawl batch.

    Args:
        analysis_id: Analysis the batch belongs to
        outcomes: One outcome per input URL, in input order
        summary: Counts over the outcomes
        progress: Every progress snapshot emitted, in order
        cancelled: Whether the batch was cancelled before all units started
    """

    analysis_id: str
    outcomes: list[CrawlOutcome]
    summary: CrawlSummary
    progress: list[CrawlProgress]
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "analysisId": self.analysis_id,
            "results": [outcome.to_dict() for outcome in self.outcomes],
            "summary": self.summary.to_dict(),
            "progress": [snapshot.to_dict() for snapshot in self.progress],
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class BatchAnalysisResult:
    """Terminal result of a variation analysis batch.

    Args:
        analysis_id: Identifier the batch was registered under
        results: One result per analyzed query, base query first
        metrics: Aggregates over the results
        progress: Every progress snapshot emitted, in order
        cancelled: Whether the batch was cancelled before all queries ran
    """

    analysis_id: str
    results: list[QueryAnalysisResult]
    metrics: AnalysisMetrics
    progress: list[BatchAnalysisProgress]
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "analysisId": self.analysis_id,
            "results": [result.to_dict() for result in self.results],
            "metrics": self.metrics.to_dict(),
            "progress": [snapshot.to_dict() for snapshot in self.progress],
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class CitedPagesResult:
    """Pages cited by engine answers, crawled and split by ownership.

    Args:
        my_pages: Outcomes for pages on the own domain
        competitor_pages: Outcomes for every other cited page
        summary: Counts over all crawled pages
        cancelled: Whether crawling stopped before every cited page started
    """

    my_pages: list[CrawlOutcome]
    competitor_pages: list[CrawlOutcome]
    summary: CrawlSummary
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "myPages": [outcome.to_dict() for outcome in self.my_pages],
            "competitorPages": [outcome.to_dict() for outcome in self.competitor_pages],
            "summary": self.summary.to_dict(),
            "cancelled": self.cancelled,
        }
