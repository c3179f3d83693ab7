"""Batch analysis orchestrator for query variations.

Drives every query of a batch through every configured engine::

    variations -> llm_analysis -> completed

The base query is analyzed first, followed by the variations in the order
given. Engines for one query run concurrently, each under its own timeout;
the next query starts once all engines for the current one resolved. An
engine that raises, times out or answers unsuccessfully is recorded as a
failure for that (query x engine) cell and nothing else is affected.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from collections import Counter
from collections.abc import Callable, Sequence

from geocrawl.core.errors import InternalError, ValidationError
from geocrawl.core.interfaces import AnalysisEngineProtocol, RecordStoreProtocol
from geocrawl.core.progress import (
    AnalysisProgressReporter,
    AnalysisStage,
    BatchAnalysisProgress,
)
from geocrawl.core.url_validation import is_same_site, normalize_domain, url_domain
from geocrawl.services.models import (
    AnalysisMetrics,
    BatchAnalysisResult,
    BrandMentionStats,
    CitedDomain,
    DomainCitationStats,
    EngineCitationStats,
    EngineOutcome,
    EngineStats,
    GeneratedVariation,
    QueryAnalysisResult,
    QueryType,
    QueryTypePerformance,
    VariationType,
    VisibilityTarget,
)

logger = logging.getLogger(__name__)

TOP_DOMAINS_LIMIT = 10


def generate_analysis_id() -> str:
    """Generate a unique analysis identifier.

    Returns:
        Analysis identifier prefixed with "analysis_"
    """
    return f"analysis_{uuid.uuid4().hex}"


class BatchAnalysisOrchestrator:
    """Runs query variations through a set of analysis engines.

    Args:
        engines: Default engines, called in this order for every query
        store: Optional record store for the variation set and final result
        engine_timeout: Seconds allowed for one engine call
    """

    def __init__(
        self,
        engines: Sequence[AnalysisEngineProtocol] = (),
        store: RecordStoreProtocol | None = None,
        engine_timeout: float = 120.0,
    ) -> None:
        if engine_timeout <= 0:
            raise ValueError("engine_timeout must be positive")
        self.engines = list(engines)
        self.store = store
        self.engine_timeout = engine_timeout

    async def analyze_variations(
        self,
        variations: Sequence[GeneratedVariation | str],
        base_query: str,
        engines: Sequence[AnalysisEngineProtocol] | None = None,
        analysis_id: str | None = None,
        include_base_query: bool = True,
        on_progress: Callable[[BatchAnalysisProgress], None] | None = None,
        cancel_event: asyncio.Event | None = None,
        target: VisibilityTarget | None = None,
    ) -> BatchAnalysisResult:
        """Analyze the base query and its variations with every engine.

        Args:
            variations: Variations to analyze, in order
            base_query: Query the variations were derived from
            engines: Engines to use instead of the configured defaults
            analysis_id: Identifier for the batch; generated when omitted
            include_base_query: Analyze the base query first as query #1
            on_progress: Called with every progress snapshot
            cancel_event: When set, no further query is started; queries that
                never started are recorded as failed for every engine
            target: Own domain, brand and competitors; sent to every engine
                and used for the domain and brand statistics

        Returns:
            BatchAnalysisResult with one QueryAnalysisResult per query

        Raises:
            ValidationError: If base_query is blank, no engine is available,
                engine names repeat, or there is nothing to analyze
            InternalError: If orchestration itself fails
        """
        selected = list(self.engines if engines is None else engines)
        queries = self._validate(variations, base_query, selected, include_base_query)
        analysis_id = analysis_id or generate_analysis_id()

        try:
            return await self._run(
                analysis_id,
                base_query,
                queries,
                [v for v in variations if isinstance(v, GeneratedVariation)],
                selected,
                on_progress,
                cancel_event,
                target or VisibilityTarget(),
            )
        except InternalError:
            logger.exception("Analysis batch %s failed", analysis_id)
            raise
        except Exception as exc:
            logger.exception("Analysis batch %s failed", analysis_id)
            raise InternalError(f"Analysis batch {analysis_id} failed: {exc}") from exc

    def _validate(
        self,
        variations: Sequence[GeneratedVariation | str],
        base_query: str,
        engines: list[AnalysisEngineProtocol],
        include_base_query: bool,
    ) -> list[tuple[str, QueryType, VariationType | None]]:
        if not isinstance(base_query, str) or not base_query.strip():
            raise ValidationError("baseQuery is required")
        if not engines:
            raise ValidationError("At least one engine is required")
        names = [engine.name for engine in engines]
        if len(set(names)) != len(names):
            raise ValidationError("Engine names must be unique")

        queries: list[tuple[str, QueryType, VariationType | None]] = []
        if include_base_query:
            queries.append((base_query.strip(), QueryType.BASE, None))
        for variation in variations:
            if isinstance(variation, GeneratedVariation):
                text, variation_type = variation.query, variation.type
            else:
                text, variation_type = variation, None
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("Variations must be non-empty strings")
            queries.append((text.strip(), QueryType.VARIATION, variation_type))

        if not queries:
            raise ValidationError("No queries to analyze")
        return queries

    async def _run(
        self,
        analysis_id: str,
        base_query: str,
        queries: list[tuple[str, QueryType, VariationType | None]],
        variations: list[GeneratedVariation],
        engines: list[AnalysisEngineProtocol],
        on_progress: Callable[[BatchAnalysisProgress], None] | None,
        cancel_event: asyncio.Event | None,
        target: VisibilityTarget,
    ) -> BatchAnalysisResult:
        reporter = AnalysisProgressReporter(
            total_variations=len(queries),
            total_engines=len(engines),
            listeners=[on_progress] if on_progress else (),
        )
        logger.info(
            "Analysis batch %s started: %d queries x %d engines",
            analysis_id,
            len(queries),
            len(engines),
        )

        reporter.update(AnalysisStage.VARIATIONS, 0, 0)
        if self.store is not None:
            try:
                await self.store.save_variations(analysis_id, base_query, variations)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not store variations for %s: %s", analysis_id, exc)

        reporter.update(AnalysisStage.LLM_ANALYSIS, 0, 0)
        completed = 0
        results: list[QueryAnalysisResult] = []
        cancelled = False

        for position, (query, query_type, variation_type) in enumerate(queries, start=1):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                outcomes = [
                    EngineOutcome(
                        engine=engine.name,
                        success=False,
                        error="Cancelled before analysis",
                    )
                    for engine in engines
                ]
                completed += len(engines)
                reporter.update(AnalysisStage.LLM_ANALYSIS, position, completed)
            else:
                in_flight: list[str] = []

                async def _call(engine: AnalysisEngineProtocol) -> EngineOutcome:
                    nonlocal completed
                    outcome = await self._invoke(engine, query, target)
                    in_flight.remove(engine.name)
                    completed += 1
                    reporter.update(
                        AnalysisStage.LLM_ANALYSIS,
                        position,
                        completed,
                        in_flight[0] if in_flight else None,
                    )
                    return outcome

                calls = []
                for engine in engines:
                    in_flight.append(engine.name)
                    reporter.update(
                        AnalysisStage.LLM_ANALYSIS, position, completed, engine.name
                    )
                    calls.append(_call(engine))
                outcomes = list(await asyncio.gather(*calls))

            result = QueryAnalysisResult(
                query=query,
                query_type=query_type,
                outcomes=outcomes,
                variation_type=variation_type,
            )
            logger.debug(
                "Query %d/%d analyzed - succeeded: %s, failed: %s",
                position,
                len(queries),
                result.successful_engines,
                result.failed_engines,
            )
            results.append(result)

        reporter.update(AnalysisStage.COMPLETED, len(queries), completed)

        metrics = aggregate_results(
            results, [engine.name for engine in engines], target
        )
        batch = BatchAnalysisResult(
            analysis_id=analysis_id,
            results=results,
            metrics=metrics,
            progress=list(reporter.snapshots),
            cancelled=cancelled,
        )
        logger.info(
            "Analysis batch %s completed: %d/%d queries succeeded%s",
            analysis_id,
            metrics.successful_queries,
            metrics.total_queries,
            " (cancelled)" if cancelled else "",
        )

        if self.store is not None:
            try:
                await self.store.save_analysis(batch)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not store analysis %s: %s", analysis_id, exc)
        return batch

    async def _invoke(
        self, engine: AnalysisEngineProtocol, query: str, target: VisibilityTarget
    ) -> EngineOutcome:
        started = time.perf_counter()

        def _elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 1)

        try:
            response = await asyncio.wait_for(
                engine.analyze(query, target), timeout=self.engine_timeout
            )
        except asyncio.TimeoutError:
            error = f"Timed out after {self.engine_timeout:g}s"
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or type(exc).__name__
        else:
            if response.success:
                return EngineOutcome(
                    engine=engine.name,
                    success=True,
                    answer=response.answer,
                    citations=list(response.citations),
                    duration_ms=_elapsed(),
                )
            error = response.error or "Engine returned failure"

        logger.warning("Engine %s failed for %r: %s", engine.name, query, error)
        return EngineOutcome(
            engine=engine.name, success=False, error=error, duration_ms=_elapsed()
        )


def aggregate_results(
    results: Sequence[QueryAnalysisResult],
    engine_names: Sequence[str],
    target: VisibilityTarget | None = None,
) -> AnalysisMetrics:
    """Summarize a batch.

    A query counts as successful when at least one engine succeeded. Cited
    domains come from successful outcomes only, with a leading "www."
    removed.

    Own-domain and brand statistics cover successful queries only, and their
    rates are whole percentages of the successful query count (1 when there
    is none). A citation is an own-domain citation when its host is the
    target domain or a subdomain of it. Brand mentions are counted in the
    answer text with count_brand_mentions.

    Args:
        results: Per-query results
        engine_names: Engines in configured order
        target: Own domain and brand; without one the domain and brand
            statistics are all zero

    Returns:
        AnalysisMetrics for the batch
    """
    target = target or VisibilityTarget()
    my_domain = normalize_domain(target.my_domain)
    brand_names = target.brand_names

    succeeded: Counter[str] = Counter()
    failed: Counter[str] = Counter()
    domains: Counter[str] = Counter()
    rate_sums: dict[str, float] = dict.fromkeys(engine_names, 0.0)
    answered: Counter[str] = Counter()
    cited: Counter[str] = Counter()
    own_citations = 0
    queries_with_citation = 0
    total_mentions = 0
    queries_with_mention = 0
    by_type: dict[str, list[tuple[bool, bool]]] = {}

    for result in results:
        query_cited = False
        query_mentions = 0
        for outcome in result.outcomes:
            if not outcome.success:
                failed[outcome.engine] += 1
                continue
            succeeded[outcome.engine] += 1
            for url in outcome.citations:
                domain = url_domain(url)
                if domain:
                    domains[domain] += 1

            answered[outcome.engine] += 1
            own = sum(1 for url in outcome.citations if is_same_site(url, my_domain))
            if outcome.citations:
                rate = own / len(outcome.citations) * 100
                rate_sums[outcome.engine] = rate_sums.get(outcome.engine, 0.0) + rate
            if own:
                own_citations += own
                cited[outcome.engine] += 1
                query_cited = True
            query_mentions += count_brand_mentions(outcome.answer, brand_names)

        if not result.success:
            continue
        if query_cited:
            queries_with_citation += 1
        if query_mentions:
            total_mentions += query_mentions
            queries_with_mention += 1
        by_type.setdefault(_query_type_key(result), []).append(
            (query_cited, bool(query_mentions))
        )

    total_citations = sum(domains.values())
    top_domains = [
        CitedDomain(
            domain=domain,
            count=count,
            percentage=round(count / total_citations * 100),
        )
        for domain, count in domains.most_common(TOP_DOMAINS_LIMIT)
    ]
    successful_queries = sum(1 for result in results if result.success)
    success_count = successful_queries or 1

    return AnalysisMetrics(
        total_queries=len(results),
        successful_queries=successful_queries,
        failed_queries=len(results) - successful_queries,
        by_engine=[
            EngineStats(engine=name, succeeded=succeeded[name], failed=failed[name])
            for name in engine_names
        ],
        top_cited_domains=top_domains,
        avg_citation_rate_by_engine={
            name: round(total / success_count, 2) for name, total in rate_sums.items()
        },
        my_domain_stats=DomainCitationStats(
            total_citations=own_citations,
            queries_with_citation=queries_with_citation,
            citation_rate=round(queries_with_citation / success_count * 100),
            by_engine=[
                EngineCitationStats(engine=name, cited=cited[name], total=answered[name])
                for name in engine_names
            ],
        ),
        brand_mention_stats=BrandMentionStats(
            total_mentions=total_mentions,
            queries_with_mention=queries_with_mention,
            mention_rate=round(queries_with_mention / success_count * 100),
        ),
        performance_by_query_type=[
            QueryTypePerformance(
                type=query_type,
                avg_citation_rate=round(sum(c for c, _ in flags) / len(flags) * 100),
                avg_brand_mention_rate=round(
                    sum(m for _, m in flags) / len(flags) * 100
                ),
                count=len(flags),
            )
            for query_type, flags in by_type.items()
        ],
    )


def count_brand_mentions(text: str, names: Sequence[str]) -> int:
    """Count case-insensitive occurrences of any of ``names``.

    A match inside a longer Latin word or number does not count ("Acmeville"
    is no mention of "Acme"), while Hangul particles may follow a name
    ("삼성생명과" mentions "삼성생명"). Longer names are tried first, so
    "Acme Labs" is one mention and not also a mention of "Acme".

    Example:
        >>> count_brand_mentions("Acme Labs beats acme.", ["Acme", "Acme Labs"])
        2
    """
    if not text or not names:
        return 0
    alternatives = "|".join(
        re.escape(name) for name in sorted(names, key=len, reverse=True)
    )
    pattern = re.compile(
        rf"(?<![A-Za-z0-9])(?:{alternatives})(?![A-Za-z0-9])", re.IGNORECASE
    )
    return len(pattern.findall(text))


def _query_type_key(result: QueryAnalysisResult) -> str:
    if result.query_type is QueryType.BASE:
        return "base"
    if result.variation_type is None:
        return "unknown"
    return result.variation_type.value
