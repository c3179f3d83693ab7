"""Unit tests for the batch analysis orchestrator."""

from __future__ import annotations

import asyncio
import re

import pytest

from geocrawl.core.errors import InternalError, ValidationError
from geocrawl.core.progress import AnalysisStage, BatchAnalysisProgress
from geocrawl.services.analysis_orchestrator import (
    BatchAnalysisOrchestrator,
    aggregate_results,
    count_brand_mentions,
    generate_analysis_id,
)
from geocrawl.services.models import (
    EngineOutcome,
    EngineResponse,
    GeneratedVariation,
    QueryAnalysisResult,
    QueryType,
    VariationType,
    VisibilityTarget,
)
from geocrawl.services.store import InMemoryRecordStore


class FakeEngine:
    """Analysis engine returning canned responses."""

    def __init__(
        self,
        name: str,
        citations: list[str] | None = None,
        fail_on: set[str] | None = None,
        raise_on: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.citations = citations or []
        self.fail_on = fail_on or set()
        self.raise_on = raise_on or set()
        self.delay = delay
        self.queries: list[str] = []
        self.targets: list[VisibilityTarget | None] = []

    async def analyze(
        self, query: str, target: VisibilityTarget | None = None
    ) -> EngineResponse:
        self.queries.append(query)
        self.targets.append(target)
        if self.delay:
            await asyncio.sleep(self.delay)
        if query in self.raise_on:
            raise RuntimeError(f"{self.name} crashed")
        if query in self.fail_on:
            return EngineResponse(success=False, error="quota exceeded")
        return EngineResponse(
            success=True, answer=f"{self.name}: {query}", citations=self.citations
        )


def _variations() -> list[GeneratedVariation]:
    return [
        GeneratedVariation("what is cancer insurance", VariationType.INFORMATIONAL),
        GeneratedVariation("cancer insurance comparison", VariationType.COMPARISON),
    ]


def test_generate_analysis_id() -> None:
    assert re.fullmatch(r"analysis_[0-9a-f]{32}", generate_analysis_id())


def test_generate_analysis_id_is_unique() -> None:
    assert len({generate_analysis_id() for _ in range(1000)}) == 1000


class TestValidation:
    @pytest.mark.asyncio
    async def test_requires_base_query(self) -> None:
        orchestrator = BatchAnalysisOrchestrator([FakeEngine("claude")])

        with pytest.raises(ValidationError, match="baseQuery is required"):
            await orchestrator.analyze_variations(_variations(), "  ")

    @pytest.mark.asyncio
    async def test_requires_engine(self) -> None:
        orchestrator = BatchAnalysisOrchestrator()

        with pytest.raises(ValidationError, match="At least one engine"):
            await orchestrator.analyze_variations(_variations(), "cancer insurance")

    @pytest.mark.asyncio
    async def test_engine_names_must_be_unique(self) -> None:
        orchestrator = BatchAnalysisOrchestrator(
            [FakeEngine("claude"), FakeEngine("claude")]
        )

        with pytest.raises(ValidationError, match="unique"):
            await orchestrator.analyze_variations(_variations(), "cancer insurance")

    @pytest.mark.asyncio
    async def test_nothing_to_analyze(self) -> None:
        orchestrator = BatchAnalysisOrchestrator([FakeEngine("claude")])

        with pytest.raises(ValidationError, match="No queries to analyze"):
            await orchestrator.analyze_variations(
                [], "cancer insurance", include_base_query=False
            )

    @pytest.mark.asyncio
    async def test_blank_variation(self) -> None:
        orchestrator = BatchAnalysisOrchestrator([FakeEngine("claude")])

        with pytest.raises(ValidationError, match="non-empty strings"):
            await orchestrator.analyze_variations(["ok", ""], "cancer insurance")

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError):
            BatchAnalysisOrchestrator(engine_timeout=0)


class TestAnalyzeVariations:
    @pytest.mark.asyncio
    async def test_base_query_first_then_variations_in_order(self) -> None:
        engine = FakeEngine("claude")
        orchestrator = BatchAnalysisOrchestrator([engine])

        result = await orchestrator.analyze_variations(
            _variations(), "cancer insurance", analysis_id="analysis-1"
        )

        assert result.analysis_id == "analysis-1"
        assert engine.queries == [
            "cancer insurance",
            "what is cancer insurance",
            "cancer insurance comparison",
        ]
        assert [r.query_type for r in result.results] == [
            QueryType.BASE,
            QueryType.VARIATION,
            QueryType.VARIATION,
        ]
        assert result.results[1].variation_type is VariationType.INFORMATIONAL

    @pytest.mark.asyncio
    async def test_accepts_plain_string_variations(self) -> None:
        orchestrator = BatchAnalysisOrchestrator([FakeEngine("claude")])

        result = await orchestrator.analyze_variations(
            ["best plan"], "cancer insurance", include_base_query=False
        )

        assert [r.query for r in result.results] == ["best plan"]
        assert result.results[0].variation_type is None

    @pytest.mark.asyncio
    async def test_engine_failures_are_isolated(self) -> None:
        engines = [
            FakeEngine("perplexity", raise_on={"what is cancer insurance"}),
            FakeEngine("chatgpt", fail_on={"what is cancer insurance"}),
            FakeEngine("claude"),
        ]
        orchestrator = BatchAnalysisOrchestrator(engines)

        result = await orchestrator.analyze_variations(_variations(), "cancer insurance")

        assert len(result.results) == 3
        failing = result.results[1]
        assert failing.successful_engines == ["claude"]
        assert failing.failed_engines == ["perplexity", "chatgpt"]
        errors = {o.engine: o.error for o in failing.outcomes}
        assert errors["perplexity"] == "perplexity crashed"
        assert errors["chatgpt"] == "quota exceeded"
        assert result.results[2].failed_engines == []

        by_engine = {s.engine: s for s in result.metrics.by_engine}
        assert (by_engine["perplexity"].succeeded, by_engine["perplexity"].failed) == (2, 1)
        assert (by_engine["claude"].succeeded, by_engine["claude"].failed) == (3, 0)
        assert result.metrics.successful_queries == 3

    @pytest.mark.asyncio
    async def test_engine_timeout_is_recorded(self) -> None:
        orchestrator = BatchAnalysisOrchestrator(
            [FakeEngine("slow", delay=1.0), FakeEngine("fast")], engine_timeout=0.05
        )

        result = await orchestrator.analyze_variations([], "cancer insurance")

        outcomes = {o.engine: o for o in result.results[0].outcomes}
        assert outcomes["slow"].success is False
        assert outcomes["slow"].error == "Timed out after 0.05s"
        assert outcomes["fast"].success is True

    @pytest.mark.asyncio
    async def test_progress_counts_engine_cells(self) -> None:
        received: list[BatchAnalysisProgress] = []
        orchestrator = BatchAnalysisOrchestrator(
            [FakeEngine("claude"), FakeEngine("gemini")]
        )

        result = await orchestrator.analyze_variations(
            _variations(), "cancer insurance", on_progress=received.append
        )

        assert received == result.progress
        assert received[0].stage is AnalysisStage.VARIATIONS
        final = received[-1]
        assert final.stage is AnalysisStage.COMPLETED
        assert final.percentage == 100.0
        assert final.current_llm is None
        assert final.current_variation == final.total_variations == 3
        percentages = [s.percentage for s in received]
        assert percentages == sorted(percentages)
        # a query with one of two engines done sits between whole-query marks
        cells = [s.completed_cells for s in received if s.stage is AnalysisStage.LLM_ANALYSIS]
        assert 1 in cells and 3 in cells
        announced = [
            s.current_llm
            for s in received
            if s.stage is AnalysisStage.LLM_ANALYSIS and s.current_variation == 1
        ]
        assert announced[:2] == ["claude", "gemini"]
        assert announced[-1] is None

    @pytest.mark.asyncio
    async def test_cancellation_skips_remaining_queries(self) -> None:
        cancel_event = asyncio.Event()

        class _CancellingEngine(FakeEngine):
            async def analyze(
                self, query: str, target: VisibilityTarget | None = None
            ) -> EngineResponse:
                cancel_event.set()
                return await super().analyze(query, target)

        engine = _CancellingEngine("claude")
        orchestrator = BatchAnalysisOrchestrator([engine])

        result = await orchestrator.analyze_variations(
            _variations(), "cancer insurance", cancel_event=cancel_event
        )

        assert result.cancelled is True
        assert engine.queries == ["cancer insurance"]
        assert len(result.results) == 3
        assert result.results[0].success is True
        for skipped in result.results[1:]:
            assert skipped.outcomes[0].error == "Cancelled before analysis"
        assert result.progress[-1].percentage == 100.0

    @pytest.mark.asyncio
    async def test_store_receives_variations_and_result(self) -> None:
        store = InMemoryRecordStore()
        orchestrator = BatchAnalysisOrchestrator([FakeEngine("claude")], store=store)

        result = await orchestrator.analyze_variations(
            _variations(), "cancer insurance", analysis_id="analysis-9"
        )

        base_query, variations = store.variations["analysis-9"]
        assert base_query == "cancer insurance"
        assert variations == _variations()
        assert store.analyses["analysis-9"] is result

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_internal_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _broken(*args, **kwargs):
            raise KeyError("aggregation")

        monkeypatch.setattr(
            "geocrawl.services.analysis_orchestrator.aggregate_results", _broken
        )
        orchestrator = BatchAnalysisOrchestrator([FakeEngine("claude")])

        with pytest.raises(InternalError, match="Analysis batch analysis-1 failed"):
            await orchestrator.analyze_variations(
                [], "cancer insurance", analysis_id="analysis-1"
            )

    @pytest.mark.asyncio
    async def test_to_dict(self) -> None:
        orchestrator = BatchAnalysisOrchestrator(
            [FakeEngine("claude", citations=["https://www.a.test/1"])]
        )

        data = (
            await orchestrator.analyze_variations(
                [], "cancer insurance", analysis_id="analysis-1"
            )
        ).to_dict()

        assert data["analysisId"] == "analysis-1"
        assert data["cancelled"] is False
        assert data["progress"][-1]["stage"] == "completed"
        assert data["results"][0]["query"] == "cancer insurance"

    @pytest.mark.asyncio
    async def test_visibility_target_reaches_engines_and_metrics(self) -> None:
        engine = FakeEngine(
            "claude", citations=["https://www.mine.test/plan", "https://other.test/"]
        )
        orchestrator = BatchAnalysisOrchestrator([engine])
        target = VisibilityTarget(my_domain="mine.test", my_brand="cancer")

        result = await orchestrator.analyze_variations(
            _variations(), "cancer insurance", target=target
        )

        assert engine.targets == [target, target, target]
        stats = result.metrics.my_domain_stats
        assert stats.total_citations == 3
        assert stats.queries_with_citation == 3
        assert stats.citation_rate == 100
        assert result.metrics.avg_citation_rate_by_engine == {"claude": 50.0}
        assert result.metrics.brand_mention_stats.mention_rate == 100

    @pytest.mark.asyncio
    async def test_without_target_engines_get_empty_target(self) -> None:
        engine = FakeEngine("claude", citations=["https://a.test/"])
        orchestrator = BatchAnalysisOrchestrator([engine])

        result = await orchestrator.analyze_variations([], "cancer insurance")

        assert engine.targets == [VisibilityTarget()]
        assert result.metrics.my_domain_stats.total_citations == 0
        assert result.metrics.brand_mention_stats.total_mentions == 0


class TestAggregateResults:
    def test_counts_and_top_domains(self) -> None:
        results = [
            QueryAnalysisResult(
                query="q1",
                query_type=QueryType.BASE,
                outcomes=[
                    EngineOutcome(
                        engine="claude",
                        success=True,
                        citations=[
                            "https://www.a.test/1",
                            "https://a.test/2",
                            "https://b.test/",
                        ],
                    ),
                    EngineOutcome(
                        engine="gemini",
                        success=False,
                        error="quota",
                        citations=["https://ignored.test/"],
                    ),
                ],
            ),
            QueryAnalysisResult(
                query="q2",
                query_type=QueryType.VARIATION,
                outcomes=[
                    EngineOutcome(engine="claude", success=False, error="x"),
                    EngineOutcome(engine="gemini", success=False, error="y"),
                ],
            ),
        ]

        metrics = aggregate_results(results, ["claude", "gemini"])

        assert metrics.total_queries == 2
        assert metrics.successful_queries == 1
        assert metrics.failed_queries == 1
        assert [(s.engine, s.succeeded, s.failed) for s in metrics.by_engine] == [
            ("claude", 1, 1),
            ("gemini", 0, 2),
        ]
        assert [(d.domain, d.count, d.percentage) for d in metrics.top_cited_domains] == [
            ("a.test", 2, 67),
            ("b.test", 1, 33),
        ]

    def test_limits_top_domains_to_ten(self) -> None:
        citations = [f"https://site{i}.test/" for i in range(15)]
        results = [
            QueryAnalysisResult(
                query="q",
                query_type=QueryType.BASE,
                outcomes=[EngineOutcome(engine="claude", success=True, citations=citations)],
            )
        ]

        metrics = aggregate_results(results, ["claude"])

        assert len(metrics.top_cited_domains) == 10

    def test_own_domain_and_brand_stats(self) -> None:
        results = [
            QueryAnalysisResult(
                query="cancer insurance",
                query_type=QueryType.BASE,
                outcomes=[
                    EngineOutcome(
                        engine="claude",
                        success=True,
                        answer="Acme Life and acme are both solid picks.",
                        citations=[
                            "https://www.acme.test/plans",
                            "https://blog.acme.test/post",
                            "https://rival.test/",
                            "https://notacme.test/",
                        ],
                    ),
                    EngineOutcome(
                        engine="gemini",
                        success=True,
                        answer="Try Globex.",
                        citations=["https://rival.test/"],
                    ),
                ],
            ),
            QueryAnalysisResult(
                query="what is cancer insurance",
                query_type=QueryType.VARIATION,
                variation_type=VariationType.INFORMATIONAL,
                outcomes=[
                    EngineOutcome(
                        engine="claude", success=True, answer="Acmeville is a town."
                    ),
                    EngineOutcome(
                        engine="gemini",
                        success=True,
                        answer="See ACME.",
                        citations=["https://acme.test/"],
                    ),
                ],
            ),
            QueryAnalysisResult(
                query="cancer insurance comparison",
                query_type=QueryType.VARIATION,
                variation_type=VariationType.COMPARISON,
                outcomes=[
                    EngineOutcome(engine="claude", success=False, error="x"),
                    EngineOutcome(engine="gemini", success=False, error="y"),
                ],
            ),
        ]
        target = VisibilityTarget(
            my_domain="https://acme.test/", my_brand="Acme", brand_aliases=("Acme Life",)
        )

        metrics = aggregate_results(results, ["claude", "gemini"], target)

        domain_stats = metrics.my_domain_stats
        assert domain_stats.total_citations == 3
        assert domain_stats.queries_with_citation == 2
        assert domain_stats.citation_rate == 100
        assert [(s.engine, s.cited, s.total) for s in domain_stats.by_engine] == [
            ("claude", 1, 2),
            ("gemini", 1, 2),
        ]
        # claude: 2 of 4 citations in q1, no citations in q2; gemini: 0% then 100%
        assert metrics.avg_citation_rate_by_engine == {"claude": 25.0, "gemini": 50.0}
        brand_stats = metrics.brand_mention_stats
        assert brand_stats.total_mentions == 3
        assert brand_stats.queries_with_mention == 2
        assert brand_stats.mention_rate == 100
        assert [
            (p.type, p.avg_citation_rate, p.avg_brand_mention_rate, p.count)
            for p in metrics.performance_by_query_type
        ] == [("base", 100, 100, 1), ("informational", 100, 100, 1)]

    def test_rates_use_successful_queries(self) -> None:
        results = [
            QueryAnalysisResult(
                query=f"q{i}",
                query_type=QueryType.VARIATION,
                outcomes=[
                    EngineOutcome(
                        engine="claude",
                        success=True,
                        answer="Acme" if i == 0 else "nothing",
                        citations=["https://acme.test/"] if i < 2 else [],
                    )
                ],
            )
            for i in range(3)
        ]
        target = VisibilityTarget(my_domain="acme.test", my_brand="Acme")

        metrics = aggregate_results(results, ["claude"], target)

        assert metrics.my_domain_stats.citation_rate == 67
        assert metrics.brand_mention_stats.mention_rate == 33
        assert metrics.avg_citation_rate_by_engine == {"claude": 66.67}
        assert [p.type for p in metrics.performance_by_query_type] == ["unknown"]
        assert metrics.performance_by_query_type[0].count == 3

    def test_without_successful_queries(self) -> None:
        results = [
            QueryAnalysisResult(
                query="q",
                query_type=QueryType.BASE,
                outcomes=[EngineOutcome(engine="claude", success=False, error="x")],
            )
        ]

        metrics = aggregate_results(
            results, ["claude"], VisibilityTarget(my_domain="acme.test")
        )

        assert metrics.my_domain_stats.citation_rate == 0
        assert metrics.avg_citation_rate_by_engine == {"claude": 0.0}
        assert metrics.performance_by_query_type == []
        data = metrics.to_dict()
        assert data["myDomainStats"]["byEngine"] == {"claude": {"cited": 0, "total": 0}}
        assert data["brandMentionStats"] == {
            "totalMentions": 0,
            "queriesWithMention": 0,
            "mentionRate": 0,
        }


class TestCountBrandMentions:
    def test_whole_words_case_insensitive(self) -> None:
        text = "Acme Labs beats acme. Acmeville and MyAcme do not count."

        assert count_brand_mentions(text, ["Acme", "Acme Labs"]) == 2

    def test_names_with_regex_characters(self) -> None:
        assert count_brand_mentions("Use A+B (or a+b).", ["A+B"]) == 2

    def test_hangul_particle_may_follow_brand(self) -> None:
        assert count_brand_mentions("삼성생명 보험, 삼성생명과 비교", ["삼성생명"]) == 2

    def test_no_names(self) -> None:
        assert count_brand_mentions("Acme", []) == 0
