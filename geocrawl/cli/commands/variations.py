"""Variations command for generating and analyzing query variations."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from geocrawl.cli.commands.crawl import STATUS_STYLES, install_cancel_handlers
from geocrawl.core.config import Settings
from geocrawl.core.errors import GenerationError, InternalError, ValidationError
from geocrawl.core.logger import get_logger
from geocrawl.core.progress import BatchAnalysisProgress
from geocrawl.crawler.models import CrawlOutcome
from geocrawl.services.analysis_orchestrator import BatchAnalysisOrchestrator
from geocrawl.services.crawl_coordinator import BatchCrawlCoordinator
from geocrawl.services.engines import build_engines
from geocrawl.services.models import (
    BatchAnalysisResult,
    CitedPagesResult,
    Competitor,
    VariationGenerationResult,
    VisibilityTarget,
)
from geocrawl.services.variations import (
    ChatVariationGenerator,
    VariationRequest,
    VariationService,
)


def parse_competitor(value: str) -> Competitor:
    """Parse "Name" or "Name:alias,alias" into a Competitor.

    Example:
        >>> parse_competitor("Globex:Globex Inc,GBX")
        Competitor(name='Globex', aliases=('Globex Inc', 'GBX'))
    """
    name, _, aliases = value.partition(":")
    if not name.strip():
        raise ValidationError(f"Competitor name is required: {value!r}")
    return Competitor(
        name=name.strip(),
        aliases=tuple(alias.strip() for alias in aliases.split(",") if alias.strip()),
    )


def variations_command(
    base_query: str = typer.Argument(..., help="Base search query"),
    count: int = typer.Option(10, "-n", "--count", help="Variations to generate (5-30)"),
    category: str | None = typer.Option(None, "--category", help="Product category"),
    product: str | None = typer.Option(None, "--product", help="Product name"),
    analyze: bool = typer.Option(
        False, "--analyze", help="Run the variations through every configured engine"
    ),
    domain: str | None = typer.Option(
        None, "--domain", help="Own domain whose citations are tracked"
    ),
    brand: str | None = typer.Option(
        None, "--brand", help="Own brand whose mentions are tracked"
    ),
    aliases: list[str] | None = typer.Option(
        None, "--alias", help="Other spelling of the brand (repeatable)"
    ),
    competitors: list[str] | None = typer.Option(
        None,
        "--competitor",
        help='Competing brand as "Name" or "Name:alias,alias" (repeatable)',
    ),
    crawl_citations: bool = typer.Option(
        False, "--crawl-citations", help="Crawl the pages the engines cited"
    ),
    output: Path | None = typer.Option(
        None, "-o", "--output", help="Write the full result as JSON"
    ),
) -> None:
    """Generate query variations and optionally analyze them."""
    console = Console()
    try:
        request = VariationRequest(
            base_query=base_query,
            count=count,
            product_category=category,
            product_name=product,
        )
        target = VisibilityTarget(
            my_domain=domain,
            my_brand=brand,
            brand_aliases=tuple(aliases or ()),
            competitors=tuple(parse_competitor(value) for value in competitors or ()),
        )
        if crawl_citations and not analyze:
            raise ValidationError("--crawl-citations requires --analyze")
    except ValidationError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    settings = Settings()
    get_logger(
        "geocrawl",
        log_level=settings.log_level,
        log_file=settings.log_file,
        console_level="WARNING",
    )

    try:
        generated, analysis, cited = asyncio.run(
            _run(settings, request, analyze, target, crawl_citations)
        )
    except GenerationError as exc:
        console.print(f"[red]Variation generation failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except InternalError as exc:
        console.print(f"[red]Analysis failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc

    _print_variations(console, generated)
    if analysis is not None:
        _print_analysis(console, analysis, target)
    if cited is not None:
        _print_cited_pages(console, cited)

    if output is not None:
        payload: dict[str, Any] = {
            "variations": [v.to_dict() for v in generated.variations],
            "warnings": generated.warnings,
            "modelUsed": generated.model_used,
            "tokensUsed": generated.tokens_used,
        }
        if analysis is not None:
            payload["analysis"] = analysis.to_dict()
        if cited is not None:
            payload["citedPages"] = cited.to_dict()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(payload, ensure_ascii=False, indent=2))
        console.print(f"Result written to {output}")


async def _run(
    settings: Settings,
    request: VariationRequest,
    analyze: bool,
    target: VisibilityTarget,
    crawl_citations: bool,
) -> tuple[
    VariationGenerationResult, BatchAnalysisResult | None, CitedPagesResult | None
]:
    console = Console()
    async with httpx.AsyncClient() as client:
        service = VariationService(
            ChatVariationGenerator(
                client,
                settings.variation_endpoint,
                api_key=settings.variation_api_key,
                model=settings.variation_model,
            )
        )
        with console.status("Generating variations..."):
            generated = await service.generate(request)

        if not analyze or not generated.variations:
            return generated, None, None

        cancel_event = asyncio.Event()
        install_cancel_handlers(cancel_event)
        orchestrator = BatchAnalysisOrchestrator(
            engines=build_engines(
                settings.engines,
                client,
                settings.analysis_endpoint,
                api_key=settings.analysis_api_key,
            ),
            engine_timeout=settings.engine_timeout,
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>5.1f}%"),
            transient=True,
            console=console,
        ) as progress:
            task_id = progress.add_task("Starting", total=100)

            def _update(snapshot: BatchAnalysisProgress) -> None:
                engine = f" - {snapshot.current_llm}" if snapshot.current_llm else ""
                progress.update(
                    task_id,
                    completed=snapshot.percentage,
                    description=(
                        f"Query {snapshot.current_variation}/"
                        f"{snapshot.total_variations}{engine}"
                    ),
                )

            analysis = await orchestrator.analyze_variations(
                generated.variations,
                request.base_query.strip(),
                on_progress=_update,
                cancel_event=cancel_event,
                target=target,
            )

        if not crawl_citations or cancel_event.is_set():
            return generated, analysis, None

        coordinator = BatchCrawlCoordinator.from_settings(client, settings)
        with console.status("Crawling cited pages..."):
            cited = await coordinator.crawl_cited_pages(
                analysis.results,
                analysis.analysis_id,
                my_domain=target.my_domain,
                cancel_event=cancel_event,
            )
        return generated, analysis, cited


def _print_variations(console: Console, generated: VariationGenerationResult) -> None:
    table = Table(title=f"Variations ({generated.model_used})")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Query", overflow="fold")
    for position, variation in enumerate(generated.variations, start=1):
        table.add_row(str(position), variation.type.value, variation.query)
    console.print(table)

    for warning in generated.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


def _print_analysis(
    console: Console, analysis: BatchAnalysisResult, target: VisibilityTarget
) -> None:
    metrics = analysis.metrics
    engines = "\n".join(
        f"  {stats.engine}: {stats.succeeded} ok, {stats.failed} failed"
        for stats in metrics.by_engine
    )
    domains = "\n".join(
        f"  {domain.domain}: {domain.count} ({domain.percentage}%)"
        for domain in metrics.top_cited_domains
    )
    body = (
        f"Queries: {metrics.total_queries}\n"
        f"Succeeded: {metrics.successful_queries}\n"
        f"Failed: {metrics.failed_queries}\n"
        f"Engines:\n{engines}\n"
        f"Top cited domains:\n{domains or '  none'}"
    )
    if target.my_domain:
        stats = metrics.my_domain_stats
        by_engine = "\n".join(
            f"  {item.engine}: cited in {item.cited}/{item.total} answers, "
            f"avg {metrics.avg_citation_rate_by_engine.get(item.engine, 0.0):g}%"
            for item in stats.by_engine
        )
        body += (
            f"\n{target.my_domain} citation rate: {stats.citation_rate}% "
            f"({stats.queries_with_citation} queries, "
            f"{stats.total_citations} citations)\n{by_engine}"
        )
    if target.my_brand:
        mentions = metrics.brand_mention_stats
        body += (
            f"\n{target.my_brand} mention rate: {mentions.mention_rate}% "
            f"({mentions.queries_with_mention} queries, "
            f"{mentions.total_mentions} mentions)"
        )
    if target.my_domain or target.my_brand:
        body += "\nBy query type:\n" + "\n".join(
            f"  {item.type}: cited {item.avg_citation_rate}%, "
            f"mentioned {item.avg_brand_mention_rate}% ({item.count})"
            for item in metrics.performance_by_query_type
        )

    panel = Panel(
        body,
        title=(
            f"Analysis {analysis.analysis_id} (cancelled)"
            if analysis.cancelled
            else f"Analysis {analysis.analysis_id}"
        ),
    )
    console.print(panel)


def _print_cited_pages(console: Console, cited: CitedPagesResult) -> None:
    table = Table(title="Cited pages (cancelled)" if cited.cancelled else "Cited pages")
    table.add_column("Owner")
    table.add_column("URL", overflow="fold")
    table.add_column("Status")
    table.add_column("Title", overflow="fold")

    def _add(owner: str, outcome: CrawlOutcome) -> None:
        style = STATUS_STYLES[outcome.status]
        title = outcome.page.meta_tags.title if outcome.page is not None else None
        table.add_row(
            owner,
            outcome.url,
            f"[{style}]{outcome.status.value}[/{style}]",
            title or outcome.error or "",
        )

    for outcome in cited.my_pages:
        _add("mine", outcome)
    for outcome in cited.competitor_pages:
        _add("competitor", outcome)
    console.print(table)
    summary = cited.summary
    console.print(
        f"Cited pages: {summary.total} "
        f"(fetched {summary.fetched}, skipped {summary.skipped}, failed {summary.failed})"
    )
