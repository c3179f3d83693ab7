"""Crawl command for checking robots.txt and fetching a batch of pages."""

from __future__ import annotations

import asyncio
import json
import signal
from collections.abc import Callable
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from geocrawl.core.config import Settings
from geocrawl.core.errors import InternalError, ValidationError
from geocrawl.core.logger import get_logger
from geocrawl.core.progress import CrawlProgress
from geocrawl.crawler.models import CrawlOutcomeStatus
from geocrawl.services.analysis_orchestrator import generate_analysis_id
from geocrawl.services.crawl_coordinator import BatchCrawlCoordinator
from geocrawl.services.models import CrawlBatchResult

STATUS_STYLES = {
    CrawlOutcomeStatus.FETCHED: "green",
    CrawlOutcomeStatus.SKIPPED: "yellow",
    CrawlOutcomeStatus.FAILED: "red",
}


def crawl_command(
    urls: list[str] = typer.Argument(None, help="URLs to crawl (1-10)"),
    file: Path | None = typer.Option(
        None, "-f", "--file", help="File containing URLs (one per line)"
    ),
    analysis_id: str | None = typer.Option(
        None, "--analysis-id", help="Analysis the crawl belongs to (generated if omitted)"
    ),
    concurrent: int | None = typer.Option(
        None, "-c", "--concurrent", min=1, help="Pages fetched at once"
    ),
    output: Path | None = typer.Option(
        None, "-o", "--output", help="Write the full result as JSON"
    ),
) -> None:
    """Check robots.txt and crawl a batch of pages."""
    resolved_urls = _merge_urls(urls or [], file)
    if not resolved_urls:
        typer.echo("No URLs provided")
        raise typer.Exit(code=1)

    settings = Settings()
    if concurrent is not None:
        settings = settings.model_copy(update={"max_concurrent_fetches": concurrent})
    get_logger(
        "geocrawl",
        log_level=settings.log_level,
        log_file=settings.log_file,
        console_level="WARNING",
    )

    console = Console()
    try:
        result = asyncio.run(
            _run_crawl(settings, resolved_urls, analysis_id or generate_analysis_id())
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except InternalError as exc:
        console.print(f"[red]Crawl failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc

    _print_result(console, result)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        console.print(f"Result written to {output}")

    if result.summary.failed:
        raise typer.Exit(code=1)


def _merge_urls(urls: list[str], file: Path | None) -> list[str]:
    max_url_file_size = 1024 * 1024  # 1MB

    merged = [url.strip() for url in urls if url.strip()]
    if file is None:
        return merged
    if not file.exists():
        raise typer.BadParameter(f"URL file not found: {file}")

    if file.stat().st_size > max_url_file_size:
        raise typer.BadParameter(
            f"URL file too large (max {max_url_file_size} bytes): {file}"
        )

    file_urls = [line.strip() for line in file.read_text().splitlines()]
    merged.extend([url for url in file_urls if url])
    return merged


def install_cancel_handlers(cancel_event: asyncio.Event) -> None:
    """Set ``cancel_event`` on SIGINT and SIGTERM.

    Note: On Windows, signal.signal() is used as a fallback since
    add_signal_handler() is not supported.
    """
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        loop.add_signal_handler(signal.SIGTERM, cancel_event.set)
    except NotImplementedError:
        signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
        signal.signal(signal.SIGTERM, lambda *_: cancel_event.set())


async def _run_crawl(
    settings: Settings, urls: list[str], analysis_id: str
) -> CrawlBatchResult:
    console = Console()
    cancel_event = asyncio.Event()
    install_cancel_handlers(cancel_event)

    async with httpx.AsyncClient() as client:
        coordinator = BatchCrawlCoordinator.from_settings(client, settings)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>5.1f}%"),
            transient=True,
            console=console,
        ) as progress:
            task_id = progress.add_task("Starting", total=100)
            return await coordinator.crawl_batch(
                urls,
                analysis_id,
                on_progress=_progress_listener(progress, task_id),
                cancel_event=cancel_event,
            )


def _progress_listener(
    progress: Progress, task_id: int
) -> Callable[[CrawlProgress], None]:
    def _update(snapshot: CrawlProgress) -> None:
        label = snapshot.stage.value.replace("_", " ").capitalize()
        progress.update(
            task_id,
            completed=snapshot.percentage,
            description=f"{label} ({snapshot.current}/{snapshot.total})",
        )

    return _update


def _print_result(console: Console, result: CrawlBatchResult) -> None:
    table = Table(title=f"Crawl {result.analysis_id}")
    table.add_column("URL", overflow="fold")
    table.add_column("Status")
    table.add_column("HTTP")
    table.add_column("Title / Error", overflow="fold")

    for outcome in result.outcomes:
        style = STATUS_STYLES[outcome.status]
        if outcome.page is not None and outcome.page.meta_tags.title:
            detail = outcome.page.meta_tags.title
        else:
            detail = outcome.error or ""
        table.add_row(
            outcome.url,
            f"[{style}]{outcome.status.value}[/{style}]",
            str(outcome.status_code or "-"),
            detail,
        )
    console.print(table)

    summary = result.summary
    panel = Panel(
        f"URLs: {summary.total}\n"
        f"Fetched: {summary.fetched}\n"
        f"Skipped: {summary.skipped}\n"
        f"Failed: {summary.failed}\n"
        f"Success rate: {summary.success_rate}%",
        title="Crawl Summary (cancelled)" if result.cancelled else "Crawl Summary",
    )
    console.print(panel)
